"""Runtime settings read from the environment (CI runners, local shells)."""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from fargate_stack.config.paths import env_path

ENV_FILE_PATH = str(env_path())


class AWSSettings(BaseSettings):
    """AWS credentials and region supplied by the environment."""

    model_config = SettingsConfigDict(env_prefix="AWS_", env_file=ENV_FILE_PATH, extra="ignore")

    region: str | None = Field(default=None, description="AWS region override")
    profile: str | None = Field(default=None, description="AWS named profile")
    access_key_id: SecretStr | None = Field(default=None, description="AWS Access Key ID")
    secret_access_key: SecretStr | None = Field(default=None, description="AWS Secret Access Key")
    session_token: SecretStr | None = Field(default=None, description="AWS Session Token")

    def has_static_credentials(self) -> bool:
        """Return true when both halves of an access key pair are present."""
        return self.access_key_id is not None and self.secret_access_key is not None


class BuildSettings(BaseSettings):
    """Build metadata provided by the CI runner."""

    model_config = SettingsConfigDict(
        env_prefix="GITHUB_",
        env_file=ENV_FILE_PATH,
        extra="ignore",
    )

    sha: str | None = Field(default=None, description="Commit SHA being built")


class RuntimeSettings(BaseSettings):
    """Top-level runtime settings."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="INFO", alias="FARGATE_STACK_LOG_LEVEL")

    aws: AWSSettings
    build: BuildSettings


def get_settings() -> RuntimeSettings:
    """Load and return runtime settings from the environment."""
    return RuntimeSettings(aws=AWSSettings(), build=BuildSettings())
