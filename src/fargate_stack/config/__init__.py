"""Filesystem locations for user configuration."""
