"""VPC and subnet management for ECS."""

import ipaddress
import logging
from collections.abc import Callable
from itertools import combinations
from typing import Any

from boto3.session import Session
from botocore.exceptions import ClientError, WaiterError

from fargate_stack.core.deployments.aws_ecs.cleanup import cleanup_vpc
from fargate_stack.core.deployments.aws_ecs.models import (
    NetworkConfig,
    NetworkSelection,
    SubnetLayout,
)

logger = logging.getLogger(__name__)

SUBNET_PREFIX_LENGTH = 24
PRIVATE_SUBNET_OFFSET = 100


class NetworkLayoutError(ValueError):
    """Raised when a subnet layout breaks the per-AZ or overlap rules."""


def plan_subnets(network: NetworkConfig, available_zones: list[str]) -> SubnetLayout:
    """Resolve and validate the public and private subnets for each zone.

    Args:
        network: Network inputs.
        available_zones: Zones offered by the region, in region order.

    Returns:
        The validated layout.
    """
    zones = _select_zones(network, available_zones)
    vpc_range = _parse_network(network.vpc_cidr)

    public_cidrs = list(network.public_subnet_cidrs) or _derive_cidrs(vpc_range, 0, len(zones))
    private_cidrs = list(network.private_subnet_cidrs) or _derive_cidrs(
        vpc_range, PRIVATE_SUBNET_OFFSET, len(zones)
    )

    if len(public_cidrs) != len(zones):
        raise NetworkLayoutError(
            f"Expected {len(zones)} public subnets (one per zone), got {len(public_cidrs)}."
        )
    if len(private_cidrs) != len(zones):
        raise NetworkLayoutError(
            f"Expected {len(zones)} private subnets (one per zone), got {len(private_cidrs)}."
        )

    subnets = [_parse_network(cidr) for cidr in [*public_cidrs, *private_cidrs]]
    for subnet in subnets:
        if not _within(subnet, vpc_range):
            raise NetworkLayoutError(f"Subnet {subnet} is outside VPC range {vpc_range}.")
    for first, second in combinations(subnets, 2):
        if first.overlaps(second):
            raise NetworkLayoutError(f"Subnets {first} and {second} overlap.")

    return SubnetLayout(
        availability_zones=zones,
        public_cidrs=[str(subnet) for subnet in subnets[: len(zones)]],
        private_cidrs=[str(subnet) for subnet in subnets[len(zones) :]],
    )


def create_network(
    session: Session,
    project_name: str,
    network: NetworkConfig,
    tags: dict[str, str],
    reporter: Callable[[str], None],
) -> NetworkSelection:
    """Create a VPC with a public and a private subnet in each zone.

    When a call fails after the VPC exists, everything created so far is
    deleted again before the error is re-raised, so a retry starts clean.
    """
    ec2 = session.client("ec2")
    layout = plan_subnets(network, _availability_zones(ec2))

    reporter(f"Creating VPC {network.vpc_cidr}")
    vpc_id = ec2.create_vpc(CidrBlock=network.vpc_cidr)["Vpc"]["VpcId"]
    try:
        return _build_network(ec2, vpc_id, project_name, network, layout, tags, reporter)
    except (ClientError, WaiterError):
        logger.exception("Network setup failed for VPC %s", vpc_id)
        reporter(f"Network setup failed; removing partial VPC {vpc_id}")
        cleanup_vpc(session, vpc_id, reporter)
        raise


def _build_network(
    ec2: Any,
    vpc_id: str,
    project_name: str,
    network: NetworkConfig,
    layout: SubnetLayout,
    tags: dict[str, str],
    reporter: Callable[[str], None],
) -> NetworkSelection:
    """Create gateways, subnets and routes inside a new VPC."""
    ec2.get_waiter("vpc_available").wait(VpcIds=[vpc_id])
    ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsSupport={"Value": True})
    ec2.modify_vpc_attribute(VpcId=vpc_id, EnableDnsHostnames={"Value": True})
    _tag_resource(ec2, vpc_id, f"{project_name}-vpc", tags)

    reporter("Creating internet gateway")
    igw_id = ec2.create_internet_gateway()["InternetGateway"]["InternetGatewayId"]
    ec2.attach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id)
    _tag_resource(ec2, igw_id, f"{project_name}-igw", tags)

    public_subnet_ids: list[str] = []
    private_subnet_ids: list[str] = []
    for index, zone in enumerate(layout.availability_zones):
        reporter(f"Creating subnets in {zone}")
        public_subnet_ids.append(
            _create_subnet(
                ec2,
                vpc_id,
                layout.public_cidrs[index],
                zone,
                f"{project_name}-public-{zone}",
                tags,
                public=True,
            )
        )
        private_subnet_ids.append(
            _create_subnet(
                ec2,
                vpc_id,
                layout.private_cidrs[index],
                zone,
                f"{project_name}-private-{zone}",
                tags,
                public=False,
            )
        )

    reporter("Creating routes for public subnets")
    public_route_table_id = ec2.create_route_table(VpcId=vpc_id)["RouteTable"]["RouteTableId"]
    ec2.create_route(
        RouteTableId=public_route_table_id,
        DestinationCidrBlock="0.0.0.0/0",
        GatewayId=igw_id,
    )
    for subnet_id in public_subnet_ids:
        ec2.associate_route_table(RouteTableId=public_route_table_id, SubnetId=subnet_id)
    _tag_resource(ec2, public_route_table_id, f"{project_name}-public-rt", tags)

    nat_gateway_ids: list[str] = []
    if network.enable_nat_gateway:
        nat_subnets = public_subnet_ids[:1] if network.single_nat_gateway else public_subnet_ids
        reporter(
            f"Creating {len(nat_subnets)} NAT gateway(s) for outbound access "
            "(this can take a few minutes)"
        )
        for subnet_id in nat_subnets:
            allocation_id = ec2.allocate_address(Domain="vpc")["AllocationId"]
            try:
                nat_gateway_id = ec2.create_nat_gateway(
                    SubnetId=subnet_id,
                    AllocationId=allocation_id,
                )["NatGateway"]["NatGatewayId"]
            except ClientError:
                ec2.release_address(AllocationId=allocation_id)
                raise
            _tag_resource(ec2, nat_gateway_id, f"{project_name}-nat", tags)
            nat_gateway_ids.append(nat_gateway_id)
        ec2.get_waiter("nat_gateway_available").wait(NatGatewayIds=nat_gateway_ids)
    else:
        reporter("NAT gateway disabled; private subnets will have no outbound route")

    reporter("Creating routes for private subnets")
    for index, subnet_id in enumerate(private_subnet_ids):
        route_table_id = ec2.create_route_table(VpcId=vpc_id)["RouteTable"]["RouteTableId"]
        if nat_gateway_ids:
            ec2.create_route(
                RouteTableId=route_table_id,
                DestinationCidrBlock="0.0.0.0/0",
                NatGatewayId=nat_gateway_ids[min(index, len(nat_gateway_ids) - 1)],
            )
        ec2.associate_route_table(RouteTableId=route_table_id, SubnetId=subnet_id)
        _tag_resource(ec2, route_table_id, f"{project_name}-private-rt-{index}", tags)

    logger.info("Created VPC %s with %d zones", vpc_id, len(layout.availability_zones))
    reporter("VPC created successfully")
    return NetworkSelection(
        vpc_id=vpc_id,
        public_subnet_ids=public_subnet_ids,
        private_subnet_ids=private_subnet_ids,
        nat_gateway_ids=nat_gateway_ids,
    )


def _create_subnet(
    ec2: Any,
    vpc_id: str,
    cidr: str,
    zone: str,
    name: str,
    tags: dict[str, str],
    public: bool,
) -> str:
    """Create one subnet and return its ID."""
    subnet_id = str(
        ec2.create_subnet(VpcId=vpc_id, CidrBlock=cidr, AvailabilityZone=zone)["Subnet"][
            "SubnetId"
        ]
    )
    ec2.modify_subnet_attribute(SubnetId=subnet_id, MapPublicIpOnLaunch={"Value": public})
    _tag_resource(ec2, subnet_id, name, tags)
    return subnet_id


def _select_zones(network: NetworkConfig, available_zones: list[str]) -> list[str]:
    """Return the zones the stack will span."""
    if network.availability_zones:
        unknown = [zone for zone in network.availability_zones if zone not in available_zones]
        if available_zones and unknown:
            raise NetworkLayoutError(f"Unknown availability zones: {', '.join(unknown)}")
        if len(set(network.availability_zones)) != len(network.availability_zones):
            raise NetworkLayoutError("Availability zones must be unique.")
        return list(network.availability_zones)

    if network.az_count < 1:
        raise NetworkLayoutError("At least one availability zone is required.")
    if len(available_zones) < network.az_count:
        raise NetworkLayoutError(
            f"Region offers {len(available_zones)} zones, {network.az_count} requested."
        )
    return available_zones[: network.az_count]


def _derive_cidrs(
    vpc_range: ipaddress.IPv4Network | ipaddress.IPv6Network,
    offset: int,
    count: int,
) -> list[str]:
    """Carve ``count`` consecutive subnets out of the VPC range starting at ``offset``."""
    if vpc_range.prefixlen >= SUBNET_PREFIX_LENGTH:
        raise NetworkLayoutError(
            f"VPC range {vpc_range} is too small to derive /{SUBNET_PREFIX_LENGTH} subnets."
        )
    total = 2 ** (SUBNET_PREFIX_LENGTH - vpc_range.prefixlen)
    if offset + count > total:
        raise NetworkLayoutError(
            f"VPC range {vpc_range} has room for {total} subnets, "
            f"cannot place {count} at offset {offset}."
        )
    step = 2 ** (vpc_range.max_prefixlen - SUBNET_PREFIX_LENGTH)
    first = int(vpc_range.network_address) + offset * step
    return [
        str(ipaddress.ip_network((first + index * step, SUBNET_PREFIX_LENGTH)))
        for index in range(count)
    ]


def _within(
    subnet: ipaddress.IPv4Network | ipaddress.IPv6Network,
    vpc_range: ipaddress.IPv4Network | ipaddress.IPv6Network,
) -> bool:
    if subnet.version != vpc_range.version:
        return False
    return subnet.subnet_of(vpc_range)  # type: ignore[arg-type]


def _parse_network(cidr: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
    """Parse a CIDR block strictly."""
    try:
        return ipaddress.ip_network(cidr, strict=True)
    except ValueError as exc:
        raise NetworkLayoutError(f"Invalid CIDR block '{cidr}': {exc}") from exc


def _tag_resource(ec2: Any, resource_id: str, name: str, tags: dict[str, str]) -> None:
    """Apply a Name tag plus the stack tags to a resource."""
    ec2.create_tags(Resources=[resource_id], Tags=resource_tags(name, tags))


def resource_tags(name: str, tags: dict[str, str]) -> list[dict[str, str]]:
    """Return EC2-style tag entries with ``Name`` first."""
    entries = [{"Key": "Name", "Value": name}]
    entries.extend({"Key": key, "Value": value} for key, value in tags.items() if key != "Name")
    return entries


def _availability_zones(ec2: Any) -> list[str]:
    """Fetch the available zones of the region."""
    response = ec2.describe_availability_zones(
        Filters=[{"Name": "state", "Values": ["available"]}]
    )
    zones = [str(zone["ZoneName"]) for zone in response.get("AvailabilityZones", [])]
    if not zones:
        raise RuntimeError("No availability zones found for this region.")
    return zones
