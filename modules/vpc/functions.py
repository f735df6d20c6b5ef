"""
VPC Module Functions
Creates VPC, public and private subnets, and the shared NAT egress for EKS
"""

import pulumi
import pulumi_aws as aws
from typing import Dict, List, Any


def create_vpc(name: str, cidr: str, tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create VPC with DNS settings

    Args:
        name: VPC name
        cidr: VPC CIDR block
        tags: Additional tags

    Returns:
        Dict with vpc resource and outputs
    """
    tags = tags or {}

    vpc = aws.ec2.Vpc(
        f"{name}-vpc",
        cidr_block=cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={
            **tags,
            "Name": f"{name}-vpc",
            "Module": "vpc"
        }
    )

    return {
        "vpc": vpc,
        "vpc_id": vpc.id,
        "vpc_cidr_block": vpc.cidr_block
    }


def create_internet_gateway(name: str, vpc_id: pulumi.Output[str], tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create Internet Gateway for VPC

    Args:
        name: Resource name prefix
        vpc_id: VPC ID to attach to
        tags: Additional tags

    Returns:
        Dict with igw resource and outputs
    """
    tags = tags or {}

    igw = aws.ec2.InternetGateway(
        f"{name}-igw",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-igw",
            "Module": "vpc"
        }
    )

    return {
        "igw": igw,
        "igw_id": igw.id
    }


def create_subnets(name: str, vpc_id: pulumi.Output[str], subnet_cidrs: List[str],
                   availability_zones: List[str], public: bool,
                   tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create one subnet per availability zone

    Public subnets map public IPs on launch and host internet-facing load
    balancers. Private subnets host the cluster, its Fargate pods and the
    database, and are discoverable by the autoscaler.

    Args:
        name: Resource name prefix (the cluster name)
        vpc_id: VPC ID
        subnet_cidrs: List of CIDR blocks, one per AZ
        availability_zones: List of availability zones
        public: Whether these are public subnets
        tags: Additional tags

    Returns:
        Dict with subnet resources and outputs

    Raises:
        ValueError: if there are more CIDRs than availability zones
    """
    tags = tags or {}
    if len(subnet_cidrs) > len(availability_zones):
        raise ValueError(
            f"{name}: {len(subnet_cidrs)} subnet CIDRs but only "
            f"{len(availability_zones)} availability zones"
        )
    kind = "public" if public else "private"
    role_tags = {"kubernetes.io/role/elb": "1"} if public else {
        "kubernetes.io/role/internal-elb": "1",
        "karpenter.sh/discovery": name,
    }

    subnets = []
    for i, cidr in enumerate(subnet_cidrs):
        subnet = aws.ec2.Subnet(
            f"{name}-{kind}-subnet-{i+1}",
            vpc_id=vpc_id,
            cidr_block=cidr,
            availability_zone=availability_zones[i],
            map_public_ip_on_launch=public,
            tags={
                **tags,
                **role_tags,
                "Name": f"{name}-{kind}-subnet-{i+1}",
                "Type": kind,
                f"kubernetes.io/cluster/{name}": "shared",
                "Module": "vpc"
            }
        )
        subnets.append(subnet)

    return {
        "subnets": subnets,
        "subnet_ids": [subnet.id for subnet in subnets],
        "availability_zones": availability_zones[:len(subnet_cidrs)]
    }


def create_nat_gateway(name: str, public_subnet_id: pulumi.Output[str], igw=None,
                       tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create the single NAT gateway shared by every private subnet

    Args:
        name: Resource name prefix
        public_subnet_id: Public subnet hosting the gateway
        igw: Internet gateway the NAT gateway depends on
        tags: Additional tags

    Returns:
        Dict with EIP and NAT gateway resources
    """
    tags = tags or {}

    eip = aws.ec2.Eip(
        f"{name}-nat-eip",
        domain="vpc",
        tags={
            **tags,
            "Name": f"{name}-nat-eip",
            "Module": "vpc"
        }
    )

    nat_gateway = aws.ec2.NatGateway(
        f"{name}-nat",
        allocation_id=eip.id,
        subnet_id=public_subnet_id,
        tags={
            **tags,
            "Name": f"{name}-nat",
            "Module": "vpc"
        },
        opts=pulumi.ResourceOptions(depends_on=[igw]) if igw else None
    )

    return {
        "eip": eip,
        "nat_gateway": nat_gateway,
        "nat_gateway_id": nat_gateway.id
    }


def create_route_table(name: str, kind: str, vpc_id: pulumi.Output[str],
                       subnet_ids: List[pulumi.Output[str]], gateway_id: pulumi.Output[str] = None,
                       nat_gateway_id: pulumi.Output[str] = None,
                       tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create a route table with a single default route

    Exactly one of gateway_id (public) or nat_gateway_id (private) is used
    as the target of 0.0.0.0/0.

    Args:
        name: Resource name prefix
        kind: "public" or "private"
        vpc_id: VPC ID
        subnet_ids: List of subnet IDs to associate
        gateway_id: Internet Gateway ID
        nat_gateway_id: NAT Gateway ID
        tags: Additional tags

    Returns:
        Dict with route table resources and outputs
    """
    tags = tags or {}

    route_table = aws.ec2.RouteTable(
        f"{name}-{kind}-rt",
        vpc_id=vpc_id,
        tags={
            **tags,
            "Name": f"{name}-{kind}-rt",
            "Module": "vpc"
        }
    )

    if nat_gateway_id is not None:
        route = aws.ec2.Route(
            f"{name}-{kind}-route",
            route_table_id=route_table.id,
            destination_cidr_block="0.0.0.0/0",
            nat_gateway_id=nat_gateway_id
        )
    else:
        route = aws.ec2.Route(
            f"{name}-{kind}-route",
            route_table_id=route_table.id,
            destination_cidr_block="0.0.0.0/0",
            gateway_id=gateway_id
        )

    associations = []
    for i, subnet_id in enumerate(subnet_ids):
        association = aws.ec2.RouteTableAssociation(
            f"{name}-{kind}-rta-{i+1}",
            subnet_id=subnet_id,
            route_table_id=route_table.id
        )
        associations.append(association)

    return {
        "route_table": route_table,
        "route": route,
        "associations": associations,
        "route_table_id": route_table.id
    }


def create_vpc_resources(name: str, vpc_cidr: str, public_subnet_cidrs: List[str],
                         private_subnet_cidrs: List[str],
                         tags: Dict[str, str] = None) -> Dict[str, Any]:
    """
    Create complete VPC infrastructure for one environment

    Args:
        name: Cluster name, used as resource prefix
        vpc_cidr: VPC CIDR block
        public_subnet_cidrs: Public subnet CIDR blocks, one per AZ
        private_subnet_cidrs: Private subnet CIDR blocks, one per AZ
        tags: Additional tags for all resources

    Returns:
        Dict with all VPC resources and outputs
    """
    tags = tags or {}

    azs = aws.get_availability_zones(state="available")

    # One subnet of each kind per AZ; extra CIDRs are dropped in smaller regions
    az_count = min(len(azs.names), len(public_subnet_cidrs), len(private_subnet_cidrs))
    if az_count == 0:
        raise ValueError(f"No availability zones or subnet CIDRs available for {name}")
    if az_count < max(len(public_subnet_cidrs), len(private_subnet_cidrs)):
        pulumi.log.warn(
            f"{name}: region offers {len(azs.names)} availability zones, "
            f"using the first {az_count} public and private subnet CIDRs"
        )
    public_subnet_cidrs = public_subnet_cidrs[:az_count]
    private_subnet_cidrs = private_subnet_cidrs[:az_count]

    vpc_result = create_vpc(name, vpc_cidr, tags)
    igw_result = create_internet_gateway(name, vpc_result["vpc_id"], tags)

    public_result = create_subnets(name, vpc_result["vpc_id"], public_subnet_cidrs, azs.names, True, tags)
    private_result = create_subnets(name, vpc_result["vpc_id"], private_subnet_cidrs, azs.names, False, tags)

    nat_result = create_nat_gateway(name, public_result["subnet_ids"][0], igw_result["igw"], tags)

    public_rt_result = create_route_table(
        name, "public",
        vpc_result["vpc_id"],
        public_result["subnet_ids"],
        gateway_id=igw_result["igw_id"],
        tags=tags
    )

    # All private subnets egress through the one NAT gateway
    private_rt_result = create_route_table(
        name, "private",
        vpc_result["vpc_id"],
        private_result["subnet_ids"],
        nat_gateway_id=nat_result["nat_gateway_id"],
        tags=tags
    )

    return {
        "vpc_id": vpc_result["vpc_id"],
        "vpc_cidr_block": vpc_result["vpc_cidr_block"],
        "public_subnet_ids": public_result["subnet_ids"],
        "private_subnet_ids": private_result["subnet_ids"],
        "availability_zones": public_result["availability_zones"],
        "nat_gateway_id": nat_result["nat_gateway_id"],
        # Keep references to all resources for dependencies
        "_vpc": vpc_result["vpc"],
        "_igw": igw_result["igw"],
        "_nat_gateway": nat_result["nat_gateway"],
        "_public_subnets": public_result["subnets"],
        "_private_subnets": private_result["subnets"],
        "_public_route_table": public_rt_result["route_table"],
        "_private_route_table": private_rt_result["route_table"]
    }
