"""
VPC Module
Creates the network of one environment: public and private subnets across
availability zones, one NAT gateway for private egress
"""

from .functions import create_vpc_resources

__all__ = ["create_vpc_resources"]
