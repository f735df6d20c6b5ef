"""
Pulumi modules for the Pet Clinic infrastructure
Simple function-based approach: each module exposes create_*_resources
"""

from .vpc import create_vpc_resources
from .iam import create_iam_resources
from .eks import create_eks_resources
from .addons import create_addons_resources
from .database import create_database_resources
from .registry import create_registry_resources
from .pipeline import create_pipeline_resources

__all__ = [
    "create_vpc_resources",
    "create_iam_resources",
    "create_eks_resources",
    "create_addons_resources",
    "create_database_resources",
    "create_registry_resources",
    "create_pipeline_resources"
]
