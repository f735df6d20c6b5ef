"""
EKS Module
Creates the cluster, its OIDC provider, Fargate profiles, access entries and
managed add-ons
"""

from .functions import create_eks_resources

__all__ = ["create_eks_resources"]
