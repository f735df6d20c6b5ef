"""
IAM Module
Creates or references the cluster, Fargate, node and kubectl roles
"""

from .functions import create_iam_resources

__all__ = ["create_iam_resources"]
