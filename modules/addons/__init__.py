"""
Addons Module
Installs Karpenter and metrics-server into a cluster
"""

from .functions import create_addons_resources

__all__ = ["create_addons_resources"]
