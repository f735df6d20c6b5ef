"""
Registry Module
Creates the image repository shared by all environments
"""

from .functions import create_registry_resources

__all__ = ["create_registry_resources"]
