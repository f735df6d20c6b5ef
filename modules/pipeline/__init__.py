"""
Pipeline Module
Creates the multi-architecture build and staged release pipeline
"""

from .functions import create_pipeline_resources
from .topology import build_release_topology, trace_execution, validate_topology

__all__ = [
    "create_pipeline_resources",
    "build_release_topology",
    "trace_execution",
    "validate_topology"
]
