"""
Database Module
Creates the MySQL instance of one environment
"""

from .functions import create_database_resources, database_url

__all__ = ["create_database_resources", "database_url"]
