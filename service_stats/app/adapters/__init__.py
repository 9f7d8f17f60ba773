"""
Adapters for external collaborators of the statistics service.
"""

from .postgres_client import PostgresDataSource, DataSource

__all__ = ["PostgresDataSource", "DataSource"]
