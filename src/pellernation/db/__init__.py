"""Database access: connection pool, table names and schema migrations."""

from pellernation.db.models import Table
from pellernation.db.pool import close_pool, create_pool

__all__ = ["Table", "close_pool", "create_pool"]
