"""Database adapters for different database types."""

from sqlconduit.db.adapters.postgresql import PostgreSQLAdapter
from sqlconduit.db.adapters.mysql import MySQLAdapter
from sqlconduit.db.adapters.sqlite import SQLiteAdapter

__all__ = [
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLiteAdapter",
]
