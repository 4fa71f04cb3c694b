"""Database connectivity and query execution."""

from sqlconduit.db.base import BaseAdapter
from sqlconduit.db.connection import (
    AdapterFactory,
    ConnectionRegistry,
    RegistrySlot,
)
from sqlconduit.db.binder import Binder, Binding, BindType
from sqlconduit.db.executor import (
    ExecutionResult,
    FetchMode,
    LastId,
    QueryExecutor,
    QueryUnit,
    is_select,
    split_statements,
)
from sqlconduit.db.select import Select, ensure_limit
from sqlconduit.db.adapters import (
    PostgreSQLAdapter,
    MySQLAdapter,
    SQLiteAdapter,
)

__all__ = [
    # Base classes
    "BaseAdapter",
    # Connection management
    "AdapterFactory",
    "ConnectionRegistry",
    "RegistrySlot",
    # Binding
    "Binder",
    "Binding",
    "BindType",
    # Execution
    "ExecutionResult",
    "FetchMode",
    "LastId",
    "QueryExecutor",
    "QueryUnit",
    "is_select",
    "split_statements",
    "Select",
    "ensure_limit",
    # Database adapters
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "SQLiteAdapter",
]
