"""Core exceptions for sqlconduit."""

from typing import Any, Dict, Optional


class SQLConduitError(Exception):
    """Base exception for all sqlconduit errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SQLConduitError):
    """Raised when a configuration is invalid or cannot be loaded."""
    pass


class RegistryError(SQLConduitError):
    """Raised when the connection registry cannot resolve a handle."""
    pass


class NoConnectionAvailable(RegistryError):
    """Raised when no configuration or ID was given and the registry is empty."""
    pass


class UnknownConnectionId(RegistryError):
    """Raised when a connection ID is not present in the registry."""

    def __init__(self, connection_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"No connection with ID `{connection_id}` found", details)
        self.connection_id = connection_id


class StatementError(SQLConduitError):
    """Raised when a statement is rejected before reaching the database."""
    pass


class EmptyStatement(StatementError):
    """Raised when a statement is blank."""
    pass


class NoExecutableStatements(StatementError):
    """Raised when a batch holds nothing to run after dropping SELECTs and comments."""
    pass


class NotASelectStatement(StatementError):
    """Raised when a read-only helper receives a statement that is not read-only."""
    pass


class UnsupportedJoinType(StatementError):
    """Raised when an aggregate helper receives an unknown JOIN type."""
    pass


class BindingError(SQLConduitError):
    """Raised when a value cannot be coerced or bound to a placeholder."""

    def __init__(
        self,
        message: str,
        placeholder: Optional[str] = None,
        bind_type: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.placeholder = placeholder
        self.bind_type = bind_type
        self.value = value


class DatabaseError(SQLConduitError):
    """Raised when there's an error talking to the database."""
    pass


class ExecutionError(DatabaseError):
    """Raised when a statement fails to prepare, execute or fetch."""

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        bindings: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.statement = statement
        self.bindings = bindings


class TransactionError(ExecutionError):
    """Raised when a transaction cannot be started or finished."""
    pass


class TransientLockError(DatabaseError):
    """Deadlock-class failure that is safe to retry."""
    pass


class RetryBudgetExhausted(DatabaseError):
    """Raised when every allowed attempt ended in a transient lock error."""

    def __init__(self, attempts: int, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Deadlock encountered for set maximum of {attempts} tries", details)
        self.attempts = attempts
