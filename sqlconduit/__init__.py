"""sqlconduit: a convenience layer over SQLAlchemy connections.

sqlconduit provides:
- A registry keeping one connection per distinct configuration
- Typed parameter binding with ``in`` list expansion
- Transactional batch execution with deadlock retries
- Read-only helpers shaping rows, columns, pairs and counts
- YAML-based configuration
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from sqlconduit.exceptions import (
    SQLConduitError,
    ConfigurationError,
    DatabaseError,
    BindingError,
    StatementError,
    RegistryError,
)

__all__ = [
    "__version__",
    "SQLConduitError",
    "ConfigurationError",
    "DatabaseError",
    "BindingError",
    "StatementError",
    "RegistryError",
]
