"""SQLite database adapter."""

from pathlib import Path
from typing import Any, Dict

from sqlalchemy.engine import URL

from sqlconduit.db.base import BaseAdapter

MEMORY_DATABASE = ":memory:"


class SQLiteAdapter(BaseAdapter):
    """SQLite database adapter."""

    def get_driver_name(self) -> str:
        """Get the driver name for SQLite."""
        return "pysqlite"

    def build_url(self) -> URL:
        """Build SQLite connection URL.

        Relative paths are resolved against the working directory and the
        parent directory is created if needed.
        """
        drivername = f"sqlite+{self.get_driver_name()}"
        if self.config.database == MEMORY_DATABASE:
            return URL.create(drivername, database=MEMORY_DATABASE)

        db_path = Path(self.config.database)
        if not db_path.is_absolute():
            db_path = Path.cwd() / db_path

        db_path.parent.mkdir(parents=True, exist_ok=True)

        return URL.create(drivername, database=str(db_path))

    def get_forced_connect_args(self) -> Dict[str, Any]:
        return {'check_same_thread': False}

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get SQLite-specific engine options."""
        return {
            'pool_pre_ping': True,
            'pool_recycle': -1,  # No recycling for SQLite
        }

    def apply_session_settings(self, dbapi_connection: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys = ON")
        finally:
            cursor.close()
