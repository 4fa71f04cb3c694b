"""Base database adapter: dialect URL, forced options and engine ownership."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine, URL
from sqlalchemy.exc import SQLAlchemyError

from sqlconduit.config.models import DatabaseConfig
from sqlconduit.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class BaseAdapter(ABC):
    """Base class for database adapters."""

    def __init__(self, config: DatabaseConfig) -> None:
        """Initialize database adapter.

        Args:
            config: Database configuration.
        """
        self.config = config
        self._engine: Optional[Engine] = None

    @abstractmethod
    def build_url(self) -> URL:
        """Build the SQLAlchemy URL for this configuration.

        This is the only place the configuration's password is read.

        Returns:
            SQLAlchemy URL object.
        """
        pass

    @abstractmethod
    def get_driver_name(self) -> str:
        """Get the DBAPI driver name for this adapter.

        Returns:
            Driver name string.
        """
        pass

    def get_forced_connect_args(self) -> Dict[str, Any]:
        """Connect arguments that always override the configured options."""
        return {}

    def get_connect_args(self) -> Dict[str, Any]:
        """Merge configured driver options with the forced ones."""
        connect_args = dict(self.config.options)
        connect_args.update(self.get_forced_connect_args())
        return connect_args

    def apply_session_settings(self, dbapi_connection: Any) -> None:
        """Re-apply forced attributes on a freshly opened DBAPI connection.

        Some drivers ignore attributes passed at construction time, so they are
        set again once the connection exists.
        """
        pass

    def random_function(self) -> str:
        """SQL expression returning a random value, used for ORDER BY."""
        return "RANDOM()"

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get database-specific engine options."""
        return {
            'pool_pre_ping': True,
            'pool_recycle': 3600,
        }

    def _on_connect(self, dbapi_connection: Any, connection_record: Any) -> None:
        self.apply_session_settings(dbapi_connection)
        if not self.config.init_commands:
            return
        cursor = dbapi_connection.cursor()
        try:
            for command in self.config.init_commands:
                cursor.execute(command)
        finally:
            cursor.close()

    def get_engine(self) -> Engine:
        """Get or create the SQLAlchemy engine.

        Returns:
            SQLAlchemy engine instance.

        Raises:
            DatabaseError: If engine creation fails.
        """
        if self._engine is None:
            try:
                engine_args = self._get_engine_options()
                engine_args['connect_args'] = self.get_connect_args()
                engine_args['echo'] = False

                self._engine = create_engine(self.build_url(), **engine_args)
                event.listen(self._engine, "connect", self._on_connect)

            except Exception as e:
                raise DatabaseError(f"Failed to create database engine: {e}") from e

        return self._engine

    def connect(self) -> Connection:
        """Open a new connection.

        Raises:
            DatabaseError: If the driver refuses the connection.
        """
        engine = self.get_engine()
        try:
            return engine.connect()
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to connect to {self.config.type.value} database: {e}",
                details={'url': self.build_url().render_as_string(hide_password=True)},
            ) from e

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
