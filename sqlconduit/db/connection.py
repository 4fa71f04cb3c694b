"""Connection registry and adapter factory."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from sqlconduit.config.models import DatabaseConfig, DatabaseType, SQLConduitConfig
from sqlconduit.db.base import BaseAdapter
from sqlconduit.db.adapters.postgresql import PostgreSQLAdapter
from sqlconduit.db.adapters.mysql import MySQLAdapter
from sqlconduit.db.adapters.sqlite import SQLiteAdapter
from sqlconduit.exceptions import (
    ConfigurationError,
    DatabaseError,
    NoConnectionAvailable,
    UnknownConnectionId,
)

logger = logging.getLogger(__name__)


class AdapterFactory:
    """Factory for creating database adapters."""

    _adapters: Dict[DatabaseType, Type[BaseAdapter]] = {
        DatabaseType.POSTGRESQL: PostgreSQLAdapter,
        DatabaseType.MYSQL: MySQLAdapter,
        DatabaseType.SQLITE: SQLiteAdapter,
    }

    @classmethod
    def create_adapter(cls, config: DatabaseConfig) -> BaseAdapter:
        """Create a database adapter based on configuration.

        Args:
            config: Database configuration.

        Returns:
            Database adapter instance.

        Raises:
            ConfigurationError: If database type is not supported.
        """
        adapter_class = cls._adapters.get(config.type)
        if not adapter_class:
            supported_types = list(cls._adapters.keys())
            raise ConfigurationError(
                f"Unsupported database type: {config.type}. "
                f"Supported types: {supported_types}"
            )

        return adapter_class(config)

    @classmethod
    def register_adapter(cls, db_type: DatabaseType, adapter_class: Type[BaseAdapter]) -> None:
        """Register a custom database adapter.

        Args:
            db_type: Database type.
            adapter_class: Adapter class to register.
        """
        cls._adapters[db_type] = adapter_class

    @classmethod
    def get_supported_types(cls) -> list[DatabaseType]:
        """Get list of supported database types."""
        return list(cls._adapters.keys())


@dataclass
class RegistrySlot:
    """A configuration, its adapter and the live connection, if any."""
    config: DatabaseConfig
    adapter: BaseAdapter
    connection: Optional[Connection] = None


class ConnectionRegistry:
    """Keeps one connection per distinct configuration and tracks the active one.

    Not thread-safe: use one registry per worker thread or process.
    """

    def __init__(self, factory: Optional[AdapterFactory] = None) -> None:
        self._factory = factory or AdapterFactory()
        self._slots: Dict[str, RegistrySlot] = {}
        self._active: Optional[Connection] = None
        self.errors: Dict[str, Dict[str, Any]] = {}

    @property
    def active(self) -> Optional[Connection]:
        """Connection used by calls that name no configuration or ID."""
        return self._active

    def open(
        self,
        config: Optional[DatabaseConfig] = None,
        connection_id: Optional[str] = None,
        max_attempts: int = 1,
    ) -> Optional[Connection]:
        """Return a connection, opening it if needed, and make it active.

        With neither argument the active connection (or the first registered
        one) is returned. With a configuration, a slot holding an equal
        configuration is reused; otherwise a new slot is created under
        ``connection_id`` or a generated ID and up to ``max_attempts``
        connects are tried. A slot that never connects keeps ``None`` as its
        handle and the failure is kept in :attr:`errors`. With only an ID,
        that slot's connection is returned.

        Raises:
            NoConnectionAvailable: No arguments and nothing registered.
            UnknownConnectionId: The ID is not registered.
            ConfigurationError: The configuration's driver has no adapter.
        """
        if config is None and not connection_id:
            return self._open_default()

        if config is not None:
            return self._open_config(config, connection_id, max(1, max_attempts))

        slot = self._slots.get(connection_id)
        if slot is None:
            raise UnknownConnectionId(connection_id)
        if slot.connection is not None:
            self._active = slot.connection
        return slot.connection

    change = open

    def open_named(
        self,
        app_config: SQLConduitConfig,
        db_name: Optional[str] = None,
        max_attempts: int = 1,
    ) -> Optional[Connection]:
        """Open a database declared in a loaded configuration, keyed by its name.

        Args:
            app_config: Loaded sqlconduit configuration.
            db_name: Database name. If None, uses the default database.
            max_attempts: Connect attempts before giving up.

        Raises:
            ConfigurationError: If the database is not declared.
        """
        if db_name is None:
            db_name = app_config.default_database

        if not db_name:
            raise ConfigurationError("No database specified and no default database configured")

        if db_name not in app_config.databases:
            available_dbs = list(app_config.databases.keys())
            raise ConfigurationError(
                f"Database '{db_name}' not found in configuration. "
                f"Available databases: {available_dbs}"
            )

        return self.open(app_config.databases[db_name], db_name, max_attempts)

    def _open_default(self) -> Connection:
        if not self._slots:
            raise NoConnectionAvailable(
                "Neither configuration nor ID was provided and there are no connections in the registry"
            )
        if self._active is None:
            for slot in self._slots.values():
                if slot.connection is not None:
                    self._active = slot.connection
                    break
            else:
                raise NoConnectionAvailable("No registered slot holds a live connection")
        return self._active

    def _open_config(
        self,
        config: DatabaseConfig,
        connection_id: Optional[str],
        max_attempts: int,
    ) -> Optional[Connection]:
        for key, slot in self._slots.items():
            if slot.config == config:
                if slot.connection is not None:
                    self._active = slot.connection
                    return slot.connection
                connection_id = key

        if not connection_id:
            connection_id = uuid.uuid4().hex

        slot = self._slots.get(connection_id)
        if slot is None or slot.config != config:
            if slot is not None:
                self._release(connection_id, slot)
            # the slot owns its copy; options are fixed at connect time
            config = config.model_copy(deep=True)
            slot = RegistrySlot(config=config, adapter=self._factory.create_adapter(config))
            self._slots[connection_id] = slot

        slot.connection = self._connect(connection_id, slot, max_attempts)
        if slot.connection is not None:
            self._active = slot.connection
        return slot.connection

    def _connect(self, connection_id: str, slot: RegistrySlot, max_attempts: int) -> Optional[Connection]:
        for attempt in range(1, max_attempts + 1):
            try:
                connection = slot.adapter.connect()
            except DatabaseError as e:
                cause = e.__cause__ or e
                self.errors[connection_id] = {
                    'code': getattr(cause, 'code', None),
                    'message': str(e),
                    'url': slot.config.build_url(hide_password=True),
                    'user': slot.config.username,
                    'options': dict(slot.config.options),
                    'attempt': attempt,
                }
                logger.warning(
                    f"Connection attempt {attempt}/{max_attempts} for `{connection_id}` failed: {e}"
                )
                continue

            self.errors.pop(connection_id, None)
            logger.info(f"Opened {slot.config.type.value} connection `{connection_id}`")
            return connection

        return None

    def close(self, config: Optional[DatabaseConfig] = None, connection_id: Optional[str] = None) -> None:
        """Close connections by ID and/or by configuration.

        An ID removes its whole slot. A configuration closes the connection of
        every slot holding an equal configuration but keeps the slots.
        """
        if connection_id and connection_id in self._slots:
            slot = self._slots.pop(connection_id)
            self._release(connection_id, slot)

        if config is not None:
            for key, slot in self._slots.items():
                if slot.config == config:
                    self._release(key, slot)

    def clear(self) -> None:
        """Close every connection and forget all slots."""
        for key, slot in list(self._slots.items()):
            self._release(key, slot)
        self._slots.clear()
        self.errors.clear()
        self._active = None

    def slots(self) -> Dict[str, RegistrySlot]:
        """Snapshot of the registered slots in insertion order."""
        return dict(self._slots)

    def get_status(self) -> Dict[str, Any]:
        """Get status of all registry slots."""
        status = {
            'total_slots': len(self._slots),
            'total_active': sum(1 for slot in self._slots.values() if slot.connection is not None),
            'connections': {},
        }

        for key, slot in self._slots.items():
            status['connections'][key] = {
                'active': slot.connection is not None,
                'current': slot.connection is not None and slot.connection is self._active,
                'type': slot.config.type.value,
                'url': slot.config.build_url(hide_password=True),
            }

        return status

    def last_error(self, connection_id: str) -> Optional[Dict[str, Any]]:
        """Details of the last failed connect for a slot, if any."""
        return self.errors.get(connection_id)

    def _release(self, connection_id: str, slot: RegistrySlot) -> None:
        if slot.connection is not None:
            if self._active is slot.connection:
                self._active = None
            try:
                slot.connection.close()
            except SQLAlchemyError as e:
                logger.warning(f"Error closing connection `{connection_id}`: {e}")
            slot.connection = None
        slot.adapter.close()
