"""PostgreSQL database adapter."""

from typing import Any, Dict

from sqlalchemy.engine import URL

from sqlconduit.db.base import BaseAdapter


class PostgreSQLAdapter(BaseAdapter):
    """PostgreSQL database adapter."""

    DEFAULT_PORT = 5432

    def get_driver_name(self) -> str:
        """Get the driver name for PostgreSQL."""
        return "psycopg2"

    def build_url(self) -> URL:
        """Build PostgreSQL connection URL.

        A configured socket is the directory holding the server socket and is
        passed as the ``host`` query argument.
        """
        query = {}
        if self.config.socket:
            query['host'] = self.config.socket

        return URL.create(
            f"postgresql+{self.get_driver_name()}",
            username=self.config.username,
            password=self.config.password.get_secret_value() or None,
            host=None if self.config.socket else self.config.host,
            port=None if self.config.socket else (self.config.port or self.DEFAULT_PORT),
            database=self.config.database,
            query=query,
        )

    def get_connect_args(self) -> Dict[str, Any]:
        connect_args = {
            'connect_timeout': 10,
            'application_name': 'sqlconduit',
            'sslmode': 'prefer',
        }
        connect_args.update(super().get_connect_args())
        return connect_args

    def apply_session_settings(self, dbapi_connection: Any) -> None:
        dbapi_connection.autocommit = False
