"""MySQL database adapter."""

from typing import Any, Dict

from sqlalchemy.engine import URL

from sqlconduit.db.base import BaseAdapter


class MySQLAdapter(BaseAdapter):
    """MySQL database adapter."""

    DEFAULT_PORT = 3306

    def get_driver_name(self) -> str:
        """Get the driver name for MySQL."""
        return "pymysql"

    def build_url(self) -> URL:
        """Build MySQL connection URL, preferring the unix socket when one is set."""
        query = {'charset': self.config.charset or 'utf8mb4'}
        if self.config.socket:
            query['unix_socket'] = self.config.socket

        return URL.create(
            f"mysql+{self.get_driver_name()}",
            username=self.config.username,
            password=self.config.password.get_secret_value() or None,
            host=None if self.config.socket else self.config.host,
            port=None if self.config.socket else (self.config.port or self.DEFAULT_PORT),
            database=self.config.database,
            query=query,
        )

    def get_forced_connect_args(self) -> Dict[str, Any]:
        """Single statements only, no LOCAL INFILE, explicit transactions."""
        # client_flag=0 leaves MULTI_STATEMENTS off; pymysql cursors are buffered
        return {
            'client_flag': 0,
            'local_infile': False,
            'autocommit': False,
        }

    def apply_session_settings(self, dbapi_connection: Any) -> None:
        dbapi_connection.autocommit(False)

    def random_function(self) -> str:
        return "RAND()"
