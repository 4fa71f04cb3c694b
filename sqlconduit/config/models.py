"""Pydantic models for sqlconduit configuration."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings


class DatabaseType(str, Enum):
    """Supported database drivers."""
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


# Options the registry forces at connect time; callers may not override them.
RESTRICTED_OPTIONS: Dict[DatabaseType, frozenset] = {
    DatabaseType.MYSQL: frozenset({"client_flag", "autocommit", "local_infile"}),
    DatabaseType.POSTGRESQL: frozenset({"autocommit"}),
    DatabaseType.SQLITE: frozenset({"check_same_thread"}),
}


class DatabaseConfig(BaseModel):
    """Database connection configuration.

    Instances are immutable and compare structurally, so two configurations
    built from the same values resolve to the same registry slot.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: DatabaseType = Field(validation_alias=AliasChoices("type", "driver"))
    host: str = "localhost"
    port: Optional[int] = None
    socket: Optional[str] = None
    database: Optional[str] = None
    username: Optional[str] = Field(default=None, validation_alias=AliasChoices("username", "user"))
    password: SecretStr = Field(default=SecretStr(""), exclude=True, repr=False)
    charset: str = "utf8mb4"
    options: Dict[str, Any] = Field(default_factory=dict)
    init_commands: List[str] = Field(
        default_factory=list,
        description="Statements run on every new DBAPI connection",
    )

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('host')
    def validate_host(cls, v):
        """Fall back to localhost for an empty host."""
        return v or "localhost"

    @model_validator(mode='after')
    def validate_database_config(self):
        """Validate driver-specific required fields and restricted options."""
        if not self.database:
            raise ValueError(f"{self.type.value} databases require 'database' field")
        if self.type != DatabaseType.SQLITE and not self.username:
            raise ValueError(f"{self.type.value} databases require 'username' field")

        restricted = RESTRICTED_OPTIONS.get(self.type, frozenset()) & set(self.options)
        if restricted:
            raise ValueError(f"Attempted to set restricted options: {sorted(restricted)}")
        return self

    def build_url(self, hide_password: bool = True) -> str:
        """Render the connection URL for this configuration's dialect."""
        from sqlconduit.db.connection import AdapterFactory

        url = AdapterFactory.create_adapter(self).build_url()
        return url.render_as_string(hide_password=hide_password)


class ExecutorSettings(BaseModel):
    """Retry and diagnostics settings for the query executor."""
    max_tries: int = Field(default=5, ge=1, le=100, description="Attempts allowed when a deadlock is hit")
    retry_sleep: float = Field(default=5.0, ge=0.0, le=600.0, description="Seconds to wait between deadlock retries")
    debug: bool = Field(default=False, description="Log every statement with its bound parameters")


class SQLConduitConfig(BaseModel):
    """Main configuration model for sqlconduit."""
    databases: Dict[str, DatabaseConfig] = Field(default_factory=dict)
    default_database: Optional[str] = None
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)

    @model_validator(mode='after')
    def validate_default_database(self):
        """Ensure default_database exists in databases."""
        if self.default_database and self.default_database not in self.databases:
            raise ValueError(f"default_database '{self.default_database}' not found in databases")
        return self

    @model_validator(mode='after')
    def set_default_database(self):
        """Set default database if not specified."""
        if not self.default_database and self.databases:
            self.default_database = next(iter(self.databases))
        return self


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)

    class Config:
        env_prefix = "SQLCONDUIT_"
        case_sensitive = False
