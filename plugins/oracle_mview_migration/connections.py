"""
Database Connection Provider

This module turns Airflow connection IDs into live DB-API connections for the
migration core. Credentials and hosts stay in Airflow; the core only ever
sees an open connection, its SQL dialect and its bind placeholder.

- conn_type "postgres": opened through PostgresHook (psycopg2, %s binds)
- anything else: opened through pyodbc with an ODBC driver (? binds), which
  is how Oracle sources and targets are reached
"""

from dataclasses import dataclass
from typing import Any, Optional
import contextlib
import logging

from airflow.hooks.base import BaseHook
from airflow.providers.postgres.hooks.postgres import PostgresHook
import pyodbc

from oracle_mview_migration.exceptions import ConfigurationError, DatabaseConnectionError
from oracle_mview_migration.type_mapping import get_supported_dialects

logger = logging.getLogger(__name__)

DEFAULT_ODBC_DRIVER = "{Oracle 21 ODBC driver}"
DEFAULT_ORACLE_PORT = 1521


@dataclass
class DatabaseHandle:
    """A live connection plus what the core needs to generate SQL for it."""

    connection: Any
    dialect: str
    placeholder: str
    conn_id: Optional[str] = None

    def close(self) -> None:
        self.connection.close()


class OdbcConnectionHelper:
    """
    Build pyodbc connections from an Airflow connection.

    Connection fields map to the Oracle ODBC driver's keywords:
    host/port/schema -> DBQ=host:port/service, login -> UID, password -> PWD.
    The extra field may override the ODBC "driver" and the SQL "dialect".
    """

    def __init__(self, odbc_conn_id: str):
        """
        Initialize the ODBC connection helper.

        Args:
            odbc_conn_id: Airflow connection ID for the database
        """
        self.conn_id = odbc_conn_id
        self._conn_config = None
        self._extra = None

    def _get_airflow_connection(self):
        conn = BaseHook.get_connection(self.conn_id)
        self._extra = conn.extra_dejson or {}
        return conn

    def _get_connection_config(self) -> dict:
        """
        Get connection configuration from Airflow connection.

        Returns:
            Dictionary with ODBC connection parameters
        """
        if self._conn_config is None:
            conn = self._get_airflow_connection()

            port = conn.port or DEFAULT_ORACLE_PORT
            self._conn_config = {
                'DRIVER': self._extra.get('driver', DEFAULT_ODBC_DRIVER),
                'DBQ': f"{conn.host}:{port}/{conn.schema}" if conn.schema else f"{conn.host}:{port}",
                'UID': conn.login,
                'PWD': conn.password or '',
            }

        return self._conn_config

    def _build_connection_string(self) -> str:
        """
        Build ODBC connection string from configuration.

        Returns:
            ODBC connection string
        """
        config = self._get_connection_config()
        return ';'.join([f"{k}={v}" for k, v in config.items() if v])

    @property
    def dialect(self) -> str:
        self._get_connection_config()
        return self._extra.get('dialect', 'oracle')

    def get_conn(self) -> pyodbc.Connection:
        """
        Get a pyodbc connection to the database.

        Returns:
            pyodbc Connection object
        """
        return pyodbc.connect(self._build_connection_string())


class ConnectionFactory:
    """Open DatabaseHandles from Airflow connection IDs."""

    def connect(self, conn_id: str) -> DatabaseHandle:
        """
        Open a connection for an Airflow connection ID.

        Args:
            conn_id: Airflow connection ID

        Returns:
            DatabaseHandle wrapping the open connection

        Raises:
            ConfigurationError: If the connection names an unsupported dialect
            DatabaseConnectionError: If the connection cannot be established
        """
        try:
            airflow_conn = BaseHook.get_connection(conn_id)
        except Exception as e:
            raise DatabaseConnectionError(f"Unknown Airflow connection '{conn_id}': {e}") from e

        if airflow_conn.conn_type == "postgres":
            dialect = "postgresql"
            placeholder = "%s"
            opener = PostgresHook(postgres_conn_id=conn_id).get_conn
        else:
            helper = OdbcConnectionHelper(conn_id)
            dialect = helper.dialect
            placeholder = "?"
            opener = helper.get_conn

        if dialect not in get_supported_dialects():
            raise ConfigurationError(
                f"Connection '{conn_id}' uses unsupported dialect '{dialect}'; "
                f"expected one of {get_supported_dialects()}"
            )

        try:
            connection = opener()
        except Exception as e:
            logger.error(f"Could not connect to '{conn_id}': {e}")
            raise DatabaseConnectionError(f"Could not connect to '{conn_id}': {e}") from e

        logger.info(f"Connected to '{conn_id}' ({dialect})")
        return DatabaseHandle(connection=connection, dialect=dialect, placeholder=placeholder, conn_id=conn_id)

    @contextlib.contextmanager
    def open(self, conn_id: str):
        """Yield a DatabaseHandle and close it on every exit path."""
        handle = self.connect(conn_id)
        try:
            yield handle
        finally:
            handle.close()
            logger.info(f"Closed connection '{conn_id}'")
