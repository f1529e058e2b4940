"""
Migration Configuration Module

This module builds the MigrationConfig handed to the orchestrator. A config
can come from Airflow DAG params, from environment variables, or from an
application.properties file named by MIGRATION_PROPERTIES_FILE:

    source.conn.id=oracle_source
    target.conn.id=oracle_target
    source.materialized.views=SALES_MV,CUSTOMERS_MV
    target.table.names=SALES,CUSTOMERS

Database URLs and credentials (source.db.url, target.db.password, ...) are
not read from properties files; connections are Airflow connections.

Table lists accept Python lists, JSON strings or comma-separated strings.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
import json
import logging
import os

from oracle_mview_migration.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_CONN_ID = "oracle_source"
DEFAULT_TARGET_CONN_ID = "oracle_target"
DEFAULT_BATCH_SIZE = 1000

ON_ERROR_ABORT = "abort"
ON_ERROR_CONTINUE = "continue"
ON_ERROR_POLICIES = (ON_ERROR_ABORT, ON_ERROR_CONTINUE)

# Environment variable -> config field
ENV_KEYS = {
    "MIGRATION_SOURCE_CONN_ID": "source_conn_id",
    "MIGRATION_TARGET_CONN_ID": "target_conn_id",
    "SOURCE_MATERIALIZED_VIEWS": "source_tables",
    "TARGET_TABLE_NAMES": "target_tables",
    "MIGRATION_BATCH_SIZE": "batch_size",
    "MIGRATION_ON_TABLE_ERROR": "on_table_error",
    "MIGRATION_VALIDATE_ROW_COUNTS": "validate_row_counts",
}

# application.properties key -> config field
PROPERTY_KEYS = {
    "source.conn.id": "source_conn_id",
    "target.conn.id": "target_conn_id",
    "source.materialized.views": "source_tables",
    "target.table.names": "target_tables",
    "migration.batch.size": "batch_size",
    "migration.on.table.error": "on_table_error",
    "migration.validate.row.counts": "validate_row_counts",
}

# JDBC connection keys of older properties files; connections come from Airflow instead
CONNECTION_PROPERTY_KEYS = (
    "source.db.url",
    "source.db.username",
    "source.db.password",
    "target.db.url",
    "target.db.username",
    "target.db.password",
)

PROPERTIES_FILE_ENV = "MIGRATION_PROPERTIES_FILE"


@dataclass(frozen=True)
class MigrationConfig:
    """Everything a migration run needs besides live connections."""

    source_conn_id: str = DEFAULT_SOURCE_CONN_ID
    target_conn_id: str = DEFAULT_TARGET_CONN_ID
    source_tables: List[str] = field(default_factory=list)
    target_tables: List[str] = field(default_factory=list)
    batch_size: int = DEFAULT_BATCH_SIZE
    on_table_error: str = ON_ERROR_ABORT
    validate_row_counts: bool = False

    def validate(self) -> "MigrationConfig":
        """
        Check the config for values no run could succeed with.

        Returns:
            self, so calls can be chained

        Raises:
            ConfigurationError: On missing connection IDs, a non-positive
                batch size or an unknown error policy
        """
        if not self.source_conn_id:
            raise ConfigurationError("source_conn_id is required")
        if not self.target_conn_id:
            raise ConfigurationError("target_conn_id is required")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.on_table_error not in ON_ERROR_POLICIES:
            raise ConfigurationError(
                f"on_table_error must be one of {ON_ERROR_POLICIES}, got '{self.on_table_error}'"
            )
        return self

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "MigrationConfig":
        """
        Build a validated config from raw field values.

        Unknown keys are ignored; missing keys take their defaults.

        Raises:
            ConfigurationError: If a value cannot be parsed or fails validation
        """
        kwargs: Dict[str, Any] = {}

        for key in ("source_conn_id", "target_conn_id", "on_table_error"):
            if values.get(key) not in (None, ""):
                kwargs[key] = str(values[key]).strip()

        for key in ("source_tables", "target_tables"):
            if key in values:
                kwargs[key] = expand_table_list_param(values[key])

        if values.get("batch_size") not in (None, ""):
            try:
                kwargs["batch_size"] = int(values["batch_size"])
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid batch_size '{values['batch_size']}': {e}") from e

        if values.get("validate_row_counts") not in (None, ""):
            kwargs["validate_row_counts"] = _parse_bool(values["validate_row_counts"])

        return cls(**kwargs).validate()


def expand_table_list_param(raw) -> List[str]:
    """
    Normalize a table list from the formats DAG params and env vars use.

    Handles:
    - List of strings: ["SALES_MV", "CUSTOMERS_MV"]
    - JSON string: '["SALES_MV", "CUSTOMERS_MV"]'
    - Comma-separated string: "SALES_MV,CUSTOMERS_MV"
    - List with comma-separated items: ["SALES_MV,CUSTOMERS_MV"]

    Args:
        raw: Raw parameter value

    Returns:
        List of table names, order preserved

    Raises:
        ConfigurationError: If the value has an unsupported type
    """
    if raw is None:
        return []

    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
            raw = parsed if isinstance(parsed, list) else [str(parsed)]
        except json.JSONDecodeError:
            raw = [raw]

    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError(
            f"Table list must be a list or string, got {type(raw).__name__}"
        )

    expanded = []
    for item in raw:
        if not isinstance(item, str):
            raise ConfigurationError(f"Table names must be strings, got {item!r}")
        expanded.extend(t.strip() for t in item.split(',') if t.strip())
    return expanded


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> MigrationConfig:
    """Build a config from MIGRATION_* / table-list environment variables."""
    environ = os.environ if environ is None else environ
    return MigrationConfig.from_mapping(_values_from_env(environ))


def load_config_from_properties(path: str) -> MigrationConfig:
    """
    Build a config from a Java-style application.properties file.

    Raises:
        ConfigurationError: If the file cannot be read, holds invalid values,
            or carries database URLs/credentials without connection IDs
    """
    return MigrationConfig.from_mapping(_values_from_properties(path))


def load_default_config(environ: Optional[Mapping[str, str]] = None) -> MigrationConfig:
    """
    Build the config a DAG run starts from.

    Values come from the properties file named by MIGRATION_PROPERTIES_FILE,
    if set, overridden by any MIGRATION_* / table-list environment variables.

    Raises:
        ConfigurationError: If the file or any value is invalid
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    path = environ.get(PROPERTIES_FILE_ENV)
    if path:
        values.update(_values_from_properties(path))
    values.update(_values_from_env(environ))
    return MigrationConfig.from_mapping(values)


def _values_from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    return {
        field_name: environ[env_key]
        for env_key, field_name in ENV_KEYS.items()
        if env_key in environ
    }


def _values_from_properties(path: str) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            properties = parse_properties(f.read())
    except OSError as e:
        raise ConfigurationError(f"Error loading properties from {path}: {e}") from e

    logger.info(f"Loaded {len(properties)} properties from {path}")

    connection_keys = [key for key in CONNECTION_PROPERTY_KEYS if key in properties]
    if connection_keys:
        if "source.conn.id" not in properties or "target.conn.id" not in properties:
            raise ConfigurationError(
                f"{path} sets {', '.join(connection_keys)}, but connections are read from "
                f"Airflow; create Airflow connections and set source.conn.id and target.conn.id"
            )
        logger.warning(f"Ignoring {', '.join(connection_keys)} in {path}; using Airflow connections")

    return {
        field_name: properties[key]
        for key, field_name in PROPERTY_KEYS.items()
        if key in properties
    }


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse simple key=value properties text.

    Blank lines and lines starting with '#' or '!' are skipped; ':' is
    accepted as a separator when no '=' is present.
    """
    properties = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line[0] in "#!":
            continue
        separator = "=" if "=" in line else ":"
        if separator not in line:
            properties[line] = ""
            continue
        key, value = line.split(separator, 1)
        properties[key.strip()] = value.strip()
    return properties


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"Invalid boolean value '{value}'")
