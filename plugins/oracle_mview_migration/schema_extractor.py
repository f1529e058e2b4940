"""
Source Schema Extraction Module

This module reads the shape of source relations (tables, views and
materialized views) so that a matching target table can be created.

Column metadata is taken from the result shape of a probe query that never
returns rows, so reflection cost does not depend on table size.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from oracle_mview_migration.exceptions import SchemaError
from oracle_mview_migration.utils import unqualified_name, validate_table_name

logger = logging.getLogger(__name__)


# Catalog queries listing materialized views, in the order the catalog returns them
DISCOVERY_QUERIES = {
    "oracle": "SELECT MVIEW_NAME FROM USER_MVIEWS",
    "postgresql": "SELECT matviewname FROM pg_matviews WHERE schemaname = current_schema()",
}

# Schema an unqualified name resolves to
CURRENT_SCHEMA_QUERIES = {
    "oracle": "SELECT SYS_CONTEXT('USERENV', 'CURRENT_SCHEMA') FROM DUAL",
    "postgresql": "SELECT current_schema()",
}

# Case the catalog stores unquoted identifiers in
CATALOG_NAME_CASE = {
    "oracle": str.upper,
    "postgresql": str.lower,
}

# psycopg2 reports built-in type OIDs as type codes
POSTGRES_TYPE_OIDS = {
    16: "BOOLEAN",
    17: "BYTEA",
    20: "BIGINT",
    21: "SMALLINT",
    23: "INTEGER",
    25: "TEXT",
    114: "JSON",
    142: "XML",
    700: "REAL",
    701: "DOUBLE PRECISION",
    1042: "CHAR",
    1043: "VARCHAR",
    1082: "DATE",
    1083: "TIME",
    1114: "TIMESTAMP",
    1184: "TIMESTAMPTZ",
    1186: "INTERVAL",
    1700: "NUMERIC",
    2950: "UUID",
    3802: "JSONB",
}

# Largest declared NUMERIC precision; psycopg2 reports 65535 for unconstrained NUMERIC
POSTGRES_MAX_NUMERIC_PRECISION = 1000

# Last-resort type names when the driver only reports a Python type
PYTHON_TYPE_NAMES = {
    str: "VARCHAR",
    int: "INTEGER",
    float: "FLOAT",
    Decimal: "NUMERIC",
    bool: "BOOLEAN",
    datetime: "TIMESTAMP",
    date: "DATE",
    time: "TIME",
    bytes: "BLOB",
    bytearray: "BLOB",
}


@dataclass(frozen=True)
class ColumnDescriptor:
    """Snapshot of one source column, taken once per table."""

    name: str
    native_type: str
    precision: int
    scale: int
    ordinal_position: int


def discover_tables(connection, dialect: str = "oracle") -> List[str]:
    """
    List the materialized views visible to the source connection.

    Args:
        connection: DB-API connection to the source database
        dialect: Source dialect, selects the catalog query

    Returns:
        Materialized view names in catalog order

    Raises:
        SchemaError: If the dialect has no catalog query or the query fails
    """
    query = DISCOVERY_QUERIES.get(dialect)
    if query is None:
        raise SchemaError(
            f"Materialized view discovery is not supported for dialect '{dialect}'",
            phase="discover",
        )

    cursor = connection.cursor()
    try:
        cursor.execute(query)
        names = [row[0] for row in cursor.fetchall()]
    except Exception as e:
        logger.error(f"Error discovering materialized views: {e}")
        logger.error(f"Query: {query}")
        raise SchemaError(f"Could not list materialized views: {e}", phase="discover") from e
    finally:
        cursor.close()

    logger.info(f"Discovered {len(names)} materialized views: {names}")
    return names


def describe_columns(connection, table_name: str, dialect: str = "oracle") -> List[ColumnDescriptor]:
    """
    Describe the columns of a source relation without fetching any rows.

    Args:
        connection: DB-API connection to the source database
        table_name: Table, view or materialized view name (optionally schema-qualified)
        dialect: Source dialect, selects how catalog names are resolved

    Returns:
        Column descriptors in ordinal order

    Raises:
        SchemaError: If the relation does not exist, is inaccessible,
            or a column type cannot be determined
    """
    try:
        validate_table_name(table_name)
    except ValueError as e:
        raise SchemaError(str(e), table=table_name, phase="describe") from e

    probe_sql = f"SELECT * FROM {table_name} WHERE 1 = 0"

    cursor = connection.cursor()
    try:
        cursor.execute(probe_sql)
        description = list(cursor.description or [])
        catalog = _catalog_columns(cursor, table_name, dialect)
    except Exception as e:
        logger.error(f"Error describing {table_name}: {e}")
        logger.error(f"Query: {probe_sql}")
        raise SchemaError(
            f"Could not describe {table_name}: {e}", table=table_name, phase="describe"
        ) from e
    finally:
        cursor.close()

    if not description:
        raise SchemaError(f"{table_name} reported no columns", table=table_name, phase="describe")

    columns = []
    for position, column in enumerate(description, start=1):
        name, type_code = column[0], column[1]
        internal_size = column[3] if len(column) > 3 else None
        precision = column[4] if len(column) > 4 else None
        scale = column[5] if len(column) > 5 else None

        catalog_entry = catalog.get(name.upper(), {})
        native_type = catalog_entry.get('type_name') or _type_name_from_code(type_code)
        if not native_type:
            raise SchemaError(
                f"Cannot determine the type of column {name} in {table_name}",
                table=table_name,
                phase="describe",
            )

        if not precision:
            precision = catalog_entry.get('column_size')
        # psycopg2 reports character length only as internal_size (-1 when unbounded)
        if not precision and internal_size and internal_size > 0 and "CHAR" in native_type.upper():
            precision = internal_size
        if scale is None:
            scale = catalog_entry.get('decimal_digits')
        if native_type == "NUMERIC" and (precision or 0) > POSTGRES_MAX_NUMERIC_PRECISION:
            precision, scale = 0, 0

        columns.append(ColumnDescriptor(
            name=name,
            native_type=native_type,
            precision=int(precision or 0),
            scale=int(scale or 0),
            ordinal_position=position,
        ))

    logger.info(
        f"Described {table_name}: "
        + ", ".join(f"{c.name} {c.native_type}" for c in columns)
    )
    return columns


def _catalog_columns(cursor, table_name: str, dialect: str = "oracle") -> Dict[str, Dict[str, Any]]:
    """
    Read column type names from the ODBC catalog, keyed by upper-cased name.

    Only pyodbc cursors expose the catalog; other drivers return an empty map.
    Rows are restricted to the schema the probe resolved the name in, so a
    same-named relation owned by another user never contributes types.
    """
    if not hasattr(cursor, "columns"):
        return {}

    fold = CATALOG_NAME_CASE.get(dialect, str.upper)
    if '.' in table_name:
        schema = table_name.split('.', 1)[0]
    else:
        schema = _current_schema(cursor, dialect)
    if not schema:
        logger.warning(f"Could not resolve the schema of {table_name}; skipping catalog type names")
        return {}

    schema = fold(schema)
    rows = cursor.columns(table=fold(unqualified_name(table_name)), schema=schema).fetchall()
    return {
        row.column_name.upper(): {
            'type_name': row.type_name,
            'column_size': row.column_size,
            'decimal_digits': row.decimal_digits,
        }
        for row in rows
        # The catalog's schema argument is a LIKE pattern
        if (row.table_schem or '') == schema
    }


def _current_schema(cursor, dialect: str) -> Optional[str]:
    query = CURRENT_SCHEMA_QUERIES.get(dialect)
    if query is None:
        return None
    cursor.execute(query)
    row = cursor.fetchone()
    return row[0] if row else None


def _type_name_from_code(type_code: Any) -> Optional[str]:
    """Derive a type name from a cursor.description type code."""
    if isinstance(type_code, type):
        return PYTHON_TYPE_NAMES.get(type_code)

    if isinstance(type_code, int) and not isinstance(type_code, bool):
        return POSTGRES_TYPE_OIDS.get(type_code)

    # python-oracledb reports DbType objects named like DB_TYPE_VARCHAR
    name = getattr(type_code, "name", None)
    if isinstance(name, str) and name:
        if name.startswith("DB_TYPE_"):
            name = name[len("DB_TYPE_"):]
        return name.replace("_", " ")

    return None
