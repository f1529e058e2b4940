"""
Utility functions for the materialized view migration pipeline.

Table and column names are interpolated into generated SQL (DDL and the
probe/select statements), so they are validated here first.
"""

import re

# Oracle allows $ and # after the first character of an unquoted identifier
_IDENTIFIER_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_$#]*$')


def validate_sql_identifier(identifier: str, identifier_type: str = "identifier") -> str:
    """
    Validate a SQL identifier before it is interpolated into a statement.

    Args:
        identifier: The identifier to validate
        identifier_type: Type description for error messages (e.g., "table name")

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        ValueError: If the identifier is invalid

    Rules:
        - Non-empty
        - Max 128 characters (Oracle 12.2+ limit)
        - Must start with letter or underscore
        - Can contain only alphanumeric characters, underscores, $ and #

    Examples:
        >>> validate_sql_identifier("SALES_MV")
        'SALES_MV'
        >>> validate_sql_identifier("drop; --")  # doctest: +SKIP
        ValueError: Invalid identifier 'drop; --': must start with letter or underscore
    """
    if not identifier:
        raise ValueError(f"Invalid {identifier_type}: cannot be empty")

    if len(identifier) > 128:
        raise ValueError(
            f"Invalid {identifier_type}: exceeds maximum length of 128 characters "
            f"(got {len(identifier)} characters)"
        )

    if not _IDENTIFIER_PATTERN.match(identifier):
        raise ValueError(
            f"Invalid {identifier_type} '{identifier}': must start with letter or underscore "
            "and contain only alphanumeric characters, underscores, $ and #"
        )

    return identifier


def validate_table_name(table_name: str) -> str:
    """
    Validate a table name that may be schema-qualified ("SCHEMA.TABLE").

    Args:
        table_name: Plain or schema-qualified table name

    Returns:
        The validated table name (unchanged if valid)

    Raises:
        ValueError: If either part is invalid
    """
    if not table_name:
        raise ValueError("Invalid table name: cannot be empty")

    parts = table_name.split('.')
    if len(parts) > 2:
        raise ValueError(
            f"Invalid table name '{table_name}': must be 'table' or 'schema.table'"
        )
    for part in parts:
        validate_sql_identifier(part, "table name")

    return table_name


def render_column_name(column_name: str) -> str:
    """
    Render a column name for generated DDL and DML.

    Plain identifiers are emitted as-is so Oracle keeps its case folding;
    anything else is double-quoted with embedded quotes doubled.

    Examples:
        >>> render_column_name("ORDER_ID")
        'ORDER_ID'
        >>> render_column_name("Order Date")
        '"Order Date"'
    """
    if _IDENTIFIER_PATTERN.match(column_name):
        return column_name
    escaped = column_name.replace('"', '""')
    return f'"{escaped}"'


def unqualified_name(table_name: str) -> str:
    """
    Strip the schema prefix from a table name.

    Examples:
        >>> unqualified_name("REPORTING.SALES_MV")
        'SALES_MV'
        >>> unqualified_name("SALES_MV")
        'SALES_MV'
    """
    return table_name.rsplit('.', 1)[-1]
