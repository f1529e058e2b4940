"""
Column Type Mapping Module

This module turns the type name, precision and scale a driver reports for a
source column into a column declaration for the target CREATE TABLE.

Types are grouped into families; each family decides which qualifier (length,
precision/scale or none) the declaration carries. Dialect tables only rename
the base type for targets that do not understand Oracle type names.
"""

from enum import Enum
from typing import Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class TypeFamily(Enum):
    """Closed set of type families a column can belong to."""

    CHARACTER = "character"
    FIXED_POINT = "fixed_point"
    INTEGER_DECIMAL = "integer_decimal"
    UNSIZED_DECIMAL = "unsized_decimal"
    OTHER = "other"


DECIMAL_TYPES = frozenset({"NUMBER", "NUMERIC", "DECIMAL"})

# Base type renames per target dialect. Types not listed keep their name.
DIALECT_TYPE_NAMES: Dict[str, Dict[str, str]] = {
    "oracle": {},
    "postgresql": {
        # Character types
        "VARCHAR2": "VARCHAR",
        "NVARCHAR2": "VARCHAR",
        "NCHAR": "CHAR",
        "CLOB": "TEXT",
        "NCLOB": "TEXT",
        "LONG": "TEXT",

        # Numeric types
        "NUMBER": "NUMERIC",
        "BINARY_FLOAT": "REAL",
        "BINARY_DOUBLE": "DOUBLE PRECISION",
        "FLOAT": "DOUBLE PRECISION",

        # Binary types
        "BLOB": "BYTEA",
        "RAW": "BYTEA",
        "LONG RAW": "BYTEA",

        # Date and time types (Oracle DATE carries a time component)
        "DATE": "TIMESTAMP",
        "TIMESTAMP WITH LOCAL TIME ZONE": "TIMESTAMP WITH TIME ZONE",

        # Other
        "ROWID": "VARCHAR",
        "UROWID": "VARCHAR",
        "XMLTYPE": "XML",
    },
}


def _normalize(native_type: Optional[str]) -> str:
    return (native_type or "").strip().upper()


def classify_type(native_type: Optional[str], precision: Optional[int] = 0, scale: Optional[int] = 0) -> TypeFamily:
    """
    Assign a column to its type family.

    Args:
        native_type: Type name as reported by the source driver
        precision: Reported precision (or length for character types)
        scale: Reported scale

    Returns:
        The TypeFamily the column belongs to
    """
    type_name = _normalize(native_type)
    precision = precision or 0
    scale = scale or 0

    if "CHAR" in type_name:
        return TypeFamily.CHARACTER
    if type_name in DECIMAL_TYPES:
        if precision <= 0:
            return TypeFamily.UNSIZED_DECIMAL
        if scale > 0:
            return TypeFamily.FIXED_POINT
        return TypeFamily.INTEGER_DECIMAL
    return TypeFamily.OTHER


QUALIFIERS: Dict[TypeFamily, Callable[[int, int], str]] = {
    TypeFamily.CHARACTER: lambda precision, scale: f"({precision})",
    TypeFamily.FIXED_POINT: lambda precision, scale: f"({precision},{scale})",
    TypeFamily.INTEGER_DECIMAL: lambda precision, scale: f"({precision})",
    TypeFamily.UNSIZED_DECIMAL: lambda precision, scale: "",
    TypeFamily.OTHER: lambda precision, scale: "",
}


def map_column_type(
    native_type: Optional[str],
    precision: Optional[int] = 0,
    scale: Optional[int] = 0,
    dialect: str = "oracle"
) -> str:
    """
    Map a source column type to a target column declaration.

    Never raises: unknown types and unknown dialects fall through to the
    source type name without a qualifier.

    Args:
        native_type: Type name as reported by the source driver (e.g. VARCHAR2)
        precision: Reported precision or character length
        scale: Reported scale
        dialect: Target dialect used to rename the base type

    Returns:
        Column type declaration, e.g. "VARCHAR2(50)" or "NUMBER(10,2)"

    Examples:
        >>> map_column_type("VARCHAR2", 50, 0)
        'VARCHAR2(50)'
        >>> map_column_type("NUMBER", 10, 2)
        'NUMBER(10,2)'
        >>> map_column_type("NUMBER", 0, 0, dialect="postgresql")
        'NUMERIC'
    """
    type_name = _normalize(native_type)
    precision = precision or 0
    scale = scale or 0

    family = classify_type(type_name, precision, scale)
    base_name = DIALECT_TYPE_NAMES.get(dialect, {}).get(type_name, type_name)

    return base_name + QUALIFIERS[family](precision, scale)


def get_supported_dialects() -> list:
    """Return the dialect names map_column_type knows how to rename for."""
    return list(DIALECT_TYPE_NAMES.keys())
