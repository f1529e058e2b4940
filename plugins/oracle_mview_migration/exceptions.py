"""
Migration Error Taxonomy

Every failure raised by the migration pipeline derives from MigrationError so
callers (the DAG, scripts) can report which table and which phase failed.
Driver exceptions are always chained as __cause__.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for all migration failures."""

    def __init__(self, message: str, table: Optional[str] = None, phase: Optional[str] = None):
        super().__init__(message)
        self.table = table
        self.phase = phase


class ConfigurationError(MigrationError):
    """Missing or malformed connection or table-list input."""


class DatabaseConnectionError(MigrationError):
    """Source or target connection could not be established."""


class SchemaError(MigrationError):
    """Reflection of a source relation failed."""


class ProvisioningError(MigrationError):
    """CREATE TABLE failed on the target. A failed DROP is not an error."""


class TransferError(MigrationError):
    """A batch execute or commit failed mid-transfer."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        phase: Optional[str] = "transfer",
        rows_committed: int = 0,
    ):
        super().__init__(message, table=table, phase=phase)
        self.rows_committed = rows_committed
