"""
Target Table Provisioning Module

This module prepares target tables to receive transferred rows: any existing
table with the target name is dropped and a fresh one is created from the
reflected source columns.

WARNING: provisioning is destructive. An existing target table of the same
name and all of its data are discarded before the table is recreated, on
every run, whether or not the subsequent transfer succeeds.
"""

from enum import Enum
from typing import List, Sequence
import logging

from oracle_mview_migration.exceptions import ProvisioningError
from oracle_mview_migration.schema_extractor import ColumnDescriptor
from oracle_mview_migration.type_mapping import map_column_type
from oracle_mview_migration.utils import render_column_name, validate_table_name

logger = logging.getLogger(__name__)


class DropOutcome(Enum):
    """Result of the drop step of provisioning."""

    DROPPED = "dropped"
    ABSENT = "absent"
    FAILED = "failed"


class TableProvisioner:
    """Drop and recreate target tables from reflected column metadata."""

    def __init__(self, connection, dialect: str = "oracle"):
        """
        Initialize the provisioner.

        Args:
            connection: DB-API connection to the target database
            dialect: Target dialect passed to the type mapper
        """
        self.connection = connection
        self.dialect = dialect

    def generate_create_table(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> str:
        """
        Generate the CREATE TABLE statement for a target table.

        Args:
            table_name: Target table name
            columns: Reflected source columns

        Returns:
            CREATE TABLE DDL statement with columns in ordinal order
        """
        ordered = sorted(columns, key=lambda c: c.ordinal_position)
        column_definitions = [
            f"{render_column_name(c.name)} "
            f"{map_column_type(c.native_type, c.precision, c.scale, self.dialect)}"
            for c in ordered
        ]
        return f"CREATE TABLE {table_name} ({', '.join(column_definitions)})"

    def generate_drop_table(self, table_name: str) -> str:
        return f"DROP TABLE {table_name}"

    def table_exists(self, table_name: str) -> bool:
        """
        Check whether the target table is visible to the connection.

        Args:
            table_name: Target table name

        Returns:
            True if a zero-row probe against the table succeeds
        """
        cursor = self.connection.cursor()
        try:
            cursor.execute(f"SELECT 1 FROM {table_name} WHERE 1 = 0")
            return True
        except Exception:
            # Clears the aborted transaction on drivers that require it
            self.connection.rollback()
            return False
        finally:
            cursor.close()

    def drop_table(self, table_name: str) -> DropOutcome:
        """
        Drop the target table if it exists.

        A failed drop is logged and reported, never raised: provisioning
        continues and CREATE TABLE decides whether the table is usable.

        Args:
            table_name: Target table name

        Returns:
            DropOutcome describing what happened
        """
        if not self.table_exists(table_name):
            logger.info(f"Table doesn't exist yet: {table_name}")
            return DropOutcome.ABSENT

        drop_sql = self.generate_drop_table(table_name)
        cursor = self.connection.cursor()
        try:
            cursor.execute(drop_sql)
            self.connection.commit()
        except Exception as e:
            self.connection.rollback()
            logger.warning(f"Could not drop existing table {table_name}: {e}")
            return DropOutcome.FAILED
        finally:
            cursor.close()

        logger.info(f"Dropped existing table: {table_name}")
        return DropOutcome.DROPPED

    def create_table(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> None:
        """
        Create the target table.

        Raises:
            ProvisioningError: If the CREATE TABLE statement fails
        """
        create_sql = self.generate_create_table(table_name, columns)
        logger.info(f"Executing DDL: {create_sql[:200]}")

        cursor = self.connection.cursor()
        try:
            cursor.execute(create_sql)
            self.connection.commit()
        except Exception as e:
            self.connection.rollback()
            logger.error(f"Failed to create table {table_name}: {e}")
            raise ProvisioningError(
                f"Could not create table {table_name}: {e}", table=table_name, phase="provision"
            ) from e
        finally:
            cursor.close()

        logger.info(f"Created table: {table_name}")

    def provision(self, table_name: str, columns: Sequence[ColumnDescriptor]) -> DropOutcome:
        """
        Drop (best effort) and recreate a target table.

        Args:
            table_name: Target table name
            columns: Reflected source columns

        Returns:
            Outcome of the drop step

        Raises:
            ProvisioningError: If the table name is invalid, no columns were
                given, or CREATE TABLE fails
        """
        try:
            validate_table_name(table_name)
        except ValueError as e:
            raise ProvisioningError(str(e), table=table_name, phase="provision") from e

        if not columns:
            raise ProvisioningError(
                f"No columns to create {table_name} with", table=table_name, phase="provision"
            )

        outcome = self.drop_table(table_name)
        self.create_table(table_name, columns)
        return outcome


def provision(
    connection,
    table_name: str,
    columns: List[ColumnDescriptor],
    dialect: str = "oracle"
) -> DropOutcome:
    """
    Drop and recreate a target table on the given connection.

    Convenience wrapper around TableProvisioner.provision().
    """
    return TableProvisioner(connection, dialect).provision(table_name, columns)
