"""
Data Transfer Module

This module copies every row of a source relation into a provisioned target
table in fixed-size batches. Each batch is executed and committed as one
target transaction, so a failure loses at most the batch in flight; batches
committed before it stay in the target table.

Values are carried as the source driver returns them and bound positionally;
no type coercion happens here.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple
import contextlib
import logging
import time

from oracle_mview_migration.exceptions import ConfigurationError, TransferError
from oracle_mview_migration.schema_extractor import ColumnDescriptor
from oracle_mview_migration.utils import render_column_name

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

# Name of the psycopg2 server-side cursor used to stream PostgreSQL sources
SERVER_CURSOR_NAME = "oracle_mview_migration_read"


@dataclass
class BatchCursor:
    """Per-table transfer progress. Discarded when the table is done."""

    rows_buffered: int = 0
    rows_committed: int = 0
    batches_committed: int = 0
    flushes: int = 0


@contextlib.contextmanager
def autocommit_disabled(connection):
    """
    Turn auto-commit off for the duration of the block.

    The previous auto-commit value is restored on every exit path.
    """
    previous = connection.autocommit
    connection.autocommit = False
    try:
        yield connection
    finally:
        connection.autocommit = previous


def build_select(table_name: str, columns: Sequence[ColumnDescriptor]) -> str:
    """Build the source SELECT with columns in ordinal order."""
    column_list = ', '.join(render_column_name(c.name) for c in _ordered(columns))
    return f"SELECT {column_list} FROM {table_name}"


def build_insert(table_name: str, columns: Sequence[ColumnDescriptor], placeholder: str = "?") -> str:
    """
    Build the parameterized target INSERT.

    Args:
        table_name: Target table name
        columns: Columns in the order rows are bound
        placeholder: Driver bind marker ("?" for pyodbc, "%s" for psycopg2)

    Returns:
        INSERT statement with one placeholder per column
    """
    ordered = _ordered(columns)
    column_list = ', '.join(render_column_name(c.name) for c in ordered)
    placeholders = ', '.join([placeholder] * len(ordered))
    return f"INSERT INTO {table_name} ({column_list}) VALUES ({placeholders})"


def transfer_table(
    source_conn,
    target_conn,
    source_table: str,
    target_table: str,
    columns: Sequence[ColumnDescriptor],
    batch_size: int = DEFAULT_BATCH_SIZE,
    placeholder: str = "?",
    source_dialect: str = "oracle",
    progress: Optional[BatchCursor] = None
) -> int:
    """
    Copy all rows of a source relation into a target table.

    Args:
        source_conn: DB-API connection to the source database
        target_conn: DB-API connection to the target database
        source_table: Source table or materialized view
        target_table: Target table, already provisioned
        columns: Reflected columns; fixes column count and bind order
        batch_size: Rows per execute + commit cycle
        placeholder: Target driver bind marker
        source_dialect: Source dialect, selects how the read cursor is opened
        progress: BatchCursor to record progress into; a fresh one is used when omitted

    Returns:
        Number of rows transferred

    Raises:
        ConfigurationError: If batch_size is not positive
        TransferError: If reading, a batch execute or a commit fails.
            Batches committed before the failure are not rolled back.
    """
    if batch_size < 1:
        raise ConfigurationError(f"batch_size must be at least 1, got {batch_size}")

    start_time = time.time()
    logger.info(f"Starting transfer: {source_table} -> {target_table} (batch size {batch_size:,})")

    select_sql = build_select(source_table, columns)
    insert_sql = build_insert(target_table, columns, placeholder)
    if progress is None:
        progress = BatchCursor()
    batch: List[Tuple[Any, ...]] = []

    source_cursor = _open_read_cursor(source_conn, source_dialect, batch_size)
    try:
        with autocommit_disabled(target_conn):
            target_cursor = target_conn.cursor()
            try:
                try:
                    source_cursor.execute(select_sql)
                    while True:
                        rows = source_cursor.fetchmany(batch_size)
                        if not rows:
                            break
                        for row in rows:
                            batch.append(tuple(row))
                            progress.rows_buffered += 1
                            if progress.rows_buffered >= batch_size:
                                _flush(target_conn, target_cursor, insert_sql, batch, progress, target_table)

                    _flush(target_conn, target_cursor, insert_sql, batch, progress, target_table)
                except TransferError:
                    raise
                except Exception as e:
                    target_conn.rollback()
                    logger.error(f"Error reading {source_table}: {e}")
                    logger.error(f"Query: {select_sql}")
                    raise TransferError(
                        f"Reading {source_table} failed after {progress.rows_committed:,} "
                        f"committed rows: {e}",
                        table=target_table,
                        rows_committed=progress.rows_committed,
                    ) from e
            finally:
                target_cursor.close()
    finally:
        source_cursor.close()

    elapsed_time = time.time() - start_time
    rows_per_second = progress.rows_committed / elapsed_time if elapsed_time > 0 else 0
    logger.info(
        f"Total {progress.rows_committed:,} rows inserted into {target_table} "
        f"in {progress.batches_committed} batches, {elapsed_time:.2f}s "
        f"({rows_per_second:,.0f} rows/sec)"
    )
    return progress.rows_committed


def _flush(target_conn, target_cursor, insert_sql: str, batch: list, progress: BatchCursor, target_table: str) -> None:
    """Execute and commit the in-flight batch. An empty batch is a no-op."""
    progress.flushes += 1
    if not batch:
        logger.debug(f"Final flush for {target_table} had no rows")
        return

    try:
        target_cursor.executemany(insert_sql, batch)
        target_conn.commit()
    except Exception as e:
        target_conn.rollback()
        logger.error(f"Error writing batch to {target_table}: {e}")
        logger.error(f"SQL: {insert_sql}")
        raise TransferError(
            f"Batch of {len(batch):,} rows into {target_table} failed after "
            f"{progress.rows_committed:,} committed rows: {e}",
            table=target_table,
            rows_committed=progress.rows_committed,
        ) from e

    progress.rows_committed += len(batch)
    progress.batches_committed += 1
    progress.rows_buffered = 0
    batch.clear()
    logger.info(f"Inserted {progress.rows_committed:,} rows into {target_table}")


def _open_read_cursor(source_conn, source_dialect: str, batch_size: int):
    """
    Open a forward-only cursor over the source.

    psycopg2 client-side cursors buffer the whole result on execute, so
    PostgreSQL sources are read through a named server-side cursor instead.
    """
    if source_dialect == "postgresql":
        cursor = source_conn.cursor(name=SERVER_CURSOR_NAME)
        cursor.itersize = batch_size
        return cursor
    return source_conn.cursor()


def _ordered(columns: Sequence[ColumnDescriptor]) -> List[ColumnDescriptor]:
    return sorted(columns, key=lambda c: c.ordinal_position)
