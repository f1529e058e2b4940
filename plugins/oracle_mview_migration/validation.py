"""
Migration Validation Module

Compares source and target row counts after a table has been transferred.
"""

from typing import Any, Dict
from datetime import datetime
import logging

from oracle_mview_migration.utils import validate_table_name

logger = logging.getLogger(__name__)


def count_rows(connection, table_name: str) -> int:
    """Return COUNT(*) for a table, treating NULL as 0."""
    validate_table_name(table_name)
    cursor = connection.cursor()
    try:
        cursor.execute(f"SELECT COUNT(*) FROM {table_name}")
        row = cursor.fetchone()
    finally:
        cursor.close()
    return (row[0] if row else 0) or 0


def validate_row_count(source_conn, target_conn, source_table: str, target_table: str) -> Dict[str, Any]:
    """
    Compare row counts between a source relation and its target table.

    Args:
        source_conn: DB-API connection to the source database
        target_conn: DB-API connection to the target database
        source_table: Source table or materialized view
        target_table: Target table

    Returns:
        Validation result dictionary
    """
    source_count = count_rows(source_conn, source_table)
    target_count = count_rows(target_conn, target_table)

    row_difference = target_count - source_count
    percentage_difference = (row_difference / source_count * 100) if source_count > 0 else 0

    result = {
        'source_table': source_table,
        'target_table': target_table,
        'source_count': source_count,
        'target_count': target_count,
        'row_difference': row_difference,
        'percentage_difference': percentage_difference,
        'validation_passed': source_count == target_count,
        'validation_time': datetime.now().isoformat(),
    }

    if result['validation_passed']:
        logger.info(f"Row count validation passed for {target_table}: {source_count:,} rows")
    else:
        logger.warning(
            f"Row count mismatch for {source_table} -> {target_table}: "
            f"Source={source_count:,}, Target={target_count:,}, "
            f"Difference={row_difference:+,} ({percentage_difference:+.2f}%)"
        )

    return result
