"""
Oracle Materialized View Migration DAG

This DAG copies Oracle materialized views into a target database:
1. Resolve source relations (configured list, or every materialized view
   owned by the source user)
2. Pair them with target table names (missing names default to the source name)
3. For each table, in order: describe columns, drop and recreate the target
   table, copy all rows in committed batches
4. Optionally compare source and target row counts

WARNING: target tables with the configured names are dropped and recreated on
every run. Their existing data is lost.

Param defaults come from the properties file named by MIGRATION_PROPERTIES_FILE
and from environment variables such as SOURCE_MATERIALIZED_VIEWS and
TARGET_TABLE_NAMES. Invalid defaults fail the run, not DAG parsing.
"""

from airflow.decorators import dag, task
from airflow.models.param import Param
from pendulum import datetime
from typing import Any, Dict, List
import logging

from oracle_mview_migration.config import (
    ON_ERROR_POLICIES,
    MigrationConfig,
    load_default_config,
)
from oracle_mview_migration.exceptions import ConfigurationError
from oracle_mview_migration.orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)

_defaults_error = None
try:
    _defaults = load_default_config()
except ConfigurationError as e:
    logger.warning(f"Invalid migration defaults, falling back to built-in values: {e}")
    _defaults, _defaults_error = MigrationConfig(), e


@dag(
    dag_id="oracle_mview_migration",
    start_date=datetime(2025, 1, 1),
    schedule=None,
    catchup=False,
    max_active_runs=1,
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        # A rerun drops and recreates every table, so retries only repeat work
        "retries": 0,
    },
    params={
        "source_conn_id": Param(
            default=_defaults.source_conn_id,
            type="string",
            description="Source (Oracle) connection ID"
        ),
        "target_conn_id": Param(
            default=_defaults.target_conn_id,
            type="string",
            description="Target connection ID (ODBC/Oracle or postgres)"
        ),
        "source_tables": Param(
            default=_defaults.source_tables,
            description="Materialized views/tables to copy. Empty discovers all materialized views."
        ),
        "target_tables": Param(
            default=_defaults.target_tables,
            description="Target table names, paired by position. Missing names default to the source name."
        ),
        "batch_size": Param(
            default=_defaults.batch_size,
            type="integer",
            minimum=1,
            description="Rows per committed batch"
        ),
        "on_table_error": Param(
            default=_defaults.on_table_error,
            type="string",
            enum=list(ON_ERROR_POLICIES),
            description="'abort' stops at the first failed table, 'continue' moves on to the next"
        ),
        "validate_row_counts": Param(
            default=_defaults.validate_row_counts,
            type="boolean",
            description="Compare source and target row counts after each table"
        ),
    },
    tags=["migration", "oracle", "materialized-view", "full-refresh"],
)
def oracle_mview_migration():
    """Copy materialized views table by table."""

    @task
    def migrate_tables(**context) -> List[Dict[str, Any]]:
        """Run the migration and return one result per table."""
        if _defaults_error is not None:
            raise _defaults_error

        config = MigrationConfig.from_mapping(context["params"])
        logger.info(
            f"Migrating {config.source_conn_id} -> {config.target_conn_id} "
            f"(batch size {config.batch_size:,}, on error: {config.on_table_error})"
        )

        results = MigrationOrchestrator(config).execute()
        return [r.to_dict() for r in results]

    @task
    def log_migration_summary(results: List[Dict[str, Any]]) -> str:
        """Log summary of the migration and fail if any table failed."""
        failed = [r for r in results if r["status"] != "success"]
        total_rows = sum(r["rows_transferred"] for r in results)

        summary = (
            f"Migration complete: {len(results) - len(failed)}/{len(results)} tables, "
            f"{total_rows:,} rows"
        )
        logger.info(summary)

        for r in failed:
            logger.error(f"  {r['source_table']} -> {r['target_table']} failed during {r['phase']}: {r['error']}")

        if failed:
            raise RuntimeError(f"{len(failed)} tables failed to migrate")

        return summary

    log_migration_summary(migrate_tables())


oracle_mview_migration()
