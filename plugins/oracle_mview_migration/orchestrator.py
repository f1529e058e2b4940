"""
Migration Orchestrator

Pairs source relations with target table names and migrates them one at a
time: describe source columns, provision the target table, transfer rows.

Tables are never migrated in parallel. Both connections are shared by every
task and the target connection's transaction state is a single resource.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import contextlib
import logging
import time

from oracle_mview_migration.config import ON_ERROR_ABORT, MigrationConfig
from oracle_mview_migration.data_transfer import transfer_table
from oracle_mview_migration.ddl_generator import TableProvisioner
from oracle_mview_migration.exceptions import ConfigurationError, MigrationError
from oracle_mview_migration.schema_extractor import describe_columns, discover_tables
from oracle_mview_migration.validation import validate_row_count

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableMigrationTask:
    """One source relation and the target table it is copied into."""

    source_name: str
    target_name: str


MigrationPlan = List[TableMigrationTask]


@dataclass
class TableResult:
    """Outcome of one TableMigrationTask."""

    source_name: str
    target_name: str
    status: str = "pending"
    rows_transferred: int = 0
    phase: Optional[str] = None
    error: Optional[str] = None
    drop_outcome: Optional[str] = None
    validation: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_table': self.source_name,
            'target_table': self.target_name,
            'status': self.status,
            'rows_transferred': self.rows_transferred,
            'phase': self.phase,
            'error': self.error,
            'drop_outcome': self.drop_outcome,
            'validation': self.validation,
        }


def build_plan(source_names: Sequence[str], target_names: Optional[Sequence[str]] = None) -> MigrationPlan:
    """
    Pair source names with target names by position.

    - No target names: every table keeps its source name.
    - Fewer target names than sources: configured names are used first and
      the remaining tables keep their source name (logged as a warning).
    - More target names than sources: the extra names are ignored.

    Args:
        source_names: Discovered or configured source relations
        target_names: Configured target table names, possibly empty

    Returns:
        Ordered migration plan

    Examples:
        >>> [(t.source_name, t.target_name) for t in build_plan(["A", "B"], ["X"])]
        [('A', 'X'), ('B', 'B')]
    """
    source_names = list(source_names)
    target_names = list(target_names or [])

    if target_names and len(target_names) < len(source_names):
        logger.warning(
            f"Number of target tables ({len(target_names)}) does not match number of "
            f"source tables ({len(source_names)}). Using source names for the remaining "
            f"{len(source_names) - len(target_names)} tables."
        )
        target_names += source_names[len(target_names):]
    elif len(target_names) > len(source_names):
        logger.info(f"Ignoring {len(target_names) - len(source_names)} extra target table names")
        target_names = target_names[:len(source_names)]
    elif not target_names:
        target_names = list(source_names)

    return [
        TableMigrationTask(source_name=source, target_name=target)
        for source, target in zip(source_names, target_names)
    ]


class MigrationOrchestrator:
    """Drive describe -> provision -> transfer for every table in a plan."""

    def __init__(self, config: MigrationConfig, connection_factory=None):
        """
        Initialize the orchestrator.

        Args:
            config: Validated migration configuration
            connection_factory: Object with an open(conn_id) context manager
                yielding DatabaseHandles. Defaults to the Airflow-backed
                ConnectionFactory.
        """
        self.config = config.validate()
        self._connection_factory = connection_factory

    @property
    def connection_factory(self):
        if self._connection_factory is None:
            from oracle_mview_migration.connections import ConnectionFactory
            self._connection_factory = ConnectionFactory()
        return self._connection_factory

    def resolve_source_tables(self, source) -> List[str]:
        """
        Return the configured source tables, or discover materialized views.

        Raises:
            ConfigurationError: If nothing is configured and nothing is discovered
        """
        if self.config.source_tables:
            return list(self.config.source_tables)

        logger.info("No source tables configured; discovering materialized views")
        tables = discover_tables(source.connection, source.dialect)
        if not tables:
            raise ConfigurationError(
                "No source tables configured and no materialized views found in the source schema"
            )
        return tables

    def execute(self) -> List[TableResult]:
        """
        Run a complete migration: connect, plan, migrate every table.

        Connections are opened once and closed on every exit path.

        Returns:
            One TableResult per planned table
        """
        start_time = time.time()

        with contextlib.ExitStack() as stack:
            source = stack.enter_context(self.connection_factory.open(self.config.source_conn_id))
            target = stack.enter_context(self.connection_factory.open(self.config.target_conn_id))
            logger.info("Connected to both databases successfully.")

            source_tables = self.resolve_source_tables(source)
            plan = build_plan(source_tables, self.config.target_tables)
            logger.info(f"Migration plan has {len(plan)} tables")

            results = self.run(plan, source, target)

        log_summary(results, time.time() - start_time)
        return results

    def run(self, plan: MigrationPlan, source, target) -> List[TableResult]:
        """
        Migrate every task of a plan, strictly in order.

        Args:
            plan: Tasks from build_plan()
            source: DatabaseHandle for the source
            target: DatabaseHandle for the target

        Returns:
            One TableResult per task that was attempted

        Raises:
            MigrationError: On the first failing table when the policy is "abort"
        """
        results = []
        for index, task in enumerate(plan, start=1):
            logger.info(f"[{index}/{len(plan)}] Migrating {task.source_name} -> {task.target_name}")
            result = TableResult(source_name=task.source_name, target_name=task.target_name)
            results.append(result)

            try:
                self.migrate_table(task, source, target, result)
            except MigrationError as e:
                result.status = "failed"
                result.error = str(e)
                logger.error(
                    f"Migration of {task.source_name} -> {task.target_name} failed "
                    f"during {result.phase}: {e}"
                )
                if self.config.on_table_error == ON_ERROR_ABORT:
                    raise
                continue

            result.status = "success"
            logger.info(f"Migrated data from {task.source_name} to {task.target_name}")

        return results

    def migrate_table(self, task: TableMigrationTask, source, target, result: TableResult) -> None:
        """Run every phase for one table, recording progress on result."""
        result.phase = "describe"
        columns = describe_columns(source.connection, task.source_name, source.dialect)

        result.phase = "provision"
        outcome = TableProvisioner(target.connection, target.dialect).provision(task.target_name, columns)
        result.drop_outcome = outcome.value

        result.phase = "transfer"
        result.rows_transferred = transfer_table(
            source.connection,
            target.connection,
            task.source_name,
            task.target_name,
            columns,
            batch_size=self.config.batch_size,
            placeholder=target.placeholder,
            source_dialect=source.dialect,
        )

        if self.config.validate_row_counts:
            result.phase = "validate"
            try:
                result.validation = validate_row_count(
                    source.connection, target.connection, task.source_name, task.target_name
                )
            except Exception as e:
                raise MigrationError(
                    f"Row count validation failed: {e}", table=task.target_name, phase="validate"
                ) from e

        result.phase = None


def log_summary(results: Sequence[TableResult], elapsed_time: float) -> None:
    """Log a one-line-per-table summary of a migration run."""
    succeeded = [r for r in results if r.succeeded]
    failed = [r for r in results if not r.succeeded]
    total_rows = sum(r.rows_transferred for r in results)

    for r in results:
        line = f"  {r.source_name} -> {r.target_name}: {r.status}, {r.rows_transferred:,} rows"
        if r.validation and not r.validation.get('validation_passed'):
            line += " (row count mismatch)"
        logger.info(line)

    if failed:
        logger.warning(
            f"Migration finished with {len(failed)} failed tables out of {len(results)} "
            f"({total_rows:,} rows in {elapsed_time:.2f}s)"
        )
    else:
        logger.info(
            f"Migration completed successfully: {len(succeeded)} tables, "
            f"{total_rows:,} rows in {elapsed_time:.2f}s"
        )
