"""
Oracle Materialized View Migration Utilities

This package copies Oracle materialized views (or any tables and views) into
a target database using Apache Airflow connections. Target tables are dropped
and recreated from the source column metadata, then filled in committed
batches.

Modules:
- type_mapping: Map source column types to target column declarations
- schema_extractor: Discover materialized views and describe their columns
- ddl_generator: Drop and recreate target tables
- data_transfer: Copy rows in committed batches
- validation: Compare source and target row counts
- orchestrator: Plan and run a migration table by table
- config: Build MigrationConfig from DAG params, env vars or properties files
- connections: Open connections from Airflow connection IDs (loaded lazily)
- utils: Identifier validation for generated SQL
"""

__version__ = "1.0.0"

from oracle_mview_migration import exceptions
from oracle_mview_migration import type_mapping
from oracle_mview_migration import schema_extractor
from oracle_mview_migration import ddl_generator
from oracle_mview_migration import data_transfer
from oracle_mview_migration import validation
from oracle_mview_migration import config
from oracle_mview_migration import orchestrator
from oracle_mview_migration import utils

# Requires Airflow; imported by the orchestrator on first use
# from oracle_mview_migration import connections

__all__ = [
    "exceptions",
    "type_mapping",
    "schema_extractor",
    "ddl_generator",
    "data_transfer",
    "validation",
    "config",
    "orchestrator",
    "utils",
    "connections",
]
