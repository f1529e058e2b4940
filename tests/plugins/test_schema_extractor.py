"""
Tests for Source Schema Extraction Module

These tests validate materialized view discovery and column reflection
from the result shape of a query that never returns rows.
"""

from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from oracle_mview_migration.exceptions import SchemaError
from oracle_mview_migration.schema_extractor import (
    ColumnDescriptor,
    describe_columns,
    discover_tables,
)
from oracle_mview_migration.type_mapping import map_column_type

from .conftest import CatalogRow, FakeConnection, FakeTable, numeric_description, varchar_description


class TestDiscoverTables:
    """Test materialized view discovery."""

    def test_returns_catalog_order(self, make_source):
        source = make_source(mviews=['ORDERS_MV', 'ACCOUNTS_MV', 'SALES_MV'])

        assert discover_tables(source) == ['ORDERS_MV', 'ACCOUNTS_MV', 'SALES_MV']
        assert 'USER_MVIEWS' in source.executed[0]
        assert 'ORDER BY' not in source.executed[0]

    def test_postgresql_catalog(self, make_source):
        source = make_source(mviews=['sales_mv'])

        assert discover_tables(source, dialect='postgresql') == ['sales_mv']
        assert 'pg_matviews' in source.executed[0]

    def test_no_materialized_views(self, make_source):
        assert discover_tables(make_source()) == []

    def test_unsupported_dialect(self, make_source):
        with pytest.raises(SchemaError, match='not supported'):
            discover_tables(make_source(), dialect='mysql')

    def test_catalog_failure_raises_schema_error(self, make_source, fake_error):
        source = make_source()
        source.fail_on['USER_MVIEWS'] = fake_error('insufficient privileges')

        with pytest.raises(SchemaError) as exc_info:
            discover_tables(source)

        assert exc_info.value.phase == 'discover'
        assert isinstance(exc_info.value.__cause__, fake_error)


class TestDescribeColumns:
    """Test column reflection."""

    def test_uses_zero_row_query(self, make_source):
        source = make_source(row_count=5)

        describe_columns(source, 'SALES_MV')

        assert source.executed == ['SELECT * FROM SALES_MV WHERE 1 = 0']

    def test_descriptors_from_result_shape(self, make_source):
        columns = describe_columns(make_source(row_count=3), 'SALES_MV')

        assert columns == [
            ColumnDescriptor(name='ID', native_type='NUMBER', precision=10, scale=0, ordinal_position=1),
            ColumnDescriptor(name='NAME', native_type='VARCHAR', precision=50, scale=0, ordinal_position=2),
        ]

    def test_odbc_catalog_supplies_native_type_names(self, make_source):
        """pyodbc only reports Python types; the catalog has the real names."""
        columns = describe_columns(make_source(odbc=True), 'SALES_MV')

        assert [c.native_type for c in columns] == ['NUMBER', 'VARCHAR2']
        assert [c.precision for c in columns] == [10, 50]

    def test_python_type_codes_fall_back_to_generic_names(self):
        cursor = MagicMock(spec=['execute', 'description', 'close'])
        cursor.description = [
            ('AMOUNT', Decimal, None, None, 12, 2, True),
            ('LABEL', str, None, 30, 30, 0, True),
            ('CREATED_AT', datetime, None, None, None, None, True),
        ]
        connection = MagicMock()
        connection.cursor.return_value = cursor

        columns = describe_columns(connection, 'SALES_MV')

        assert [(c.native_type, c.precision, c.scale) for c in columns] == [
            ('NUMERIC', 12, 2),
            ('VARCHAR', 30, 0),
            ('TIMESTAMP', 0, 0),
        ]
        cursor.close.assert_called_once()

    def test_unknown_type_code_raises(self):
        cursor = MagicMock(spec=['execute', 'description', 'close'])
        cursor.description = [('BLOB_COL', 2003, None, None, None, None, True)]
        connection = MagicMock()
        connection.cursor.return_value = cursor

        with pytest.raises(SchemaError, match='BLOB_COL'):
            describe_columns(connection, 'SALES_MV')

    def test_missing_relation_raises_schema_error(self, make_source, fake_error):
        with pytest.raises(SchemaError) as exc_info:
            describe_columns(make_source(), 'MISSING_MV')

        assert exc_info.value.table == 'MISSING_MV'
        assert exc_info.value.phase == 'describe'
        assert isinstance(exc_info.value.__cause__, fake_error)

    def test_invalid_table_name_rejected_before_query(self, make_source):
        source = make_source()

        with pytest.raises(SchemaError):
            describe_columns(source, 'SALES_MV; DROP TABLE X')

        assert source.executed == []

    def test_relation_without_columns(self):
        cursor = MagicMock(spec=['execute', 'description', 'close'])
        cursor.description = None
        connection = MagicMock()
        connection.cursor.return_value = cursor

        with pytest.raises(SchemaError, match='no columns'):
            describe_columns(connection, 'SALES_MV')

    def test_descriptors_are_immutable(self, id_name_columns):
        with pytest.raises(AttributeError):
            id_name_columns[0].precision = 20


class TestPostgresTypeCodes:
    """Test reflection of psycopg2 descriptions, whose type codes are OIDs."""

    @pytest.fixture
    def pg_connection(self):
        cursor = MagicMock(spec=['execute', 'description', 'close'])
        cursor.description = [
            ('id', 1700, None, -1, 10, 0, None),
            ('name', 1043, None, 50, None, None, None),
            ('notes', 25, None, -1, None, None, None),
            ('amount', 1700, None, -1, 65535, 65535, None),
            ('created_at', 1114, None, 8, None, None, None),
        ]
        connection = MagicMock()
        connection.cursor.return_value = cursor
        return connection

    def test_oids_resolve_to_type_names(self, pg_connection):
        columns = describe_columns(pg_connection, 'sales_mv', dialect='postgresql')

        assert [(c.name, c.native_type, c.precision, c.scale) for c in columns] == [
            ('id', 'NUMERIC', 10, 0),
            ('name', 'VARCHAR', 50, 0),
            ('notes', 'TEXT', 0, 0),
            ('amount', 'NUMERIC', 0, 0),
            ('created_at', 'TIMESTAMP', 0, 0),
        ]

    def test_reflected_columns_map_to_declarations(self, pg_connection):
        columns = describe_columns(pg_connection, 'sales_mv', dialect='postgresql')

        assert [map_column_type(c.native_type, c.precision, c.scale, 'postgresql') for c in columns] == [
            'NUMERIC(10)', 'VARCHAR(50)', 'TEXT', 'NUMERIC', 'TIMESTAMP',
        ]


class TestCatalogScope:
    """Test that ODBC catalog rows come from the schema the name resolves in."""

    def make_odbc_source(self, catalog, current_schema='SCOTT'):
        table = FakeTable(
            description=[numeric_description('ID', 10, 0), varchar_description('NAME', 50)],
            catalog=catalog,
        )
        return FakeConnection(tables={'SALES_MV': table}, odbc=True, current_schema=current_schema)

    def test_same_named_relation_in_other_schema_ignored(self):
        source = self.make_odbc_source([
            CatalogRow('ID', 'NUMBER', 10, 0, 'SCOTT'),
            CatalogRow('NAME', 'VARCHAR2', 50, 0, 'SCOTT'),
            CatalogRow('ID', 'VARCHAR2', 36, 0, 'HR'),
            CatalogRow('NAME', 'NUMBER', 10, 0, 'HR'),
        ])

        columns = describe_columns(source, 'SALES_MV')

        assert [(c.native_type, c.precision) for c in columns] == [('NUMBER', 10), ('VARCHAR2', 50)]
        assert source.catalog_calls == [('SALES_MV', 'SCOTT')]

    def test_schema_pattern_characters_do_not_widen_match(self):
        source = self.make_odbc_source([
            CatalogRow('ID', 'NUMBER', 10, 0, 'APP_1'),
            CatalogRow('NAME', 'VARCHAR2', 50, 0, 'APP_1'),
            CatalogRow('NAME', 'CLOB', 0, 0, 'APPX1'),
        ], current_schema='APP_1')

        columns = describe_columns(source, 'SALES_MV')

        assert columns[1].native_type == 'VARCHAR2'

    def test_lowercase_name_folded_to_catalog_case(self):
        source = self.make_odbc_source([
            CatalogRow('ID', 'NUMBER', 10, 0),
            CatalogRow('NAME', 'VARCHAR2', 50, 0),
        ])

        columns = describe_columns(source, 'sales_mv')

        assert [c.native_type for c in columns] == ['NUMBER', 'VARCHAR2']
        assert source.catalog_calls == [('SALES_MV', 'SCOTT')]

    def test_qualified_name_uses_its_own_schema(self):
        source = self.make_odbc_source([
            CatalogRow('ID', 'NUMBER', 10, 0, 'HR'),
            CatalogRow('NAME', 'NVARCHAR2', 50, 0, 'HR'),
        ])
        source.tables['hr.sales_mv'] = source.tables['SALES_MV']

        columns = describe_columns(source, 'hr.sales_mv')

        assert [c.native_type for c in columns] == ['NUMBER', 'NVARCHAR2']
        assert source.catalog_calls == [('SALES_MV', 'HR')]
        assert not any('CURRENT_SCHEMA' in sql for sql in source.executed)
