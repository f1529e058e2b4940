"""
Shared fixtures for the migration plugin tests.

FakeConnection is a small in-memory DB-API connection that understands only
the statements the migration modules generate. It records every statement,
executemany batch, commit and rollback so tests can assert on transaction
boundaries.
"""

import re
from collections import namedtuple
from decimal import Decimal
from types import SimpleNamespace

import pytest

from oracle_mview_migration.schema_extractor import ColumnDescriptor


class FakeDatabaseError(Exception):
    """Raised by the fake driver, like a driver's DatabaseError."""


CatalogRow = namedtuple(
    'CatalogRow', 'column_name type_name column_size decimal_digits table_schem', defaults=('SCOTT',)
)

NUMBER = SimpleNamespace(name="DB_TYPE_NUMBER")
VARCHAR = SimpleNamespace(name="DB_TYPE_VARCHAR")


class FakeTable:
    def __init__(self, description=None, rows=None, ddl=None, catalog=None):
        self.description = description or []
        self.rows = list(rows or [])
        self.ddl = ddl
        self.catalog = catalog or []


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self._result = []
        self.closed = False

    def execute(self, sql, params=None):
        self.conn.executed.append(sql)
        for fragment, error in self.conn.fail_on.items():
            if fragment in sql:
                raise error

        if 'USER_MVIEWS' in sql or 'pg_matviews' in sql:
            self._result = [(name,) for name in self.conn.mviews]
            return self

        if 'CURRENT_SCHEMA' in sql.upper():
            self._result = [(self.conn.current_schema,)]
            return self

        match = re.match(r'^SELECT \* FROM (\S+) WHERE 1 = 0$', sql)
        if match:
            table = self.conn.get_table(match.group(1))
            self.description = table.description
            self._result = []
            return self

        match = re.match(r'^SELECT 1 FROM (\S+) WHERE 1 = 0$', sql)
        if match:
            self.conn.get_table(match.group(1))
            self._result = []
            return self

        match = re.match(r'^SELECT COUNT\(\*\) FROM (\S+)$', sql)
        if match:
            self._result = [(len(self.conn.get_table(match.group(1)).rows),)]
            return self

        match = re.match(r'^SELECT (.+) FROM (\S+)$', sql)
        if match:
            table = self.conn.get_table(match.group(2))
            self.description = table.description
            self._result = list(table.rows)
            return self

        match = re.match(r'^DROP TABLE (\S+)$', sql)
        if match:
            dropped = self.conn.get_table(match.group(1))
            self.conn.tables = {k: v for k, v in self.conn.tables.items() if v is not dropped}
            return self

        match = re.match(r'^CREATE TABLE (\S+) \((.*)\)$', sql)
        if match:
            if match.group(1) in self.conn.tables:
                raise FakeDatabaseError(f"name is already used by an existing object: {match.group(1)}")
            self.conn.tables[match.group(1)] = FakeTable(ddl=sql)
            return self

        raise FakeDatabaseError(f"Unsupported statement: {sql}")

    def executemany(self, sql, rows):
        self.conn.batches.append(list(rows))
        if self.conn.fail_executemany_at == len(self.conn.batches):
            raise FakeDatabaseError("value too large for column")
        match = re.match(r'^INSERT INTO (\S+) \((.*)\) VALUES \((.*)\)$', sql)
        self.conn.get_table(match.group(1))
        self.conn.pending.append((match.group(1), list(rows)))

    def fetchmany(self, size):
        rows, self._result = self._result[:size], self._result[size:]
        return rows

    def fetchall(self):
        rows, self._result = self._result, []
        return rows

    def fetchone(self):
        return self._result.pop(0) if self._result else None

    def close(self):
        self.closed = True


class FakeOdbcCursor(FakeCursor):
    """Cursor exposing the ODBC catalog the way pyodbc does."""

    def columns(self, table=None, schema=None):
        self.conn.catalog_calls.append((table, schema))
        # pyodbc treats schema as a LIKE pattern
        pattern = re.escape(schema or '%').replace('_', '.').replace('%', '.*')
        self._result = [
            row for row in self.conn.get_table(table).catalog
            if re.fullmatch(pattern, row.table_schem)
        ]
        return self


class FakeConnection:
    def __init__(self, tables=None, mviews=None, odbc=False, current_schema='SCOTT'):
        self.tables = dict(tables or {})
        self.mviews = list(mviews or [])
        self.odbc = odbc
        self.current_schema = current_schema
        self.catalog_calls = []
        self.named_cursors = []
        self.autocommit = True
        self.executed = []
        self.batches = []
        self.pending = []
        self.commits = []
        self.rollbacks = 0
        self.fail_on = {}
        self.fail_executemany_at = None
        self.fail_commit_at = None
        self.autocommit_history = []
        self.closed = False

    def __setattr__(self, name, value):
        if name == 'autocommit' and 'autocommit_history' in self.__dict__:
            self.autocommit_history.append(value)
        super().__setattr__(name, value)

    def get_table(self, name):
        if name in self.tables:
            return self.tables[name]
        # Unquoted identifiers are case-insensitive
        for table_name, table in self.tables.items():
            if table_name.upper() == name.upper():
                return table
        raise FakeDatabaseError(f"table or view does not exist: {name}")

    def cursor(self, name=None):
        if name is not None:
            self.named_cursors.append(name)
        return FakeOdbcCursor(self) if self.odbc else FakeCursor(self)

    def commit(self):
        if self.fail_commit_at == len(self.commits) + 1 and self.pending:
            raise FakeDatabaseError("commit failed")
        committed = 0
        for table_name, rows in self.pending:
            self.tables[table_name].rows.extend(rows)
            committed += len(rows)
        if self.pending:
            self.commits.append(committed)
        self.pending = []

    def rollback(self):
        self.pending = []
        self.rollbacks += 1

    def close(self):
        self.closed = True


def numeric_description(name, precision, scale):
    return (name, NUMBER, None, None, precision, scale, True)


def varchar_description(name, length):
    return (name, VARCHAR, None, length, length, 0, True)


@pytest.fixture
def id_name_columns():
    """Columns of the reference table: (ID NUMBER(10), NAME VARCHAR2(50))."""
    return [
        ColumnDescriptor(name='ID', native_type='NUMBER', precision=10, scale=0, ordinal_position=1),
        ColumnDescriptor(name='NAME', native_type='VARCHAR2', precision=50, scale=0, ordinal_position=2),
    ]


@pytest.fixture
def make_source():
    """Build a source connection holding one table with N generated rows."""
    def _make(row_count=0, table_name='SALES_MV', odbc=False, mviews=None):
        rows = [(Decimal(i), f"name-{i}") for i in range(1, row_count + 1)]
        table = FakeTable(
            description=[numeric_description('ID', 10, 0), varchar_description('NAME', 50)],
            rows=rows,
            catalog=[
                CatalogRow('ID', 'NUMBER', 10, 0),
                CatalogRow('NAME', 'VARCHAR2', 50, 0),
            ],
        )
        return FakeConnection(tables={table_name: table}, mviews=mviews, odbc=odbc)
    return _make


@pytest.fixture
def empty_target():
    return FakeConnection()


@pytest.fixture
def fake_error():
    return FakeDatabaseError
