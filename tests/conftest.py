"""
Shared fixtures: an in-memory stand-in for the supabase-py client.

Supports the subset of the PostgREST query builder the pulse package uses:
select/insert/upsert/update/delete, eq/gte/lte/lt/in_ filters, order, range,
limit and count="exact". Failures can be injected per table and operation.
"""

import copy
import itertools
from datetime import datetime, timezone

import pytest
from dateutil import parser as date_parser


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeAPIError(Exception):
    pass


def _comparable(value):
    if isinstance(value, str) and "T" in value:
        try:
            dt = date_parser.isoparse(value)
        except ValueError:
            return value
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    return value


def _project(row, columns):
    if columns in (None, "*"):
        return dict(row)
    names = [c.strip() for c in columns.split(",") if c.strip()]
    return {name: row.get(name) for name in names}


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table_name = table
        self.operation = None
        self.columns = None
        self.count_mode = None
        self.payload = None
        self.on_conflict = None
        self.ignore_duplicates = False
        self.filters = []
        self.orders = []
        self.row_range = None
        self.row_limit = None

    # --- operations ---
    def select(self, columns="*", count=None):
        self.operation = "select"
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, rows):
        self.operation = "insert"
        self.payload = rows
        return self

    def upsert(self, rows, on_conflict=None, ignore_duplicates=False):
        self.operation = "upsert"
        self.payload = rows
        self.on_conflict = on_conflict
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, values):
        self.operation = "update"
        self.payload = values
        return self

    def delete(self, count=None):
        self.operation = "delete"
        self.count_mode = count
        return self

    # --- filters / modifiers ---
    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def gte(self, column, value):
        self.filters.append(
            lambda row: row.get(column) is not None
            and _comparable(row.get(column)) >= _comparable(value)
        )
        return self

    def lte(self, column, value):
        self.filters.append(
            lambda row: row.get(column) is not None
            and _comparable(row.get(column)) <= _comparable(value)
        )
        return self

    def lt(self, column, value):
        self.filters.append(
            lambda row: row.get(column) is not None
            and _comparable(row.get(column)) < _comparable(value)
        )
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def range(self, start, end):
        self.row_range = (start, end)
        return self

    def limit(self, size):
        self.row_limit = size
        return self

    # --- execution ---
    def _matching(self):
        rows = self.client.tables.setdefault(self.table_name, [])
        return [row for row in rows if all(f(row) for f in self.filters)]

    def execute(self):
        self.client.calls.append((self.table_name, self.operation))
        error = self.client.failures.get((self.table_name, self.operation))
        if error is not None:
            raise error

        if self.operation == "select":
            return self._execute_select()
        if self.operation == "insert":
            return self._execute_insert()
        if self.operation == "upsert":
            return self._execute_upsert()
        if self.operation == "update":
            return self._execute_update()
        if self.operation == "delete":
            return self._execute_delete()
        raise FakeAPIError(f"no operation on {self.table_name}")

    def _execute_select(self):
        rows = self._matching()
        for column, desc in reversed(self.orders):
            rows = sorted(rows, key=lambda r: str(r.get(column) or ""), reverse=desc)
        total = len(rows)
        if self.row_range is not None:
            start, end = self.row_range
            rows = rows[start : end + 1]
        if self.row_limit is not None:
            rows = rows[: self.row_limit]
        data = [_project(row, self.columns) for row in rows]
        return FakeResponse(data, total if self.count_mode == "exact" else None)

    def _new_row(self, row):
        stored = copy.deepcopy(row)
        stored.setdefault("id", next(self.client.ids))
        return stored

    def _execute_insert(self):
        rows = self.payload if isinstance(self.payload, list) else [self.payload]
        table = self.client.tables.setdefault(self.table_name, [])
        inserted = [self._new_row(row) for row in rows]
        table.extend(inserted)
        return FakeResponse(copy.deepcopy(inserted))

    def _execute_upsert(self):
        rows = self.payload if isinstance(self.payload, list) else [self.payload]
        keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
        table = self.client.tables.setdefault(self.table_name, [])

        written = []
        for row in rows:
            existing = next(
                (r for r in table if all(r.get(k) == row.get(k) for k in keys)), None
            )
            if existing is None:
                stored = self._new_row(row)
                table.append(stored)
                written.append(stored)
            elif not self.ignore_duplicates:
                existing.update(copy.deepcopy(row))
                written.append(existing)
        return FakeResponse(copy.deepcopy(written))

    def _execute_update(self):
        rows = self._matching()
        for row in rows:
            row.update(copy.deepcopy(self.payload))
        return FakeResponse(copy.deepcopy(rows))

    def _execute_delete(self):
        doomed = self._matching()
        table = self.client.tables.setdefault(self.table_name, [])
        self.client.tables[self.table_name] = [r for r in table if r not in doomed]
        count = len(doomed) if self.count_mode == "exact" else None
        return FakeResponse(copy.deepcopy(doomed), count)


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = copy.deepcopy(tables) if tables else {}
        self.failures = {}
        self.calls = []
        self.ids = itertools.count(1)

    def table(self, name):
        return FakeQuery(self, name)

    def rows(self, name):
        return self.tables.get(name, [])

    def fail_on(self, table, operation, error=None):
        self.failures[(table, operation)] = error or FakeAPIError(
            f"{operation} on {table} failed"
        )


class FakeWhopClient:
    def __init__(self, memberships=None, error=None, company=None):
        self.memberships = memberships or []
        self.error = error
        self.company = company if company is not None else {"id": "biz_test123"}
        self.calls = []

    def get_all_memberships(self, company_id):
        self.calls.append(company_id)
        if self.error is not None:
            raise self.error
        return list(self.memberships)

    def get_company(self, company_id):
        if self.error is not None:
            raise self.error
        return self.company


COMPANY_ID = "biz_test123"
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def company_id():
    return COMPANY_ID
