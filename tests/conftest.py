import copy
import itertools
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from services.auth_service import User
from services.errors import DataClientError

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _sort_key(value):
    if isinstance(value, datetime):
        return (1, value.timestamp())
    return (0 if value is None else 1, value if value is not None else 0)


class FakeDataClient:
    """In-memory table store with the same surface as PostgresDataClient"""

    def __init__(self):
        self.tables = defaultdict(list)
        self.failures = {}
        self.calls = []
        self._clock = itertools.count(1)

    def fail(self, method, table, message="permission denied for table"):
        self.failures[(method, table)] = message

    def heal(self):
        self.failures.clear()

    def _check(self, method, table):
        self.calls.append((method, table))
        if (method, table) in self.failures:
            raise DataClientError(self.failures[(method, table)])

    def _tick(self):
        return BASE_TIME + timedelta(seconds=next(self._clock))

    @staticmethod
    def _match(row, filters):
        for column, op, value in filters or ():
            current = row.get(column)
            if op == "eq" and current != value:
                return False
            if op == "neq" and current == value:
                return False
            if op == "gte" and (current is None or current < value):
                return False
            if op == "lte" and (current is None or current > value):
                return False
            if op == "in" and current not in value:
                return False
            if op == "not_null" and current is None:
                return False
            if op == "is_null" and current is not None:
                return False
        return True

    def select(self, table, columns="*", filters=(), order_by=None, descending=False, limit=None):
        self._check("select", table)
        rows = [row for row in self.tables[table] if self._match(row, filters)]
        if order_by:
            rows = sorted(rows, key=lambda row: _sort_key(row.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        if columns != "*":
            wanted = [col.strip() for col in columns.split(",")]
            rows = [{col: row.get(col) for col in wanted} for row in rows]
        return copy.deepcopy(rows)

    def count(self, table, filters=()):
        self._check("count", table)
        return sum(1 for row in self.tables[table] if self._match(row, filters))

    def insert(self, table, rows):
        self._check("insert", table)
        if isinstance(rows, dict):
            rows = [rows]
        for row in rows:
            stamp = self._tick()
            stored = {"created_at": stamp, "updated_at": stamp, **copy.deepcopy(row)}
            self.tables[table].append(stored)

    def update(self, table, patch, filters):
        self._check("update", table)
        touched = 0
        for row in self.tables[table]:
            if self._match(row, filters):
                row.update(copy.deepcopy(patch))
                touched += 1
        return touched

    def delete(self, table, filters):
        self._check("delete", table)
        before = len(self.tables[table])
        self.tables[table] = [row for row in self.tables[table] if not self._match(row, filters)]
        return before - len(self.tables[table])

    def upsert(self, table, row, on_conflict):
        self._check("upsert", table)
        for existing in self.tables[table]:
            if existing.get(on_conflict) == row[on_conflict]:
                existing.update(copy.deepcopy(row))
                return
        self.tables[table].append(copy.deepcopy(row))


class FakeResponse:
    def __init__(self, status_code=201, text='{"messageId": "abc"}'):
        self.status_code = status_code
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300


def make_user(user_id, username, full_name=None, role=None, real_email=None, domain="inventory-user.example.com"):
    metadata = {"username": username, "full_name": full_name or username.title()}
    if role:
        metadata["role"] = role
    if real_email:
        metadata["real_email"] = real_email
    return User({"id": user_id, "email": f"{username}@{domain}", "user_metadata": metadata})


@pytest.fixture
def db():
    return FakeDataClient()


@pytest.fixture
def admin_user():
    return make_user("u-admin", "admin", "Ada Admin", real_email="ada@example.org")


@pytest.fixture
def staff_user():
    return make_user("u-staff", "sam", "Sam Staff", real_email="sam@example.org")


@pytest.fixture
def app(db):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "CSRF_ENABLED": False,
        "BREVO_API_KEY": "test-brevo-key",
        "NOTIFY_FUNCTION_SECRET": "hook-secret",
        "LOG_FILE": "",
    }, data_client=db)
    return app


@pytest.fixture
def http(app):
    return app.test_client()


def signup_and_login(http, username, password="pw-12345", name=None, email=None):
    http.post("/auth/signup", json={
        "name": name or username.title(),
        "username": username,
        "email": email or f"{username}@example.org",
        "password": password,
    })
    return http.post("/auth/login", json={"username": username, "password": password})


@pytest.fixture
def as_admin(http):
    signup_and_login(http, "admin", name="Ada Admin", email="ada@example.org")
    return http


@pytest.fixture
def as_staff(http):
    signup_and_login(http, "sam", name="Sam Staff", email="sam@example.org")
    return http


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def response_factory():
    return FakeResponse


@pytest.fixture
def login_as():
    return signup_and_login
