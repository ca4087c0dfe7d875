"""
Shared fixtures for the ClassFlow API tests.
The MySQL connection is replaced by an in-memory fake and the query layer is
stubbed per test, so no database server is needed.
"""
import datetime

import jwt
import pytest

from config import Config
from db import connect, queries

TEACHER = {'id': 1, 'email': 'teacher@example.com', 'full_name': 'Ms. Rivera', 'role': 'teacher'}
STUDENT = {'id': 2, 'email': 'sam@example.com', 'full_name': 'Sam Lee', 'role': 'student'}


class FakeCursor:
    """Cursor that accepts any statement and returns no rows."""

    def __init__(self):
        self.statements = []
        self.rowcount = 0
        self.lastrowid = None
        self.closed = False

    def execute(self, sql, params=None):
        self.statements.append((sql, params))

    def executemany(self, sql, seq):
        self.statements.append((sql, list(seq)))

    def fetchone(self):
        return None

    def fetchall(self):
        return []

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.cursors = []

    def cursor(self):
        cursor = FakeCursor()
        self.cursors.append(cursor)
        return cursor

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


@pytest.fixture
def db_conn(monkeypatch):
    """Every get_db() call in a request receives this fake connection."""
    conn = FakeConnection()
    monkeypatch.setattr(connect.pymysql, 'connect', lambda **kwargs: conn)
    return conn


@pytest.fixture
def storage_dir(monkeypatch, tmp_path):
    """Point attachment storage at a temporary directory."""
    monkeypatch.setattr(Config, 'STORAGE_FOLDER', str(tmp_path))
    return tmp_path


@pytest.fixture
def users(monkeypatch):
    """Known profiles, looked up by id through queries.get_profile."""
    known = {TEACHER['id']: dict(TEACHER), STUDENT['id']: dict(STUDENT)}
    monkeypatch.setattr(queries, 'get_profile', lambda cursor, user_id: known.get(user_id))
    return known


@pytest.fixture
def app(db_conn, storage_dir, users):
    from app import app as flask_app
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def make_token(user, expires_in=datetime.timedelta(hours=1)):
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        'exp': now + expires_in,
        'iat': now,
        'user': {'id': user['id'], 'email': user['email'], 'role': user['role']},
    }
    return jwt.encode(payload, Config.SECRET_KEY, algorithm='HS256')


def auth_header(user, **kwargs):
    return {'Authorization': f'Bearer {make_token(user, **kwargs)}'}


@pytest.fixture
def teacher_headers():
    return auth_header(TEACHER)


@pytest.fixture
def student_headers():
    return auth_header(STUDENT)


@pytest.fixture
def stub_queries(monkeypatch):
    """Replace query helpers with canned results and record their arguments.

    Usage:
        calls = stub_queries(get_roster=[...], add_roster_student=None)
        ...
        assert calls['add_roster_student'] == [(1, 2)]

    A callable result is invoked with the query arguments (cursor excluded).
    """
    calls = {}

    def make_fake(name, result):
        def fake(cursor, *args, **kwargs):
            calls.setdefault(name, []).append(args + tuple(kwargs.values()))
            return result(*args, **kwargs) if callable(result) else result
        return fake

    def stub(**stubs):
        for name, result in stubs.items():
            monkeypatch.setattr(queries, name, make_fake(name, result))
        return calls

    return stub
