# tests/conftest.py
from __future__ import annotations
import datetime as dt
import itertools
import sqlite3
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pymysql
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import UniqueConstraint, create_engine

from policyadmin.main import app
from policyadmin.models import Base
from policyadmin.services import config, security
from policyadmin.services.auth_service import create_access_token
from policyadmin.services.notifications import get_notification_gateway
from policyadmin.services.users import create_user

PDF = b"%PDF-1.4\n%test document\n%%EOF\n"


# ── Test-only stand-in for a PyMySQL connection, backed by SQLite ──
def _coerce(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dt.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, dt.date):
        return value.isoformat()
    return value


def _unique_key_names() -> Dict[str, str]:
    """'users.email' -> 'ux_users_email', from the named constraints on the models."""
    names: Dict[str, str] = {}
    for table in Base.metadata.tables.values():
        for c in table.constraints:
            if isinstance(c, UniqueConstraint) and c.name:
                names[", ".join(f"{table.name}.{col.name}" for col in c.columns)] = f"{table.name}.{c.name}"
    return names


_UNIQUE_KEYS = _unique_key_names()


def _mysql_integrity_error(e: sqlite3.IntegrityError, params: Tuple[Any, ...]) -> pymysql.err.IntegrityError:
    # SQLite: "UNIQUE constraint failed: users.email"
    # MySQL:  (1062, "Duplicate entry '<value>' for key 'users.ux_users_email'")
    text = str(e)
    prefix = "UNIQUE constraint failed: "
    if text.startswith(prefix):
        key = _UNIQUE_KEYS.get(text[len(prefix):], text[len(prefix):])
        value = "-".join(str(p) for p in params)
        return pymysql.err.IntegrityError(1062, f"Duplicate entry '{value}' for key '{key}'")
    return pymysql.err.IntegrityError(1452, text)


class SqliteCursor:
    """Speaks the `%s` paramstyle and dict rows the application expects."""

    def __init__(self, raw: sqlite3.Cursor) -> None:
        self._raw = raw

    def __enter__(self) -> "SqliteCursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        self._raw.close()

    def execute(self, query: str, args: Optional[Tuple[Any, ...]] = None) -> int:
        params = tuple(_coerce(a) for a in (args or ()))
        try:
            self._raw.execute(query.replace("%s", "?"), params)
        except sqlite3.IntegrityError as e:
            raise _mysql_integrity_error(e, params) from e
        return self._raw.rowcount

    def fetchone(self) -> Optional[Dict[str, Any]]:
        row = self._raw.fetchone()
        return dict(row) if row is not None else None

    def fetchall(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._raw.fetchall()]

    @property
    def lastrowid(self) -> Optional[int]:
        return self._raw.lastrowid

    @property
    def rowcount(self) -> int:
        return self._raw.rowcount


class SqliteConnection:
    def __init__(self, path: str) -> None:
        self._raw = sqlite3.connect(path, check_same_thread=False)
        self._raw.row_factory = sqlite3.Row
        self._raw.execute("PRAGMA foreign_keys = ON")

    def cursor(self) -> SqliteCursor:
        return SqliteCursor(self._raw.cursor())

    def commit(self) -> None:
        self._raw.commit()

    def rollback(self) -> None:
        self._raw.rollback()

    def close(self) -> None:
        self._raw.close()


class RecordingGateway:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str]] = []

    def send(self, destination: str, message: str) -> None:
        self.sent.append((destination, message))


# ── Fixtures ──
@pytest.fixture
def db_path(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "policyadmin.sqlite3"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    monkeypatch.setattr("policyadmin.db.get_conn", lambda: SqliteConnection(str(path)))
    return path


@pytest.fixture
def query(db_path: Path):
    """Run a read query straight against the test database."""
    def _query(sql: str, params: Tuple[Any, ...] = ()) -> List[Dict[str, Any]]:
        conn = sqlite3.connect(str(db_path))
        conn.row_factory = sqlite3.Row
        try:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()
    return _query


@pytest.fixture
def upload_dir(tmp_path: Path, monkeypatch) -> Path:
    d = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(d))
    return d


@pytest.fixture
def sms():
    gateway = RecordingGateway()
    app.dependency_overrides[get_notification_gateway] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_notification_gateway, None)


@pytest.fixture
def client(db_path, upload_dir, sms):
    security.clear_rate_limits()
    with TestClient(app) as c:
        yield c


_seq = itertools.count(1)


@pytest.fixture
def make_user(db_path):
    """Create a user and return {"id", "role", "headers"} with a bearer token."""
    def _make(role: str = "client", phone: Optional[str] = "0722222222", password: str = "pass123",
              name: Optional[str] = None) -> Dict[str, Any]:
        n = next(_seq)
        uid = create_user(
            name=name or f"{role.title()} {n}",
            password=password,
            role=role,
            email=f"{role}{n}@example.com",
            username=f"{role}{n}",
            phone=phone,
        )
        token = create_access_token(uid, role)
        return {
            "id": uid,
            "role": role,
            "username": f"{role}{n}",
            "email": f"{role}{n}@example.com",
            "headers": {"Authorization": f"Bearer {token}"},
        }
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def employee(make_user):
    return make_user("employee")


@pytest.fixture
def customer(make_user):
    return make_user("client", phone="0733333333", name="Thandi")


@pytest.fixture
def active_policy(client, employee):
    """A staff-created active policy with one beneficiary."""
    r = client.post(
        "/policies",
        json={
            "policy_type": "funeral",
            "premium_amount": "150.00",
            "holder_name": "Sipho",
            "holder_phone": "0744444444",
            "beneficiaries": [{"name": "Lerato", "relation": "daughter"}],
        },
        headers=employee["headers"],
    )
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def pdf_files():
    """Multipart `documents` parts for the given filenames."""
    def _files(*names: str):
        return [("documents", (n, PDF, "application/pdf")) for n in names]
    return _files
