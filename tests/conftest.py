"""Shared fixtures: an in-memory stand-in for the supabase-py client."""

import time
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from supabase_client import SupaConfig


class FakeQuery:
    """Chainable PostgREST-style builder over a FakeSupabase table."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.op = None
        self.payload = None
        self.filters = []
        self.order_by = None

    def select(self, _cols="*"):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, patch):
        self.op = "update"
        self.payload = patch
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, col, value):
        self.filters.append((col, value))
        return self

    def order(self, col, desc=False):
        self.order_by = (col, desc)
        return self

    def _match(self, row):
        return all(row.get(c) == v for c, v in self.filters)

    def execute(self):
        self.db.calls.append((self.op, self.table, list(self.filters), self.payload))
        if self.op in self.db.fail_ops:
            raise RuntimeError(f"backend down ({self.op})")
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "select":
            out = [dict(r) for r in rows if self._match(r)]
            if self.order_by:
                col, desc = self.order_by
                out.sort(key=lambda r: r.get(col) or "", reverse=desc)
            # Snapshot is taken first, so a slow select returns stale rows.
            if self.db.select_delays:
                time.sleep(self.db.select_delays.pop(0))
            return SimpleNamespace(data=out)

        if self.op == "insert":
            if self.db.reject_insert and self.db.reject_insert(self.payload):
                raise RuntimeError("insert rejected")
            row = dict(self.payload)
            row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            rows.append(row)
            return SimpleNamespace(data=[dict(row)])

        if self.op == "update":
            hit = [r for r in rows if self._match(r)]
            for r in hit:
                r.update(self.payload)
            return SimpleNamespace(data=[dict(r) for r in hit])

        if self.op == "delete":
            hit = [r for r in rows if self._match(r)]
            self.db.tables[self.table] = [r for r in rows if not self._match(r)]
            return SimpleNamespace(data=[dict(r) for r in hit])

        raise AssertionError(f"unexpected op {self.op}")


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.fail_ops = set()
        self.reject_insert = None
        self.select_delays = []
        self.auth = MagicMock()
        self.postgrest = MagicMock()

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def config():
    return SupaConfig(url="https://example.supabase.co", key="test-key", app_id="test-app")


@pytest.fixture
def fake_client():
    return FakeSupabase()


@pytest.fixture
def snapshot():
    """Current list for a user, read through a throwaway subscription."""
    async def _snapshot(store, user_id):
        got = []
        sub = await store.subscribe(user_id, got.append)
        sub.cancel()
        return got[-1] if got else []
    return _snapshot


@pytest.fixture
def make_event():
    """Factory for event records as the store delivers them."""
    def _make(company="ACME", date="2024-05-10", event_type="wedding",
              wreath=False, money=False, telegram=False, event_id=None, note=""):
        checklist = {"wreath": wreath, "money": money, "telegram": telegram}
        return {
            "id": event_id or str(uuid.uuid4()),
            "company_name": company,
            "event_type": event_type,
            "date": date,
            "note": note,
            "checklist": checklist,
            "is_completed": all(checklist.values()),
            "created_at": None,
        }
    return _make
