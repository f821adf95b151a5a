from __future__ import annotations

import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest
from postgrest.exceptions import APIError
from storage3.utils import StorageException


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.modules.auth.schemas import Identity  # noqa: E402
from app.modules.founders.models import FOUNDER_COLUMNS  # noqa: E402
from app.modules.founders.policy import Operation, is_allowed, visible_rows  # noqa: E402
from app.modules.founders.service import FounderService, compute_profile_progress  # noqa: E402
from app.modules.founders import storage as avatar_storage  # noqa: E402


def _api_error(code: str, message: str) -> APIError:
    return APIError({"code": code, "message": message, "hint": None, "details": None})


class FakeResponse:
    def __init__(self, data: Any) -> None:
        self.data = data


class FakeDatabase:
    """In-memory founders table with the same rules the SQL migration declares."""

    def __init__(self) -> None:
        self.founders: dict[str, dict[str, Any]] = {}
        self.auth_users: dict[str, str] = {}
        self.columns = set(FOUNDER_COLUMNS)
        self.buckets = {"avatars"}
        self.objects: dict[str, bytes] = {}
        # Number of upcoming selects that see nothing (replica lag)
        self.hidden_reads = 0
        # Number of upcoming selects that fail at the transport level
        self.unavailable_reads = 0
        # Simulates a misconfigured grant: anon may query and simply sees no rows
        self.anon_privileges = False
        self.select_calls = 0
        # Payloads sent with upsert/update, in order
        self.writes: list[dict[str, Any]] = []
        # storage.buckets select policy for authenticated callers
        self.bucket_select_policy = True
        # Upserts that commit but return no representation
        self.empty_upserts = False
        self._ticks = 0

    def now(self) -> str:
        self._ticks += 1
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        return (base + timedelta(seconds=self._ticks)).isoformat()

    def add_identity(self, email: str) -> Identity:
        identity_id = str(uuid.uuid4())
        self.auth_users[identity_id] = email
        return Identity(id=identity_id, email=email, confirmed=True)

    def insert_raw(self, **row: Any) -> dict[str, Any]:
        full = self.defaults()
        full.update(row)
        self.founders[full["id"]] = full
        return full

    def defaults(self) -> dict[str, Any]:
        row = {column: None for column in FOUNDER_COLUMNS}
        row.update(profile_visible=True, onboarding_completed=False, profile_progress=0, created_at=self.now())
        return row

    def client(self, identity: Identity | None = None, service: bool = False) -> "FakeSupabase":
        return FakeSupabase(self, identity.id if identity else None, service)

    def before_write(self, old: dict[str, Any] | None, new: dict[str, Any]) -> dict[str, Any]:
        if old is not None and old.get("onboarding_completed") and not new.get("onboarding_completed"):
            new["onboarding_completed"] = True
        new["profile_progress"] = compute_profile_progress(new)
        if old is not None and {k: v for k, v in new.items() if k != "updated_at"} != {k: v for k, v in old.items() if k != "updated_at"}:
            new["updated_at"] = self.now()
        return new

    def check_email_unique(self, row: dict[str, Any]) -> None:
        for other in self.founders.values():
            if other["id"] != row["id"] and other.get("email") == row.get("email"):
                raise _api_error("23505", 'duplicate key value violates unique constraint "founders_email_key"')


class FakeQuery:
    def __init__(self, db: FakeDatabase, actor_id: str | None, service: bool) -> None:
        self.db = db
        self.actor_id = actor_id
        self.service = service
        self.action = "select"
        self.columns = "*"
        self.payload: dict[str, Any] | None = None
        self.filters: list[tuple[str, Any]] = []
        self.or_expr: str | None = None
        self.order_by: tuple[str, bool] | None = None
        self._limit: int | None = None
        self._offset = 0

    def select(self, columns: str = "*") -> "FakeQuery":
        self.action = "select"
        self.columns = columns
        return self

    def upsert(self, payload: dict[str, Any], on_conflict: str = "") -> "FakeQuery":
        assert on_conflict == "id"
        self.action = "upsert"
        self.payload = dict(payload)
        self.db.writes.append(dict(payload))
        return self

    def insert(self, payload: dict[str, Any]) -> "FakeQuery":
        raise AssertionError("plain insert is never used for founders")

    def update(self, data: dict[str, Any]) -> "FakeQuery":
        self.action = "update"
        self.payload = dict(data)
        self.db.writes.append(dict(data))
        return self

    def delete(self) -> "FakeQuery":
        self.action = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, value))
        return self

    def or_(self, expr: str) -> "FakeQuery":
        self.or_expr = expr
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def offset(self, count: int) -> "FakeQuery":
        self._offset = count
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        if any(row.get(column) != value for column, value in self.filters):
            return False
        if self.or_expr:
            hits = False
            for clause in self.or_expr.split(","):
                column, op, pattern = clause.split(".", 2)
                assert op == "ilike"
                needle = pattern.strip("%").lower()
                if needle in (row.get(column) or "").lower():
                    hits = True
            return hits
        return True

    def _allowed(self, operation: Operation, row: dict[str, Any]) -> bool:
        return self.service or is_allowed(operation, self.actor_id, row)

    def execute(self) -> FakeResponse:
        if not self.service and self.actor_id is None and not self.db.anon_privileges:
            raise _api_error("42501", "permission denied for table founders")
        return getattr(self, f"_execute_{self.action}")()

    def _execute_select(self) -> FakeResponse:
        self.db.select_calls += 1
        if self.db.unavailable_reads > 0:
            self.db.unavailable_reads -= 1
            raise httpx.ConnectError("connection reset by peer")
        if self.columns != "*":
            for column in (c.strip() for c in self.columns.split(",")):
                if column not in self.db.columns:
                    raise _api_error("42703", f"column founders.{column} does not exist")
        rows = list(self.db.founders.values())
        if not self.service:
            rows = visible_rows(self.actor_id, rows)
        if self.db.hidden_reads > 0:
            self.db.hidden_reads -= 1
            rows = []
        rows = [row for row in rows if self._matches(row)]
        if self.order_by:
            column, desc = self.order_by
            rows.sort(key=lambda r: r.get(column) or "", reverse=desc)
        rows = rows[self._offset:]
        if self._limit is not None:
            rows = rows[: self._limit]
        if self.columns != "*":
            keep = [c.strip() for c in self.columns.split(",")]
            rows = [{c: row.get(c) for c in keep} for row in rows]
        return FakeResponse([dict(row) for row in rows])

    def _execute_upsert(self) -> FakeResponse:
        payload = self.payload
        existing = self.db.founders.get(payload["id"])
        if existing is not None:
            if not self._allowed(Operation.UPDATE, existing):
                raise _api_error("42501", 'new row violates row-level security policy (USING expression) for table "founders"')
            row = self.db.before_write(existing, {**existing, **payload})
        else:
            if not self._allowed(Operation.INSERT, payload):
                raise _api_error("42501", 'new row violates row-level security policy for table "founders"')
            row = self.db.before_write(None, {**self.db.defaults(), **payload})
        self.db.check_email_unique(row)
        self.db.founders[row["id"]] = row
        if self.db.empty_upserts:
            return FakeResponse([])
        return FakeResponse([dict(row)])

    def _execute_update(self) -> FakeResponse:
        updated = []
        for old in list(self.db.founders.values()):
            if not self._matches(old) or not self._allowed(Operation.UPDATE, old):
                continue
            new = self.db.before_write(old, {**old, **self.payload})
            if not self._allowed(Operation.UPDATE, new):
                raise _api_error("42501", 'new row violates row-level security policy for table "founders"')
            self.db.check_email_unique(new)
            del self.db.founders[old["id"]]
            self.db.founders[new["id"]] = new
            updated.append(dict(new))
        return FakeResponse(updated)

    def _execute_delete(self) -> FakeResponse:
        deleted = []
        for row in list(self.db.founders.values()):
            if self._matches(row) and self._allowed(Operation.DELETE, row):
                deleted.append(self.db.founders.pop(row["id"]))
        return FakeResponse(deleted)


class FakeRpc:
    def __init__(self, db: FakeDatabase, actor_id: str | None, name: str, params: dict[str, Any]) -> None:
        self.db = db
        self.actor_id = actor_id
        self.name = name
        self.params = params

    def execute(self) -> FakeResponse:
        assert self.name == "adopt_orphan_founder"
        if self.actor_id is None:
            raise _api_error("42501", "not authenticated")
        email = self.params["p_email"].strip().lower()
        if (self.db.auth_users.get(self.actor_id) or "").lower() != email:
            raise _api_error("42501", f"email {email} does not belong to the caller")
        holder = next((r for r in self.db.founders.values() if r.get("email") == email), None)
        if holder is None:
            return FakeResponse(None)
        if holder["id"] == self.actor_id:
            return FakeResponse(dict(holder))
        if holder["id"] in self.db.auth_users:
            raise _api_error("23505", f"email {email} is held by another identity")
        del self.db.founders[holder["id"]]
        row = self.db.before_write(holder, {**holder, "id": self.actor_id})
        self.db.founders[row["id"]] = row
        return FakeResponse(dict(row))


class FakeBucket:
    def __init__(self, db: FakeDatabase, name: str) -> None:
        self.db = db
        self.name = name

    def upload(self, path: str, file: bytes, file_options: dict[str, str] | None = None) -> dict[str, str]:
        self.db.objects[f"{self.name}/{path}"] = file
        return {"path": path}

    def get_public_url(self, path: str) -> str:
        return f"https://fake.supabase.co/storage/v1/object/public/{self.name}/{path}"


class FakeStorage:
    def __init__(self, db: FakeDatabase, service: bool = False) -> None:
        self.db = db
        self.service = service

    def get_bucket(self, name: str) -> dict[str, str]:
        # storage.buckets is under RLS: callers only see buckets a policy exposes
        hidden = not self.service and not self.db.bucket_select_policy
        if hidden or name not in self.db.buckets:
            raise StorageException({"statusCode": 404, "error": "Bucket not found", "message": "Bucket not found"})
        return {"id": name, "name": name}

    def from_(self, name: str) -> FakeBucket:
        return FakeBucket(self.db, name)


class FakeSupabase:
    def __init__(self, db: FakeDatabase, actor_id: str | None, service: bool) -> None:
        self.db = db
        self.actor_id = actor_id
        self.service = service
        self.storage = FakeStorage(db, service)

    def table(self, name: str) -> FakeQuery:
        assert name == "founders"
        return FakeQuery(self.db, self.actor_id, self.service)

    def rpc(self, name: str, params: dict[str, Any]) -> FakeRpc:
        return FakeRpc(self.db, self.actor_id, name, params)


@pytest.fixture(autouse=True)
def _fresh_bucket_checks():
    avatar_storage._VERIFIED_BUCKETS.clear()
    yield
    avatar_storage._VERIFIED_BUCKETS.clear()


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def alice(db: FakeDatabase) -> Identity:
    return db.add_identity("alice@example.com")


@pytest.fixture
def bob(db: FakeDatabase) -> Identity:
    return db.add_identity("bob@example.com")


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def service_for(db: FakeDatabase, sleeps: list[float]):
    def _build(identity: Identity | None) -> FounderService:
        return FounderService(db.client(identity), identity, sleep=sleeps.append)

    return _build
