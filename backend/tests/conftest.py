"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths plus an in-memory stand-in for the
    Motor database covering the calls the match store and audit log make.
    Transactions are emulated with a per-task undo journal so a raised error
    rolls back exactly the writes of the failing unit of work.
"""

from __future__ import annotations

import asyncio
import contextvars
import copy
import sys
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace

import pytest
from pymongo.errors import DuplicateKeyError

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

_journal: contextvars.ContextVar[list | None] = contextvars.ContextVar("fake_tx_journal", default=None)


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in (query or {}).items():
        value = doc.get(key)
        if isinstance(cond, dict) and "$in" in cond:
            if value not in cond["$in"]:
                return False
        elif isinstance(cond, dict) and "$size" in cond:
            if not isinstance(value, list) or len(value) != cond["$size"]:
                return False
        elif value != cond:
            return False
    return True


def _project(doc: dict, projection: dict | None) -> dict:
    out = copy.deepcopy(doc)
    if not projection:
        return out
    if any(v for k, v in projection.items() if k != "_id"):
        keep = {k for k, v in projection.items() if v}
        if projection.get("_id", 1):
            keep.add("_id")
        return {k: v for k, v in out.items() if k in keep}
    for key, flag in projection.items():
        if not flag:
            out.pop(key, None)
    return out


class _FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._limit = 0

    def sort(self, key: str, direction: int = 1):
        self._docs.sort(key=lambda d: (d.get(key) is None, d.get(key)), reverse=direction < 0)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    async def to_list(self, length: int | None = None):
        await asyncio.sleep(0)
        docs = self._docs
        for bound in (self._limit, length):
            if bound:
                docs = docs[:bound]
        return docs


class FakeCollection:
    def __init__(self, name: str, unique: tuple[tuple[str, ...], ...] = ()):
        self.name = name
        self.docs: list[dict] = []
        self._unique = unique
        self.database = None

    def _record(self, op: str, doc: dict, before: dict | None = None, index: int = 0) -> None:
        journal = _journal.get()
        if journal is not None:
            journal.append((self, op, doc, before, index))

    async def find_one(self, query, projection=None, session=None):
        await asyncio.sleep(0)
        for doc in self.docs:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None, session=None):
        return _FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query or {})])

    def aggregate(self, pipeline, session=None):
        docs = [copy.deepcopy(d) for d in self.docs]
        for stage in pipeline:
            (op, spec), = stage.items()
            if op == "$match":
                docs = [d for d in docs if _matches(d, spec)]
            elif op == "$sort":
                for key, direction in reversed(list(spec.items())):
                    docs.sort(key=lambda d: (d.get(key) is None, d.get(key)), reverse=direction < 0)
            elif op == "$lookup":
                foreign = getattr(self.database, spec["from"]).docs
                for doc in docs:
                    doc[spec["as"]] = [
                        copy.deepcopy(f) for f in foreign
                        if f.get(spec["foreignField"]) == doc.get(spec["localField"])
                    ]
            elif op == "$limit":
                docs = docs[:spec]
            elif op == "$project":
                docs = [_project(d, spec) for d in docs]
            else:
                raise NotImplementedError(f"fake aggregate does not support {op}")
        return _FakeCursor(docs)

    async def count_documents(self, query, session=None):
        await asyncio.sleep(0)
        return sum(1 for d in self.docs if _matches(d, query))

    async def insert_one(self, doc, session=None):
        await asyncio.sleep(0)
        for fields in self._unique:
            key = tuple(doc.get(f) for f in fields)
            if any(tuple(d.get(f) for f in fields) == key for d in self.docs):
                raise DuplicateKeyError(f"E11000 duplicate key on {self.name} {fields}")
        doc.setdefault("_id", str(uuid.uuid4()))
        stored = copy.deepcopy(doc)
        self.docs.append(stored)
        self._record("insert", stored)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def delete_one(self, query, session=None):
        await asyncio.sleep(0)
        for idx, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[idx]
                self._record("delete", doc, index=idx)
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def update_one(self, query, update, session=None, upsert=False):
        await asyncio.sleep(0)
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                changes = update.get("$set", {})
                modified = any(doc.get(k) != v for k, v in changes.items())
                doc.update(copy.deepcopy(changes))
                self._record("update", doc, before=before)
                return SimpleNamespace(matched_count=1, modified_count=1 if modified else 0)
        return SimpleNamespace(matched_count=0, modified_count=0)

    def undo(self, op: str, doc: dict, before: dict | None, index: int) -> None:
        if op == "insert":
            self.docs = [d for d in self.docs if d is not doc]
        elif op == "delete":
            self.docs.insert(min(index, len(self.docs)), doc)
        elif op == "update":
            doc.clear()
            doc.update(before or {})


class FakeDatabase:
    def __init__(self):
        self.wager_matches = FakeCollection("wager_matches", unique=(("_id",),))
        self.wager_participants = FakeCollection(
            "wager_participants", unique=(("match_id", "user_id"),),
        )
        self.audit_logs = FakeCollection("audit_logs", unique=(("seq",),))
        for coll in (self.wager_matches, self.wager_participants, self.audit_logs):
            coll.database = self

    async def command(self, name):
        return {"ok": 1.0}

    @asynccontextmanager
    async def transaction(self):
        journal: list = []
        token = _journal.set(journal)
        try:
            yield None
        except BaseException:
            for coll, op, doc, before, index in reversed(journal):
                coll.undo(op, doc, before, index)
            raise
        finally:
            _journal.reset(token)


@pytest.fixture
def fake_db(monkeypatch):
    import wagerdesk.database as _db
    from wagerdesk.services import audit_service

    db = FakeDatabase()
    monkeypatch.setattr(_db, "db", db)
    monkeypatch.setattr(_db, "transaction", db.transaction)
    audit_service.audit_sequence.reset()
    yield db
    audit_service.audit_sequence.reset()


@pytest.fixture
def published_events(monkeypatch):
    """Capture events instead of delivering them through the bus."""
    from wagerdesk.services.event_bus import event_bus

    events: list = []

    async def _publish(event):
        events.append(event)

    monkeypatch.setattr(event_bus, "publish", _publish)
    return events


class FakePlatform:
    def __init__(self, *, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.created: list[dict] = []
        self.messages: list[tuple[str, str]] = []

    async def create_isolated_space(self, match_id, access_set, *, name, topic):
        from wagerdesk.providers.platform_bridge import PlatformUnavailable

        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise PlatformUnavailable("bridge down")
        self.created.append({"match_id": match_id, "access_set": list(access_set), "name": name})
        return f"space-{len(self.created)}"

    async def notify_space(self, space_ref, message):
        from wagerdesk.providers.platform_bridge import PlatformUnavailable

        if self.fail:
            raise PlatformUnavailable("bridge down")
        self.messages.append((space_ref, message))


@pytest.fixture
def fake_platform(monkeypatch):
    from wagerdesk.services import checkout_service
    from wagerdesk.services.event_handlers import notify_handlers

    platform = FakePlatform()
    monkeypatch.setattr(checkout_service, "platform_bridge", platform)
    monkeypatch.setattr(notify_handlers, "platform_bridge", platform)
    return platform
