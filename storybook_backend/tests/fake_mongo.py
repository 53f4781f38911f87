"""
In-memory stand-in for the parts of a Motor database the backend uses.

Unique indexes are enforced on every insert and update and raise pymongo's own
DuplicateKeyError, so page-number collisions surface exactly as they would against
a real mongod. Every call yields to the event loop once, which lets concurrent
coroutines interleave between writes.
"""
import asyncio
import copy
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from storybook_backend.db import mongodb


def _get(doc: Dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _set(doc: Dict[str, Any], path: str, value: Any):
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _compare(value: Any, op: str, arg: Any) -> bool:
    if op == "$in":
        return value in arg
    if op == "$nin":
        return value not in arg
    if op == "$ne":
        return value != arg
    if op == "$eq":
        return value == arg
    if value is None:
        return False
    if op == "$lt":
        return value < arg
    if op == "$lte":
        return value <= arg
    if op == "$gt":
        return value > arg
    if op == "$gte":
        return value >= arg
    raise NotImplementedError(f"Query operator {op} not supported by FakeCollection")


def matches(doc: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    for key, condition in (query or {}).items():
        value = _get(doc, key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(value, op, arg) for op, arg in condition.items()):
                return False
        elif value != condition:
            return False
    return True


def _project(doc: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    projected = {"_id": doc["_id"]} if projection.get("_id", 1) else {}
    for key, include in projection.items():
        if include and key != "_id" and key in doc:
            projected[key] = doc[key]
    return projected


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key, direction: int = 1):
        keys = key if isinstance(key, list) else [(key, direction)]
        for field, field_direction in reversed(keys):
            self._docs.sort(
                key=lambda d: (_get(d, field) is not None, _get(d, field)),
                reverse=field_direction < 0,
            )
        return self

    async def to_list(self, length: Optional[int] = None):
        await asyncio.sleep(0)
        return self._docs if length is None else self._docs[:length]

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.unique_indexes: Dict[str, List[str]] = {}
        # Called as before_update(filter, update) ahead of every update; raise from it to simulate failures
        self.before_update: Optional[Callable[[Dict[str, Any], Dict[str, Any]], None]] = None
        self.update_calls = 0
        # Session passed to each update_one call, in call order
        self.update_sessions: List[Any] = []

    def add_unique_index(self, fields: List[str], name: Optional[str] = None):
        self.unique_indexes[name or "_".join(fields)] = fields

    async def create_index(self, keys, unique: bool = False, name: Optional[str] = None, **kwargs):
        await asyncio.sleep(0)
        fields = [keys] if isinstance(keys, str) else [field for field, _ in keys]
        index_name = name or "_".join(fields)
        if unique:
            self.add_unique_index(fields, index_name)
        return index_name

    def _check_unique(self, candidate: Dict[str, Any]):
        for name, fields in self.unique_indexes.items():
            key = tuple(_get(candidate, f) for f in fields)
            for doc in self.docs:
                if doc["_id"] != candidate["_id"] and tuple(_get(doc, f) for f in fields) == key:
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} index: {name} dup key: {key}",
                        code=11000,
                    )

    async def insert_one(self, document: Dict[str, Any], session=None):
        await asyncio.sleep(0)
        document.setdefault("_id", ObjectId())
        stored = copy.deepcopy(document)
        self._check_unique(stored)
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    async def find_one(self, filter: Optional[Dict[str, Any]] = None, projection=None, session=None):
        await asyncio.sleep(0)
        for doc in self.docs:
            if matches(doc, filter):
                return _project(doc, projection)
        return None

    def find(self, filter: Optional[Dict[str, Any]] = None, projection=None, session=None):
        return FakeCursor([_project(doc, projection) for doc in self.docs if matches(doc, filter)])

    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any], session=None, upsert: bool = False):
        await asyncio.sleep(0)
        self.update_calls += 1
        self.update_sessions.append(session)
        if self.before_update is not None:
            self.before_update(filter, update)
        for index, doc in enumerate(self.docs):
            if matches(doc, filter):
                updated = copy.deepcopy(doc)
                for key, value in update.get("$set", {}).items():
                    _set(updated, key, copy.deepcopy(value))
                self._check_unique(updated)
                modified = int(updated != doc)
                self.docs[index] = updated
                return SimpleNamespace(matched_count=1, modified_count=modified, upserted_id=None)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def delete_one(self, filter: Dict[str, Any], session=None):
        await asyncio.sleep(0)
        for index, doc in enumerate(self.docs):
            if matches(doc, filter):
                del self.docs[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, filter: Dict[str, Any], session=None):
        await asyncio.sleep(0)
        before = len(self.docs)
        self.docs = [doc for doc in self.docs if not matches(doc, filter)]
        return SimpleNamespace(deleted_count=before - len(self.docs))

    async def count_documents(self, filter: Dict[str, Any], session=None):
        await asyncio.sleep(0)
        return sum(1 for doc in self.docs if matches(doc, filter))

    async def distinct(self, key: str, filter: Optional[Dict[str, Any]] = None, session=None):
        await asyncio.sleep(0)
        values = []
        for doc in self.docs:
            if matches(doc, filter):
                value = _get(doc, key)
                if value not in values:
                    values.append(value)
        return values


class FakeTransaction:
    def __init__(self, session: "FakeSession"):
        self.session = session

    async def __aenter__(self):
        self.session.transactions_started += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.session.committed += 1
        else:
            self.session.aborted += 1
        return False


class FakeSession:
    def __init__(self):
        self.transactions_started = 0
        self.committed = 0
        self.aborted = 0
        self.ended = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.ended = True
        return False

    def start_transaction(self) -> FakeTransaction:
        return FakeTransaction(self)


class FakeClient:
    """Hands out sessions that record whether their transaction committed or aborted."""

    def __init__(self):
        self.sessions: List[FakeSession] = []

    async def start_session(self) -> FakeSession:
        await asyncio.sleep(0)
        session = FakeSession()
        self.sessions.append(session)
        return session


class FakeDatabase:
    def __init__(self):
        self._collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


def install_fake_database() -> FakeDatabase:
    """Points storybook_backend.db.mongodb at a fresh fake with the production unique indexes."""
    database = FakeDatabase()
    database.pages.add_unique_index(["book_id", "page_number"], mongodb.PAGE_NUMBER_INDEX)
    database.categories.add_unique_index(["name"], mongodb.CATEGORY_NAME_INDEX)
    mongodb.db = database
    return database


def uninstall_fake_database():
    mongodb.db = None
    mongodb.client = None
