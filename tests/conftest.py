import copy
import operator
from collections.abc import Sequence
from typing import Any

import pytest

from shared.store import Document, DocumentStore, Filter, StoreUnavailableError

_OPS = {
    "==": operator.eq,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


def _lookup(data: dict, path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


class FakeStore(DocumentStore):
    """In-memory document store with switchable failures."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}
        self.leases: dict[str, tuple[str, float]] = {}
        self.now = 0.0

        self.fail_queries: set[str] = set()
        self.fail_reads: set[tuple[str, str]] = set()
        self.fail_writes: set[tuple[str, str]] = set()
        self.fail_all = False

        self.reads: list[tuple[str, str]] = []
        self.writes: list[tuple[str, str, dict]] = []
        self.queries: list[tuple[str, tuple, int | None]] = []

    # -- helpers --

    def put(self, collection: str, doc_id: str, data: dict) -> None:
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def doc(self, collection: str, doc_id: str) -> dict | None:
        return self.collections.get(collection, {}).get(doc_id)

    def _check(self) -> None:
        if self.fail_all:
            raise StoreUnavailableError("store down")

    # -- DocumentStore --

    async def get_document(self, collection, doc_id):
        self._check()
        self.reads.append((collection, doc_id))
        if (collection, doc_id) in self.fail_reads:
            raise StoreUnavailableError(f"read {collection}/{doc_id} failed")
        data = self.doc(collection, doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def set_document(self, collection, doc_id, data):
        self._check()
        if (collection, doc_id) in self.fail_writes:
            raise StoreUnavailableError(f"write {collection}/{doc_id} failed")
        self.writes.append((collection, doc_id, copy.deepcopy(data)))
        self.put(collection, doc_id, data)

    async def query(self, collection, filters: Sequence[Filter] = (), limit=None):
        self._check()
        self.queries.append((collection, tuple(filters), limit))
        if collection in self.fail_queries:
            raise StoreUnavailableError(f"query {collection} failed")
        results = []
        for doc_id, data in self.collections.get(collection, {}).items():
            matched = True
            for path, op, value in filters:
                field = _lookup(data, path)
                try:
                    matched = field is not None and _OPS[op](field, value)
                except TypeError:
                    matched = False
                if not matched:
                    break
            if matched:
                results.append(Document(id=doc_id, data=copy.deepcopy(data)))
        return results[:limit] if limit is not None else results

    async def acquire_lease(self, name, holder, ttl_seconds):
        self._check()
        current = self.leases.get(name)
        if current and current[1] > self.now and current[0] != holder:
            return False
        self.leases[name] = (holder, self.now + ttl_seconds)
        return True

    async def release_lease(self, name, holder):
        self._check()
        current = self.leases.get(name)
        if current and current[0] == holder:
            del self.leases[name]


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def live_match(votes1: int, votes2: int, **extra) -> dict:
    data = {
        "status": "live",
        "song1": {
            "votes": votes1,
            "title": "GODS (ft. NewJeans)",
            "shortTitle": "GODS",
            "youtubeUrl": "https://www.youtube.com/watch?v=C3GouGa0noM",
        },
        "song2": {
            "votes": votes2,
            "title": "RISE (ft. The Glitch Mob, Mako, and The Word Alive)",
            "youtubeUrl": "https://youtu.be/fB8TyLTD7EE",
        },
    }
    data.update(extra)
    return data


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
