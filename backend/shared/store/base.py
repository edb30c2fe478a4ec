"""Document store interface.

The hosted document database is an external collaborator. Services only
need a handful of primitives: read/write one document, run a filtered
query over a collection, and take a short-lived exclusive lease.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

# (field path, operator, value); dotted paths address nested map fields
Filter = tuple[str, str, Any]

SUPPORTED_OPERATORS = ("==", ">", ">=", "<", "<=")

LEASE_COLLECTION = "leases"


class StoreError(Exception):
    """Base error for backing store failures."""


class StoreUnavailableError(StoreError):
    """The store could not be reached or answered with an error."""


class StoreConfigError(StoreError):
    """The store is not configured (missing project, credentials or URL)."""


@dataclass
class Document:
    id: str
    data: dict[str, Any] = field(default_factory=dict)


def validate_filters(filters: Sequence[Filter]) -> None:
    for path, op, _ in filters:
        if op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported operator '{op}' for field '{path}'")


class DocumentStore(ABC):
    """Minimal async document store."""

    async def connect(self) -> None:
        """Prepare the store for use (no-op by default)."""

    async def close(self) -> None:
        """Release resources held by the store (no-op by default)."""

    async def check_health(self) -> bool:
        """Return True if a trivial read succeeds."""
        try:
            await self.get_document("system", "health")
            return True
        except StoreError:
            return False

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return the document's fields, or None if it does not exist."""

    @abstractmethod
    async def set_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or fully replace a document in a single write."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: int | None = None,
    ) -> list[Document]:
        """Return documents matching all *filters* (AND), at most *limit*."""

    @abstractmethod
    async def acquire_lease(self, name: str, holder: str, ttl_seconds: float) -> bool:
        """Take the named lease for *ttl_seconds*.

        Succeeds when the lease is free, expired, or already held by *holder*.
        """

    @abstractmethod
    async def release_lease(self, name: str, holder: str) -> None:
        """Release the named lease if *holder* still owns it."""
