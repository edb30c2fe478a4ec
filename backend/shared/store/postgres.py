"""PostgreSQL document store.

Documents are JSONB rows keyed by (collection, doc_id); leases live in
their own table so acquisition is a single conditional upsert.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import asyncpg

from shared.database import DatabaseManager

from .base import Document, DocumentStore, Filter, StoreUnavailableError, validate_filters

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection  TEXT        NOT NULL,
    doc_id      TEXT        NOT NULL,
    data        JSONB       NOT NULL,
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (collection, doc_id)
);

CREATE TABLE IF NOT EXISTS leases (
    name        TEXT        PRIMARY KEY,
    holder      TEXT        NOT NULL,
    expires_at  TIMESTAMPTZ NOT NULL
);
"""

# Errors that mean "the store is unavailable" rather than a programming bug
_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, TimeoutError)


def build_where(filters: Sequence[Filter], first_param: int = 2) -> tuple[str, list[Any]]:
    """Translate filters into a JSONB WHERE fragment and its parameters.

    Values are compared as JSONB, so numbers compare numerically and strings
    lexically; a type mismatch never matches.
    """
    clauses: list[str] = []
    params: list[Any] = []
    index = first_param
    for path, op, value in filters:
        path_param, value_param = f"${index}", f"${index + 1}"
        index += 2
        target = f"data #> {path_param}::text[]"
        clauses.append(
            f"(jsonb_typeof({target}) = jsonb_typeof({value_param}::jsonb) "
            f"AND {target} {'=' if op == '==' else op} {value_param}::jsonb)"
        )
        params.extend([path.split("."), value])
    return " AND ".join(clauses), params


class PostgresStore(DocumentStore):
    """Document store backed by a PostgreSQL JSONB table."""

    def __init__(self, manager: DatabaseManager):
        self.manager = manager

    async def connect(self) -> None:
        await self.manager.connect()
        async with self.manager.acquire() as conn:
            await conn.execute(SCHEMA)
        logger.info("Document store schema ready")

    async def close(self) -> None:
        await self.manager.disconnect()

    async def check_health(self) -> bool:
        return await self.manager.check_health()

    def _acquire(self):
        if not self.manager.is_connected:
            raise StoreUnavailableError("Database pool not connected")
        return self.manager.acquire()

    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            async with self._acquire() as conn:
                data = await conn.fetchval(
                    "SELECT data FROM documents WHERE collection = $1 AND doc_id = $2",
                    collection,
                    doc_id,
                )
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"Failed to read {collection}/{doc_id}: {e}") from e
        if data is None:
            return None
        return data if isinstance(data, dict) else {}

    async def set_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            async with self._acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO documents (collection, doc_id, data, updated_at)
                    VALUES ($1, $2, $3::jsonb, NOW())
                    ON CONFLICT (collection, doc_id)
                    DO UPDATE SET data = EXCLUDED.data, updated_at = NOW()
                    """,
                    collection,
                    doc_id,
                    data,
                )
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"Failed to write {collection}/{doc_id}: {e}") from e

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: int | None = None,
    ) -> list[Document]:
        validate_filters(filters)
        where, params = build_where(filters)
        sql = "SELECT doc_id, data FROM documents WHERE collection = $1"
        if where:
            sql += f" AND {where}"
        sql += " ORDER BY doc_id"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"

        try:
            async with self._acquire() as conn:
                rows = await conn.fetch(sql, collection, *params)
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"Query on {collection} failed: {e}") from e

        return [
            Document(id=row["doc_id"], data=row["data"] if isinstance(row["data"], dict) else {})
            for row in rows
        ]

    async def acquire_lease(self, name: str, holder: str, ttl_seconds: float) -> bool:
        try:
            async with self._acquire() as conn:
                owner = await conn.fetchval(
                    """
                    INSERT INTO leases (name, holder, expires_at)
                    VALUES ($1, $2, NOW() + make_interval(secs => $3))
                    ON CONFLICT (name) DO UPDATE
                        SET holder = EXCLUDED.holder, expires_at = EXCLUDED.expires_at
                        WHERE leases.expires_at < NOW() OR leases.holder = EXCLUDED.holder
                    RETURNING holder
                    """,
                    name,
                    holder,
                    float(ttl_seconds),
                )
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"Failed to acquire lease '{name}': {e}") from e
        return owner == holder

    async def release_lease(self, name: str, holder: str) -> None:
        try:
            async with self._acquire() as conn:
                await conn.execute(
                    "DELETE FROM leases WHERE name = $1 AND holder = $2", name, holder
                )
        except _STORE_ERRORS as e:
            raise StoreUnavailableError(f"Failed to release lease '{name}': {e}") from e
