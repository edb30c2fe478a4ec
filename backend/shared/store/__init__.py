"""Backing document store implementations."""

import httpx

from shared.config import Settings, StoreBackend
from shared.database import DatabaseManager, PoolConfig

from .base import (
    LEASE_COLLECTION,
    Document,
    DocumentStore,
    Filter,
    StoreConfigError,
    StoreError,
    StoreUnavailableError,
)
from .firestore import FirestoreStore
from .postgres import PostgresStore


def create_store(settings: Settings, http: httpx.AsyncClient, service: str) -> DocumentStore:
    """Build the configured document store for *service* (``edge`` or ``aggregator``)."""
    if settings.store_backend == StoreBackend.POSTGRES:
        if not settings.database_url:
            raise StoreConfigError("DATABASE_URL is required for the postgres store backend")
        manager = DatabaseManager(settings.database_url, PoolConfig.for_service(service))
        return PostgresStore(manager)
    return FirestoreStore(http, settings.firebase_project_id, settings.firebase_api_key)


__all__ = [
    "LEASE_COLLECTION",
    "Document",
    "DocumentStore",
    "Filter",
    "FirestoreStore",
    "PostgresStore",
    "StoreConfigError",
    "StoreError",
    "StoreUnavailableError",
    "create_store",
]
