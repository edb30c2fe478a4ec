"""Firestore REST v1 document store.

Uses a shared httpx client and API-key authentication, the same way the
edge functions talk to Firestore without an admin SDK.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

import httpx

from .base import (
    LEASE_COLLECTION,
    Document,
    DocumentStore,
    Filter,
    StoreConfigError,
    StoreUnavailableError,
    validate_filters,
)

logger = logging.getLogger(__name__)

FIRESTORE_BASE = "https://firestore.googleapis.com/v1"

_OPERATORS = {
    "==": "EQUAL",
    ">": "GREATER_THAN",
    ">=": "GREATER_THAN_OR_EQUAL",
    "<": "LESS_THAN",
    "<=": "LESS_THAN_OR_EQUAL",
}

_PRECONDITION_STATUSES = {"FAILED_PRECONDITION", "ALREADY_EXISTS", "ABORTED", "NOT_FOUND"}


# ============================================
# Value codec
# ============================================


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore ``Value`` object."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, list | tuple):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def encode_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {str(key): encode_value(value) for key, value in data.items()}


def decode_value(field: Any) -> Any:
    """Decode a Firestore ``Value`` object. Unknown shapes decode to None."""
    if not isinstance(field, dict):
        return None
    if "stringValue" in field:
        return field["stringValue"]
    if "integerValue" in field:
        try:
            return int(field["integerValue"])
        except (TypeError, ValueError):
            return None
    if "doubleValue" in field:
        return field["doubleValue"]
    if "booleanValue" in field:
        return field["booleanValue"]
    if "timestampValue" in field:
        return field["timestampValue"]
    if "mapValue" in field:
        return decode_fields((field["mapValue"] or {}).get("fields"))
    if "arrayValue" in field:
        values = (field["arrayValue"] or {}).get("values") or []
        return [decode_value(v) for v in values]
    return None


def decode_fields(fields: Any) -> dict[str, Any]:
    if not isinstance(fields, dict):
        return {}
    return {key: decode_value(value) for key, value in fields.items()}


def decode_document(doc: Any) -> Document:
    """Convert a Firestore REST document into a :class:`Document`."""
    if not isinstance(doc, dict):
        return Document(id="")
    name = doc.get("name") or ""
    return Document(id=name.rsplit("/", 1)[-1], data=decode_fields(doc.get("fields")))


def build_structured_query(
    collection: str, filters: Sequence[Filter], limit: int | None
) -> dict[str, Any]:
    query: dict[str, Any] = {"from": [{"collectionId": collection, "allDescendants": False}]}

    field_filters = [
        {
            "fieldFilter": {
                "field": {"fieldPath": path},
                "op": _OPERATORS[op],
                "value": encode_value(value),
            }
        }
        for path, op, value in filters
    ]
    if len(field_filters) == 1:
        query["where"] = field_filters[0]
    elif field_filters:
        query["where"] = {"compositeFilter": {"op": "AND", "filters": field_filters}}

    if limit is not None:
        query["limit"] = limit
    return query


# ============================================
# Store
# ============================================


class FirestoreStore(DocumentStore):
    """Firestore REST client.

    The httpx client is owned by the caller; missing credentials are only
    reported when a request is made.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        project_id: str,
        api_key: str,
        database: str = "(default)",
    ):
        self._http = http
        self.project_id = project_id
        self.api_key = api_key
        self.database = database

    @property
    def documents_url(self) -> str:
        return f"{FIRESTORE_BASE}/projects/{self.project_id}/databases/{self.database}/documents"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        if not self.project_id or not self.api_key:
            raise StoreConfigError("Firebase credentials not configured")

        query_params = {"key": self.api_key}
        if params:
            query_params.update(params)
        try:
            return await self._http.request(
                method, f"{self.documents_url}{path}", params=query_params, json=json
            )
        except httpx.HTTPError as e:
            raise StoreUnavailableError(
                f"Firestore {method} {path} failed: {type(e).__name__}: {e}"
            ) from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise StoreUnavailableError("Malformed Firestore response") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise StoreUnavailableError(f"Firestore API error: {response.status_code}")

    @classmethod
    def _is_precondition_failure(cls, response: httpx.Response) -> bool:
        if response.status_code in (409, 412):
            return True
        if response.status_code != 400:
            return False
        try:
            error = response.json().get("error") or {}
        except (ValueError, AttributeError):
            return False
        return isinstance(error, dict) and error.get("status") in _PRECONDITION_STATUSES

    async def _get_raw(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        response = await self._request("GET", f"/{collection}/{doc_id}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        body = self._json(response)
        return body if isinstance(body, dict) else None

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        raw = await self._get_raw(collection, doc_id)
        if raw is None:
            return None
        return decode_document(raw).data

    async def set_document(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        # PATCH without an update mask replaces every field of the document
        response = await self._request(
            "PATCH", f"/{collection}/{doc_id}", json={"fields": encode_fields(data)}
        )
        self._raise_for_status(response)

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: int | None = None,
    ) -> list[Document]:
        validate_filters(filters)
        body = {"structuredQuery": build_structured_query(collection, filters, limit)}
        response = await self._request("POST", ":runQuery", json=body)
        self._raise_for_status(response)

        results = self._json(response)
        if not isinstance(results, list):
            raise StoreUnavailableError("Malformed Firestore query response")
        return [
            decode_document(item["document"])
            for item in results
            if isinstance(item, dict) and item.get("document")
        ]

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    async def acquire_lease(self, name: str, holder: str, ttl_seconds: float) -> bool:
        now_ms = int(time.time() * 1000)
        current = await self._get_raw(LEASE_COLLECTION, name)

        if current is None:
            precondition = {"currentDocument.exists": "false"}
        else:
            data = decode_document(current).data
            expires_at = data.get("expiresAt")
            owner = data.get("holder")
            if isinstance(expires_at, int) and expires_at > now_ms and owner != holder:
                logger.debug(f"Lease '{name}' held by {owner} for {expires_at - now_ms}ms")
                return False
            precondition = {"currentDocument.updateTime": current.get("updateTime", "")}

        response = await self._request(
            "PATCH",
            f"/{LEASE_COLLECTION}/{name}",
            params=precondition,
            json={
                "fields": encode_fields(
                    {"holder": holder, "expiresAt": now_ms + int(ttl_seconds * 1000)}
                )
            },
        )
        if self._is_precondition_failure(response):
            logger.debug(f"Lease '{name}' taken concurrently by another holder")
            return False
        self._raise_for_status(response)
        return True

    async def release_lease(self, name: str, holder: str) -> None:
        current = await self._get_raw(LEASE_COLLECTION, name)
        if current is None or decode_document(current).data.get("holder") != holder:
            return

        response = await self._request(
            "DELETE",
            f"/{LEASE_COLLECTION}/{name}",
            params={"currentDocument.updateTime": current.get("updateTime", "")},
        )
        if self._is_precondition_failure(response):
            return
        self._raise_for_status(response)
