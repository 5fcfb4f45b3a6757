"""
Document store implementations and connection handling.
"""

import copy
import json
import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

import requests

from ..core.exceptions import (
    ConfigurationError, ResourceNotFoundError, StaleRevisionError, UpstreamError
)
from ..core.interfaces import DocumentStore


logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process document store with per-document revisions."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._revision_counter = 0
        self._lock = threading.RLock()

    def _next_revision(self) -> str:
        self._revision_counter += 1
        return str(self._revision_counter)

    def _export(self, document_id: str, stored: Dict[str, Any]) -> Dict[str, Any]:
        document = copy.deepcopy(stored["data"])
        document["id"] = document_id
        document["revision"] = stored["revision"]
        return document

    def list(self, collection, filters=None):
        """List documents matching all filters."""
        with self._lock:
            documents = self._collections.get(collection, {})
            results = []
            for document_id, stored in documents.items():
                data = stored["data"]
                if filters and any(data.get(key) != value for key, value in filters.items()):
                    continue
                results.append(self._export(document_id, stored))
            return results

    def get(self, collection, document_id):
        """Get a document by ID."""
        with self._lock:
            stored = self._collections.get(collection, {}).get(document_id)
            if stored is None:
                raise ResourceNotFoundError(
                    f"Document {document_id} not found in {collection}",
                    error_code="document_not_found"
                )
            return self._export(document_id, stored)

    def create(self, collection, attributes):
        """Create a document with a generated ID."""
        with self._lock:
            document_id = uuid.uuid4().hex
            stored = {"data": copy.deepcopy(attributes), "revision": self._next_revision()}
            self._collections.setdefault(collection, {})[document_id] = stored
            return self._export(document_id, stored)

    def update(self, collection, document_id, attributes, expected_revision=None):
        """Merge attributes into a document, checking the revision if asked."""
        with self._lock:
            stored = self._collections.get(collection, {}).get(document_id)
            if stored is None:
                raise ResourceNotFoundError(
                    f"Document {document_id} not found in {collection}",
                    error_code="document_not_found"
                )
            if expected_revision is not None and stored["revision"] != expected_revision:
                raise StaleRevisionError(
                    f"Document {document_id} changed since revision {expected_revision}",
                    error_code="stale_revision",
                    details={"current_revision": stored["revision"]}
                )
            stored["data"].update(copy.deepcopy(attributes))
            stored["revision"] = self._next_revision()
            return self._export(document_id, stored)


class RestDocumentStore(DocumentStore):
    """Document store backed by an Appwrite-style REST database API.

    The service has no native conditional update, so ``expected_revision`` is
    compared against ``$updatedAt`` read just before the write. A writer that
    lands between that read and the PATCH still wins.
    """

    PAGE_SIZE = 100

    def __init__(self, endpoint: str = "", project_id: str = "", api_key: str = "",
                 database_id: str = "default", timeout: float = 5.0,
                 session: Optional[requests.Session] = None):
        if not endpoint:
            raise ConfigurationError("Document store endpoint is required")
        self._endpoint = endpoint.rstrip("/")
        self._database_id = database_id
        self._timeout = timeout
        self._session = session or requests.Session()
        self._headers = {
            "Content-Type": "application/json",
            "X-Appwrite-Project": project_id,
            "X-Appwrite-Key": api_key,
        }

    def _documents_url(self, collection: str, document_id: Optional[str] = None) -> str:
        url = f"{self._endpoint}/databases/{self._database_id}/collections/{collection}/documents"
        if document_id:
            url = f"{url}/{document_id}"
        return url

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._session.request(
                method, url, headers=self._headers, timeout=self._timeout, **kwargs
            )
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Document store unreachable: {str(e)}", error_code="store_unreachable")

        if response.status_code == 404:
            raise ResourceNotFoundError("Document not found", error_code="document_not_found",
                                        details={"url": url})
        if response.status_code >= 400:
            raise UpstreamError(
                f"Document store returned {response.status_code}",
                error_code="store_error",
                details={"url": url, "body": response.text[:500]}
            )
        return response.json()

    @staticmethod
    def _normalize(raw: Dict[str, Any]) -> Dict[str, Any]:
        """Strip system attributes, keeping the ID and update stamp as revision."""
        document = {key: value for key, value in raw.items() if not key.startswith("$")}
        document["id"] = raw.get("$id")
        document["revision"] = raw.get("$updatedAt")
        return document

    def list(self, collection, filters=None):
        """List documents, following pagination until the reported total is reached."""
        base_queries = [
            json.dumps({"method": "equal", "attribute": key, "values": [value]})
            for key, value in (filters or {}).items()
        ]
        documents: List[Dict[str, Any]] = []
        offset = 0
        while True:
            queries = base_queries + [
                json.dumps({"method": "limit", "values": [self.PAGE_SIZE]}),
                json.dumps({"method": "offset", "values": [offset]}),
            ]
            payload = self._request("GET", self._documents_url(collection), params={"queries[]": queries})
            page = payload.get("documents", [])
            documents.extend(self._normalize(raw) for raw in page)
            offset += len(page)
            if not page or offset >= payload.get("total", 0):
                return documents

    def get(self, collection, document_id):
        """Get a document by ID."""
        return self._normalize(self._request("GET", self._documents_url(collection, document_id)))

    def create(self, collection, attributes):
        """Create a document, letting the service generate the ID."""
        payload = {"documentId": "unique()", "data": attributes}
        return self._normalize(self._request("POST", self._documents_url(collection), json=payload))

    def update(self, collection, document_id, attributes, expected_revision=None):
        """Patch a document."""
        if expected_revision is not None:
            current = self.get(collection, document_id)
            if current["revision"] != expected_revision:
                raise StaleRevisionError(
                    f"Document {document_id} changed since revision {expected_revision}",
                    error_code="stale_revision",
                    details={"current_revision": current["revision"]}
                )
        payload = {"data": attributes}
        return self._normalize(
            self._request("PATCH", self._documents_url(collection, document_id), json=payload)
        )


class DocumentStoreFactory:
    """Factory for creating document store instances."""

    @staticmethod
    def create_store(store_type: str, **kwargs) -> DocumentStore:
        """Create a document store instance based on type."""
        if store_type.lower() == "memory":
            return InMemoryDocumentStore()
        elif store_type.lower() == "rest":
            return RestDocumentStore(**kwargs)
        else:
            raise ConfigurationError(f"Unsupported document store type: {store_type}")
