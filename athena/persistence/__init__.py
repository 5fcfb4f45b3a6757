"""
Persistence module for document storage.
"""

from .document_store import InMemoryDocumentStore, RestDocumentStore, DocumentStoreFactory

__all__ = [
    "InMemoryDocumentStore",
    "RestDocumentStore",
    "DocumentStoreFactory",
]
