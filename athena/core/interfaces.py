"""
Core interfaces for the external services the Athena gateway consumes.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .entities import Principal, ResourceDescriptor


class DocumentStore(ABC):
    """Abstract base class for document stores.

    Documents are returned as plain dicts carrying ``id`` and ``revision``
    next to their attributes.
    """

    @abstractmethod
    def list(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """List documents whose attributes equal every filter value."""
        pass

    @abstractmethod
    def get(self, collection: str, document_id: str) -> Dict[str, Any]:
        """Get a document by ID, raising ResourceNotFoundError if absent."""
        pass

    @abstractmethod
    def create(self, collection: str, attributes: Dict[str, Any]) -> Dict[str, Any]:
        """Create a document with a generated ID."""
        pass

    @abstractmethod
    def update(self, collection: str, document_id: str, attributes: Dict[str, Any],
               expected_revision: Optional[str] = None) -> Dict[str, Any]:
        """Merge attributes into a document.

        When ``expected_revision`` is given and the stored revision differs,
        StaleRevisionError is raised and nothing is written.
        """
        pass


class PolicyChecker(ABC):
    """Abstract base class for policy decision points."""

    @abstractmethod
    def check(self, principal_id: str, action: str, resource: ResourceDescriptor) -> bool:
        """Return True when the principal may perform action on resource.

        Raises PolicyCheckError when no decision could be obtained.
        """
        pass

    @abstractmethod
    def sync_resource(self, resource_type: str, resource_id: str, attributes: Dict[str, Any]) -> None:
        """Register or refresh the attributes of a resource instance."""
        pass


class IdentityResolver(ABC):
    """Abstract base class for credential to principal resolution."""

    @abstractmethod
    def resolve(self, credential: str) -> Principal:
        """Resolve a bearer credential, raising AuthenticationError if invalid."""
        pass
