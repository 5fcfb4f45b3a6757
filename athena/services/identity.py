"""
Identity resolution: bearer credential to principal.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from ..core.entities import Principal
from ..core.enums import Role
from ..core.exceptions import AuthenticationError, ConfigurationError, UpstreamError
from ..core.interfaces import IdentityResolver


logger = logging.getLogger(__name__)


class RestIdentityResolver(IdentityResolver):
    """Resolves Appwrite-style session JWTs through the account API.

    Roles live in the account preferences under ``roles``; an account without
    them resolves to Role.UNASSIGNED.
    """

    def __init__(self, endpoint: str = "", project_id: str = "", timeout: float = 5.0,
                 session: Optional[requests.Session] = None):
        if not endpoint:
            raise ConfigurationError("Identity service endpoint is required")
        self._endpoint = endpoint.rstrip("/")
        self._project_id = project_id
        self._timeout = timeout
        self._session = session or requests.Session()

    def _get(self, path: str, credential: str) -> requests.Response:
        headers = {
            "X-Appwrite-Project": self._project_id,
            "X-Appwrite-JWT": credential,
        }
        try:
            return self._session.get(f"{self._endpoint}{path}", headers=headers, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Identity service unreachable: {str(e)}", error_code="identity_unreachable")

    def resolve(self, credential):
        if not credential:
            raise AuthenticationError("Credential is required", error_code="missing_credential")

        response = self._get("/account", credential)
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid or expired token", error_code="invalid_credential")
        if response.status_code != 200:
            raise UpstreamError(f"Identity service returned {response.status_code}",
                                error_code="identity_error")
        account = response.json()

        roles: List[str] = []
        prefs_response = self._get("/account/prefs", credential)
        if prefs_response.status_code == 200:
            raw_roles = prefs_response.json().get("roles")
            if isinstance(raw_roles, list):
                roles = [role for role in raw_roles if isinstance(role, str)]
        else:
            logger.warning("Could not read preferences for account %s: %s",
                           account.get("$id"), prefs_response.status_code)

        return Principal(
            id=account.get("$id", ""),
            role=Role.from_roles(roles),
            name=account.get("name", ""),
            email=account.get("email", ""),
            roles=roles,
        )


class StaticIdentityResolver(IdentityResolver):
    """Token table for local runs and tests: token -> {id, roles, name, email}."""

    def __init__(self, tokens: Optional[Dict[str, Dict[str, Any]]] = None):
        self._tokens = dict(tokens or {})

    def register(self, credential: str, principal_id: str, roles: List[str],
                 name: str = "", email: str = "") -> Principal:
        self._tokens[credential] = {"id": principal_id, "roles": roles, "name": name, "email": email}
        return self.resolve(credential)

    def resolve(self, credential):
        entry = self._tokens.get(credential) if credential else None
        if entry is None:
            raise AuthenticationError("Invalid or expired token", error_code="invalid_credential")
        roles = list(entry.get("roles", []))
        return Principal(
            id=entry["id"],
            role=Role.from_roles(roles),
            name=entry.get("name", ""),
            email=entry.get("email", ""),
            roles=roles,
        )


class RoleSyncingIdentityResolver(IdentityResolver):
    """Wraps a resolver and hands every resolved principal to ``on_resolve``.

    Used to keep the in-process rule checker's role table in step with
    whatever identity backend is configured.
    """

    def __init__(self, inner: IdentityResolver, on_resolve: Callable[[Principal], None]):
        self.inner = inner
        self._on_resolve = on_resolve

    def resolve(self, credential):
        principal = self.inner.resolve(credential)
        self._on_resolve(principal)
        return principal


class IdentityResolverFactory:
    """Factory for creating identity resolver instances."""

    @staticmethod
    def create_resolver(identity_type: str, **kwargs) -> IdentityResolver:
        if identity_type.lower() == "static":
            return StaticIdentityResolver(tokens=kwargs.get("tokens"))
        elif identity_type.lower() == "rest":
            return RestIdentityResolver(**kwargs)
        else:
            raise ConfigurationError(f"Unsupported identity resolver type: {identity_type}")
