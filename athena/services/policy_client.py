"""
HTTP client for a hosted Permit-style policy decision point.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..core.entities import ResourceDescriptor
from ..core.enums import Role
from ..core.exceptions import ConfigurationError, PolicyCheckError, UpstreamError
from ..core.interfaces import PolicyChecker
from ..core.policy_engine import RuleBasedPolicyChecker


logger = logging.getLogger(__name__)


class RemotePolicyChecker(PolicyChecker):
    """Allow/deny checks against the PDP sidecar, attribute sync against the management API."""

    def __init__(self, token: str = "", pdp_url: str = "http://localhost:7766",
                 api_url: str = "https://api.permit.io",
                 project: str = "default", environment: str = "development",
                 tenant: str = "default", timeout: float = 2.0,
                 session: Optional[requests.Session] = None):
        if not token:
            raise ConfigurationError("A policy service token is required")
        self._pdp_url = pdp_url.rstrip("/")
        self._api_url = api_url.rstrip("/")
        self._project = project
        self._environment = environment
        self._tenant = tenant
        self._timeout = timeout
        self._session = session or requests.Session()
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def check(self, principal_id, action, resource):
        payload = {
            "user": {"key": principal_id},
            "action": action,
            "resource": self._resource_payload(resource),
            "context": {},
        }
        try:
            response = self._session.post(
                f"{self._pdp_url}/allowed", json=payload,
                headers=self._headers, timeout=self._timeout
            )
        except requests.exceptions.RequestException as e:
            raise PolicyCheckError(f"Policy decision point unreachable: {str(e)}",
                                   error_code="pdp_unreachable")

        if response.status_code != 200:
            raise PolicyCheckError(
                f"Policy decision point returned {response.status_code}",
                error_code="pdp_error",
                details={"body": response.text[:500]}
            )
        try:
            decision = response.json()
        except ValueError:
            raise PolicyCheckError("Policy decision point returned a non-JSON body",
                                   error_code="pdp_error")

        if not isinstance(decision, dict):
            raise PolicyCheckError("Policy decision point answer is not an object",
                                   error_code="pdp_error", details={"answer": decision})
        allowed = decision.get("allow")
        if not isinstance(allowed, bool):
            raise PolicyCheckError("Policy decision point answer has no allow flag",
                                   error_code="pdp_error", details={"answer": decision})
        return allowed

    def sync_resource(self, resource_type, resource_id, attributes):
        """Upsert a resource instance: create it, or patch attributes if it exists."""
        base = f"{self._api_url}/v2/facts/{self._project}/{self._environment}/resource_instances"
        payload = {
            "key": resource_id,
            "resource": resource_type,
            "tenant": self._tenant,
            "attributes": attributes,
        }
        try:
            response = self._session.post(base, json=payload, headers=self._headers, timeout=self._timeout)
            if response.status_code == 409:
                response = self._session.patch(
                    f"{base}/{resource_type}:{resource_id}",
                    json={"attributes": attributes},
                    headers=self._headers, timeout=self._timeout
                )
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Policy management API unreachable: {str(e)}",
                                error_code="pdp_sync_unreachable")

        if response.status_code >= 400:
            raise UpstreamError(
                f"Resource sync failed with {response.status_code}",
                error_code="pdp_sync_failed",
                details={"body": response.text[:500]}
            )

    def _resource_payload(self, resource: ResourceDescriptor) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": resource.resource_type.value,
            "tenant": self._tenant,
            "attributes": resource.attributes,
        }
        if resource.resource_id:
            payload["key"] = resource.resource_id
        return payload


class PolicyCheckerFactory:
    """Factory for creating policy checker instances."""

    @staticmethod
    def create_checker(policy_type: str, **kwargs) -> PolicyChecker:
        if policy_type.lower() == "rules":
            # Connection settings for the hosted service do not apply here.
            user_roles = {user: Role(role) for user, role in (kwargs.get("user_roles") or {}).items()}
            return RuleBasedPolicyChecker(user_roles=user_roles)
        elif policy_type.lower() == "remote":
            return RemotePolicyChecker(**kwargs)
        else:
            raise ConfigurationError(f"Unsupported policy checker type: {policy_type}")
