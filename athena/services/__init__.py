"""
Services module containing the gateway and the clients for external services.
"""

from .authorization_gateway import AuthorizationGateway, CourseListing
from .concurrency_manager import ConcurrencyManager
from .identity import (
    IdentityResolverFactory, RestIdentityResolver, RoleSyncingIdentityResolver, StaticIdentityResolver
)
from .policy_client import PolicyCheckerFactory, RemotePolicyChecker

__all__ = [
    "AuthorizationGateway",
    "CourseListing",
    "ConcurrencyManager",
    "IdentityResolverFactory",
    "RestIdentityResolver",
    "RoleSyncingIdentityResolver",
    "StaticIdentityResolver",
    "PolicyCheckerFactory",
    "RemotePolicyChecker",
]
