"""
Shared fixtures for the Athena test suite.
"""

from datetime import datetime, timezone

import pytest

from athena.core import (
    AuditTrail, Principal, PolicyChecker, Role, RuleBasedPolicyChecker, SyncMode
)
from athena.persistence import InMemoryDocumentStore
from athena.services import AuthorizationGateway, ConcurrencyManager


FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class RecordingPolicyChecker(PolicyChecker):
    """Policy checker that answers from a table and remembers every call.

    ``decisions`` maps (action, "type:id") to True, False or an exception to
    raise; anything not listed gets ``default``.
    """

    def __init__(self, default=True):
        self.default = default
        self.decisions = {}
        self.calls = []
        self.synced = []
        self.sync_error = None

    def check(self, principal_id, action, resource):
        self.calls.append((principal_id, action, str(resource)))
        decision = self.decisions.get((action, str(resource)), self.default)
        if isinstance(decision, Exception):
            raise decision
        return decision

    def sync_resource(self, resource_type, resource_id, attributes):
        if self.sync_error is not None:
            raise self.sync_error
        self.synced.append((resource_type, resource_id, attributes))


def make_principal(principal_id, role):
    return Principal(id=principal_id, role=role, roles=[role.value] if role != Role.UNASSIGNED else [])


@pytest.fixture
def admin():
    return make_principal("admin-1", Role.ADMIN)


@pytest.fixture
def teacher():
    return make_principal("teacher-1", Role.TEACHER)


@pytest.fixture
def other_teacher():
    return make_principal("teacher-2", Role.TEACHER)


@pytest.fixture
def student():
    return make_principal("student-1", Role.STUDENT)


@pytest.fixture
def other_student():
    return make_principal("student-2", Role.STUDENT)


@pytest.fixture
def unassigned():
    return make_principal("nobody-1", Role.UNASSIGNED)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def policy():
    return RecordingPolicyChecker()


@pytest.fixture
def concurrency_manager():
    return ConcurrencyManager(max_retries=3, backoff_factor=0.01, sleep=lambda seconds: None)


@pytest.fixture
def gateway(store, policy, concurrency_manager):
    return AuthorizationGateway(
        store, policy,
        concurrency_manager=concurrency_manager,
        audit_trail=AuditTrail(),
        sync_mode=SyncMode.INLINE,
        clock=lambda: FIXED_NOW
    )


@pytest.fixture
def rules_policy(admin, teacher, other_teacher, student, other_student):
    checker = RuleBasedPolicyChecker()
    for principal in (admin, teacher, other_teacher, student, other_student):
        checker.assign_role(principal.id, principal.role)
    return checker


@pytest.fixture
def rules_gateway(store, rules_policy, concurrency_manager):
    return AuthorizationGateway(
        store, rules_policy,
        concurrency_manager=concurrency_manager,
        clock=lambda: FIXED_NOW
    )
