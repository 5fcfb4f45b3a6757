"""
In-process policy evaluation.

RuleBasedPolicyChecker stands in for the hosted policy decision point in
local runs and tests. It keeps the resource attributes pushed to it through
sync_resource, the same way the hosted service does, so decisions about an
assignment can look at the course it belongs to.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from .entities import ResourceDescriptor
from .enums import Action, ResourceType, Role
from .interfaces import PolicyChecker


logger = logging.getLogger(__name__)


class EvaluationContext:
    """What a rule sees while deciding: the user, the action and merged resource attributes."""

    def __init__(self, principal_id: str, role: Role, action: str,
                 resource: ResourceDescriptor, attributes: Dict[str, Any],
                 lookup: Callable[[str, str], Dict[str, Any]]):
        self.principal_id = principal_id
        self.role = role
        self.action = action
        self.resource = resource
        self.attributes = attributes
        self._lookup = lookup

    @property
    def resource_type(self) -> str:
        return self.resource.resource_type.value

    def course_attributes(self) -> Dict[str, Any]:
        """Attributes of the course this resource is, or belongs to."""
        if self.resource.resource_type == ResourceType.COURSE:
            return self.attributes
        course_id = self.attributes.get("courseId")
        if not course_id:
            return {}
        return self._lookup(ResourceType.COURSE.value, course_id)

    def owns_course(self) -> bool:
        return self.course_attributes().get("teacherId") == self.principal_id

    def enrolled_in_course(self) -> bool:
        return self.principal_id in (self.course_attributes().get("studentIds") or [])


class Policy(ABC):
    @abstractmethod
    def evaluate(self, context: EvaluationContext) -> bool:
        pass


class AdminPolicy(Policy):
    def evaluate(self, context):
        return context.role == Role.ADMIN


class RolePolicy(Policy):
    """Grants one role an action on one resource type, optionally under a condition."""

    def __init__(self, role: Role, action: Action, resource_type: ResourceType,
                 condition: Optional[Callable[[EvaluationContext], bool]] = None):
        self.role = role
        self.action = action
        self.resource_type = resource_type
        self.condition = condition

    def evaluate(self, context):
        if context.role != self.role:
            return False
        if context.action != self.action.value or context.resource_type != self.resource_type.value:
            return False
        if self.condition is None:
            return True
        return bool(self.condition(context))


def default_policies() -> List[Policy]:
    """Rules matching the LMS roles configured on the hosted decision point."""
    return [
        AdminPolicy(),
        RolePolicy(Role.TEACHER, Action.CREATE, ResourceType.COURSE),
        RolePolicy(Role.TEACHER, Action.READ, ResourceType.COURSE, EvaluationContext.owns_course),
        RolePolicy(Role.TEACHER, Action.READ, ResourceType.ASSIGNMENT, EvaluationContext.owns_course),
        RolePolicy(Role.TEACHER, Action.CREATE, ResourceType.ASSIGNMENT, EvaluationContext.owns_course),
        RolePolicy(Role.TEACHER, Action.GRADE, ResourceType.ASSIGNMENT, EvaluationContext.owns_course),
        RolePolicy(Role.STUDENT, Action.READ, ResourceType.COURSE),
        RolePolicy(Role.STUDENT, Action.ENROLL, ResourceType.COURSE),
        RolePolicy(Role.STUDENT, Action.READ, ResourceType.ASSIGNMENT, EvaluationContext.enrolled_in_course),
        RolePolicy(Role.STUDENT, Action.SUBMIT, ResourceType.ASSIGNMENT, EvaluationContext.enrolled_in_course),
    ]


class RuleBasedPolicyChecker(PolicyChecker):
    """Allow/deny decisions from a list of policies; any matching policy allows."""

    def __init__(self, policies: Optional[List[Policy]] = None,
                 user_roles: Optional[Dict[str, Role]] = None):
        self.policies = policies if policies is not None else default_policies()
        self._user_roles: Dict[str, Role] = dict(user_roles or {})
        self._resources: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.RLock()

    def assign_role(self, principal_id: str, role: Role) -> None:
        with self._lock:
            self._user_roles[principal_id] = role

    def resource_attributes(self, resource_type: str, resource_id: str) -> Dict[str, Any]:
        with self._lock:
            return dict(self._resources.get((resource_type, resource_id), {}))

    def check(self, principal_id, action, resource):
        with self._lock:
            role = self._user_roles.get(principal_id, Role.UNASSIGNED)
            attributes: Dict[str, Any] = {}
            if resource.resource_id:
                attributes.update(self._resources.get((resource.resource_type.value, resource.resource_id), {}))
            attributes.update(resource.attributes)

        context = EvaluationContext(
            principal_id, role, action, resource, attributes, self.resource_attributes
        )
        allowed = any(policy.evaluate(context) for policy in self.policies)
        logger.debug("Rule check %s %s %s -> %s", principal_id, action, resource, allowed)
        return allowed

    def sync_resource(self, resource_type, resource_id, attributes):
        with self._lock:
            current = self._resources.setdefault((resource_type, resource_id), {})
            current.update(attributes)
