"""
Enumerations and constants for the Athena platform.
"""

from enum import Enum


class Role(Enum):
    """Roles a principal can hold."""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    UNASSIGNED = "unassigned"  # identity carries no recognised role

    @classmethod
    def from_roles(cls, roles) -> "Role":
        """Pick the effective role from a raw role list, highest precedence first."""
        names = {str(r).lower() for r in roles or []}
        for role in (cls.ADMIN, cls.TEACHER, cls.STUDENT):
            if role.value in names:
                return role
        return cls.UNASSIGNED


class Action(Enum):
    """Actions evaluated by the policy decision point."""
    READ = "read"
    CREATE = "create"
    ENROLL = "enroll"
    SUBMIT = "submit"
    GRADE = "grade"


class ResourceType(Enum):
    """Resource types known to the policy decision point."""
    COURSE = "course"
    ASSIGNMENT = "assignment"
    SUBMISSION = "submission"


class Collection(Enum):
    """Default document store collection names."""
    COURSES = "courses"
    ASSIGNMENTS = "assignments"
    SUBMISSIONS = "submissions"


class SyncMode(Enum):
    """How resource attributes are pushed to the policy decision point."""
    INLINE = "inline"
    BACKGROUND = "background"


class AuditAction(Enum):
    """Types of audit actions."""
    CREATE = "create"
    UPDATE = "update"
    ACCESS_GRANTED = "access_granted"
    ACCESS_DENIED = "access_denied"
    ACCESS_FILTERED = "access_filtered"
    POLICY_ERROR = "policy_error"
    SYNC_FAILED = "sync_failed"
