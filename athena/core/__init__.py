"""
Core module containing the domain records, interfaces and policy evaluation.
"""

from .entities import *
from .interfaces import *
from .exceptions import *
from .enums import *
from .audit import AuditLogEntry, AuditTrail
from .policy_engine import Policy, AdminPolicy, RolePolicy, RuleBasedPolicyChecker, default_policies

__all__ = [
    # Entities
    "Principal",
    "ResourceDescriptor",
    "Course",
    "Assignment",
    "Submission",
    "parse_due_date",
    "utc_now",
    "UNGRADED",
    "MIN_GRADE",
    "MAX_GRADE",
    
    # Interfaces
    "DocumentStore",
    "PolicyChecker",
    "IdentityResolver",
    
    # Policy evaluation
    "Policy",
    "AdminPolicy",
    "RolePolicy",
    "RuleBasedPolicyChecker",
    "default_policies",
    
    # Audit
    "AuditLogEntry",
    "AuditTrail",
    
    # Enums
    "Role",
    "Action",
    "ResourceType",
    "Collection",
    "SyncMode",
    "AuditAction",
    
    # Exceptions
    "AthenaException",
    "AuthenticationError",
    "AuthorizationError",
    "ValidationError",
    "ResourceNotFoundError",
    "ConflictError",
    "DuplicateEnrollmentError",
    "StaleRevisionError",
    "BusinessRuleError",
    "PastDueError",
    "UpstreamError",
    "PolicyCheckError",
    "ConfigurationError",
]
