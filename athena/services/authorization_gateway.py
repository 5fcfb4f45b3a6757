"""
Authorization gateway: the policy-gated operations of the course backend.

Every operation runs the same sequence against the injected collaborators:
local validation and role checks, a policy decision, the document store
read/write, then a best-effort attribute sync back to the policy decision
point. Nothing is cached between calls.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from ..core.audit import AuditTrail
from ..core.entities import (
    Assignment, Course, Principal, ResourceDescriptor, Submission,
    MAX_GRADE, MIN_GRADE, UNGRADED, parse_due_date, utc_now
)
from ..core.enums import Action, AuditAction, Collection, ResourceType, Role, SyncMode
from ..core.exceptions import (
    AuthorizationError, DuplicateEnrollmentError, PastDueError,
    PolicyCheckError, ResourceNotFoundError, ValidationError
)
from ..core.interfaces import DocumentStore, PolicyChecker
from .concurrency_manager import ConcurrencyManager


logger = logging.getLogger(__name__)

E = TypeVar("E", Course, Assignment, Submission)


@dataclass
class CourseListing:
    """Courses visible to a principal."""
    courses: List[Course]
    filtered: bool = False

    @property
    def total(self) -> int:
        return len(self.courses)


class AuthorizationGateway:
    """Mediates course, assignment and submission operations."""

    def __init__(self, store: DocumentStore, policy: PolicyChecker,
                 concurrency_manager: Optional[ConcurrencyManager] = None,
                 audit_trail: Optional[AuditTrail] = None,
                 sync_mode: SyncMode = SyncMode.INLINE,
                 collections: Optional[Dict[str, str]] = None,
                 clock: Callable[[], datetime] = utc_now):
        self._store = store
        self._policy = policy
        self._concurrency_manager = concurrency_manager or ConcurrencyManager()
        self._audit = audit_trail or AuditTrail()
        self._sync_mode = sync_mode
        self._clock = clock
        names = collections or {}
        self._courses = names.get("courses", Collection.COURSES.value)
        self._assignments = names.get("assignments", Collection.ASSIGNMENTS.value)
        self._submissions = names.get("submissions", Collection.SUBMISSIONS.value)

    @property
    def audit_trail(self) -> AuditTrail:
        return self._audit

    # Courses

    def list_courses(self, principal: Principal) -> CourseListing:
        """Return the courses the principal may see.

        Admins see everything and teachers see the courses they own. Students
        see each course only on an explicit policy allow; a deny or a failed
        check drops that course without failing the listing.
        """
        self._require_assigned(principal)

        if principal.role == Role.ADMIN:
            courses = self._load_all(self._courses, Course)
            listing = CourseListing(courses)
        elif principal.role == Role.TEACHER:
            courses = self._load_all(self._courses, Course, {"teacherId": principal.id})
            listing = CourseListing(courses)
        else:
            candidates = self._load_all(self._courses, Course)
            visible = [course for course in candidates if self._is_visible(principal, course)]
            listing = CourseListing(visible, filtered=len(visible) < len(candidates))

        logger.info("User %s with role %s accessed %d courses",
                    principal.id, principal.role.value, listing.total)
        return listing

    def create_course(self, principal: Principal, title: str, description: str = "",
                      teacher_id: Optional[str] = None) -> Course:
        """Create a course owned by the caller, or by another teacher when an admin asks."""
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required", error_code="missing_title")
        self._require_assigned(principal)

        owner_id = teacher_id or principal.id
        if owner_id != principal.id and not principal.is_admin:
            raise AuthorizationError(
                "Only admins can create courses for other teachers",
                error_code="teacher_override_forbidden"
            )

        self._authorize(principal, Action.CREATE, ResourceDescriptor(ResourceType.COURSE))

        course = Course(title=title, description=description or "", teacher_id=owner_id)
        created = Course.from_document(self._store.create(self._courses, course.to_document()))
        self._audit.record(AuditAction.CREATE, principal.id, resource=f"course:{created.id}",
                           teacher_id=owner_id)
        logger.info("User %s created course %s", principal.id, created.id)

        self._sync_resource(principal, ResourceType.COURSE, created.id, created.policy_attributes())
        return created

    def enroll_in_course(self, principal: Principal, course_id: str) -> Course:
        """Add the calling student to a course exactly once."""
        if not course_id:
            raise ValidationError("Course ID is required", error_code="missing_course_id")
        self._require_assigned(principal)
        self._require_role(principal, "Only students can enroll in courses", Role.STUDENT)

        self._authorize(principal, Action.ENROLL, ResourceDescriptor(ResourceType.COURSE, course_id))

        def attempt() -> Course:
            course = self._load(self._courses, course_id, Course)
            if course.is_enrolled(principal.id):
                raise DuplicateEnrollmentError(
                    "Already enrolled in this course",
                    error_code="already_enrolled",
                    details={"course_id": course_id}
                )
            student_ids = course.student_ids + [principal.id]
            document = self._store.update(
                self._courses, course_id, {"studentIds": student_ids},
                expected_revision=course.revision
            )
            return Course.from_document(document)

        updated = self._concurrency_manager.execute_with_retry(attempt, f"enrollment in course {course_id}")
        self._audit.record(AuditAction.UPDATE, principal.id, resource=f"course:{course_id}",
                           change="enrolled")
        logger.info("User %s enrolled in course %s", principal.id, course_id)

        self._sync_resource(principal, ResourceType.COURSE, course_id, updated.policy_attributes())
        return updated

    # Assignments

    def list_assignments(self, principal: Principal, course_id: str) -> List[Assignment]:
        """Return the assignments of a course, if the principal may read assignments there."""
        if not course_id:
            raise ValidationError("Course ID is required", error_code="missing_course_id")
        self._require_assigned(principal)

        self._authorize(principal, Action.READ,
                        ResourceDescriptor(ResourceType.ASSIGNMENT, attributes={"courseId": course_id}))
        self._load(self._courses, course_id, Course)
        return self._load_all(self._assignments, Assignment, {"courseId": course_id})

    def create_assignment(self, principal: Principal, course_id: str, title: str,
                          due_date: str, description: str = "") -> Assignment:
        title = (title or "").strip()
        if not course_id:
            raise ValidationError("Course ID is required", error_code="missing_course_id")
        if not title:
            raise ValidationError("Title is required", error_code="missing_title")
        parse_due_date(due_date)
        self._require_assigned(principal)
        self._require_role(principal, "Only teachers and admins can create assignments",
                           Role.TEACHER, Role.ADMIN)

        self._authorize(principal, Action.CREATE,
                        ResourceDescriptor(ResourceType.ASSIGNMENT, attributes={"courseId": course_id}))
        course = self._load(self._courses, course_id, Course)

        assignment = Assignment(title=title, description=description or "",
                                course_id=course.id, due_date=due_date)
        created = Assignment.from_document(self._store.create(self._assignments, assignment.to_document()))
        self._audit.record(AuditAction.CREATE, principal.id, resource=f"assignment:{created.id}",
                           course_id=course.id)
        logger.info("User %s created assignment %s in course %s", principal.id, created.id, course.id)

        self._sync_resource(principal, ResourceType.ASSIGNMENT, created.id, {
            "courseId": course.id,
            "teacherId": course.teacher_id,
            "dueDate": created.due_date,
        })
        return created

    # Submissions

    def submit_assignment(self, principal: Principal, assignment_id: str, content: str) -> Submission:
        """Record a student's submission if the assignment is not past due."""
        if not assignment_id:
            raise ValidationError("Assignment ID is required", error_code="missing_assignment_id")
        if not (content or "").strip():
            raise ValidationError("Content is required", error_code="missing_content")
        self._require_assigned(principal)
        self._require_role(principal, "Only students can submit assignments", Role.STUDENT)

        self._authorize(principal, Action.SUBMIT, ResourceDescriptor(ResourceType.ASSIGNMENT, assignment_id))
        assignment = self._load(self._assignments, assignment_id, Assignment)

        now = self._clock()
        if assignment.is_past_due(now):
            raise PastDueError(
                "Assignment is past due date",
                error_code="past_due",
                details={"due_date": assignment.due_date}
            )

        submission = Submission(
            assignment_id=assignment_id,
            student_id=principal.id,
            content=content,
            submitted_at=now.isoformat(),
            grade=UNGRADED,
            feedback="",
        )
        created = Submission.from_document(self._store.create(self._submissions, submission.to_document()))
        self._audit.record(AuditAction.CREATE, principal.id, resource=f"submission:{created.id}",
                           assignment_id=assignment_id)
        logger.info("User %s submitted assignment %s", principal.id, assignment_id)
        return created

    def grade_submission(self, principal: Principal, submission_id: str, grade: int,
                         feedback: str = "") -> Submission:
        """Grade a submission; teachers and admins only."""
        if not submission_id:
            raise ValidationError("Submission ID is required", error_code="missing_submission_id")
        self._require_assigned(principal)
        self._require_role(principal, "Only teachers and admins can grade assignments",
                           Role.TEACHER, Role.ADMIN)
        if isinstance(grade, bool) or not isinstance(grade, int) or not MIN_GRADE <= grade <= MAX_GRADE:
            raise ValidationError(f"Grade must be between {MIN_GRADE} and {MAX_GRADE}",
                                  error_code="invalid_grade")

        submission = self._load(self._submissions, submission_id, Submission)
        self._authorize(principal, Action.GRADE,
                        ResourceDescriptor(ResourceType.ASSIGNMENT, submission.assignment_id))

        document = self._store.update(self._submissions, submission_id,
                                      {"grade": grade, "feedback": feedback or ""})
        graded = Submission.from_document(document)
        self._audit.record(AuditAction.UPDATE, principal.id, resource=f"submission:{submission_id}",
                           change="graded", grade=grade)
        logger.info("User %s graded submission %s", principal.id, submission_id)
        return graded

    # Helpers

    def _require_assigned(self, principal: Principal) -> None:
        if principal.role == Role.UNASSIGNED:
            raise AuthorizationError("No role is assigned to this account",
                                     error_code="role_unassigned")

    def _require_role(self, principal: Principal, message: str, *roles: Role) -> None:
        if not principal.has_role(*roles):
            raise AuthorizationError(message, error_code="role_forbidden",
                                     details={"role": principal.role.value})

    def _authorize(self, principal: Principal, action: Action, resource: ResourceDescriptor) -> None:
        """Policy check for an operation that must not proceed without an allow.

        A failed check propagates as PolicyCheckError so nothing is written.
        """
        try:
            allowed = self._policy.check(principal.id, action.value, resource)
        except PolicyCheckError as e:
            self._audit.record(AuditAction.POLICY_ERROR, principal.id, action=action.value,
                               resource=str(resource), error=e.message)
            raise

        if not allowed:
            self._audit.record(AuditAction.ACCESS_DENIED, principal.id, action=action.value,
                               resource=str(resource))
            raise AuthorizationError(
                f"Not authorized to {action.value} {resource.resource_type.value}",
                error_code="policy_denied",
                details={"action": action.value, "resource": str(resource)}
            )
        self._audit.record(AuditAction.ACCESS_GRANTED, principal.id, action=action.value,
                           resource=str(resource))

    def _is_visible(self, principal: Principal, course: Course) -> bool:
        # Fail closed: anything but an explicit allow hides the course.
        resource = ResourceDescriptor(ResourceType.COURSE, course.id, {"teacherId": course.teacher_id})
        try:
            allowed = self._policy.check(principal.id, Action.READ.value, resource)
        except Exception as e:
            error = e.message if isinstance(e, PolicyCheckError) else f"{type(e).__name__}: {e}"
            self._audit.record(AuditAction.POLICY_ERROR, principal.id, action=Action.READ.value,
                               resource=str(resource), error=error)
            return False

        if allowed is not True:
            self._audit.record(AuditAction.ACCESS_FILTERED, principal.id, action=Action.READ.value,
                               resource=str(resource))
            return False
        return True

    def _load(self, collection: str, document_id: str, entity_type: Type[E]) -> E:
        try:
            return entity_type.from_document(self._store.get(collection, document_id))
        except ResourceNotFoundError:
            label = entity_type.__name__
            raise ResourceNotFoundError(f"{label} not found", error_code=f"{label.lower()}_not_found",
                                        details={"id": document_id})

    def _load_all(self, collection: str, entity_type: Type[E],
                  filters: Optional[Dict[str, Any]] = None) -> List[E]:
        return [entity_type.from_document(document) for document in self._store.list(collection, filters)]

    def _sync_resource(self, principal: Principal, resource_type: ResourceType,
                       resource_id: str, attributes: Dict[str, Any]) -> None:
        if self._sync_mode == SyncMode.BACKGROUND:
            self._concurrency_manager.submit(
                self._push_resource, principal.id, resource_type, resource_id, attributes
            )
        else:
            self._push_resource(principal.id, resource_type, resource_id, attributes)

    def _push_resource(self, principal_id: str, resource_type: ResourceType,
                       resource_id: str, attributes: Dict[str, Any]) -> None:
        # Sync is best-effort: the mutation already happened and stays.
        try:
            self._policy.sync_resource(resource_type.value, resource_id, attributes)
        except Exception as e:
            self._audit.record(AuditAction.SYNC_FAILED, principal_id,
                               resource=f"{resource_type.value}:{resource_id}", error=str(e))
            logger.warning("Failed to sync %s %s with the policy service: %s",
                           resource_type.value, resource_id, e)
