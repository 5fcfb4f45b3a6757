"""
Tests for the authorization gateway operations.
"""

from unittest.mock import MagicMock

import pytest
import requests

from athena.core import (
    AuditAction, AuthorizationError, ConflictError, DuplicateEnrollmentError,
    PastDueError, PolicyCheckError, ResourceNotFoundError, StaleRevisionError,
    SyncMode, UpstreamError, ValidationError
)
from athena.persistence import InMemoryDocumentStore
from athena.services import AuthorizationGateway, ConcurrencyManager, RemotePolicyChecker

from conftest import FIXED_NOW, RecordingPolicyChecker


def seed_course(store, teacher_id, title="Course", student_ids=None):
    return store.create("courses", {
        "title": title,
        "description": "",
        "teacherId": teacher_id,
        "studentIds": list(student_ids or []),
    })


def seed_assignment(store, course_id, due_date="2026-03-15"):
    return store.create("assignments", {
        "title": "Homework",
        "description": "",
        "courseId": course_id,
        "dueDate": due_date,
    })


def seed_submission(store, assignment_id, student_id="student-1"):
    return store.create("submissions", {
        "assignmentId": assignment_id,
        "studentId": student_id,
        "content": "answer",
        "submittedAt": FIXED_NOW.isoformat(),
        "grade": 0,
        "feedback": "",
    })


class TestListCourses:
    """Visibility filtering per role"""

    def test_admin_sees_all_courses_without_policy_checks(self, gateway, store, policy, admin):
        seed_course(store, "teacher-1")
        seed_course(store, "teacher-2")

        listing = gateway.list_courses(admin)

        assert listing.total == 2
        assert listing.filtered is False
        assert policy.calls == []

    def test_teacher_sees_only_own_courses(self, gateway, store, teacher):
        own = seed_course(store, teacher.id, "Mine")
        seed_course(store, "teacher-2", "Theirs")

        listing = gateway.list_courses(teacher)

        assert [course.id for course in listing.courses] == [own["id"]]
        assert all(course.teacher_id == teacher.id for course in listing.courses)

    def test_student_sees_only_allowed_courses(self, gateway, store, policy, student):
        allowed = seed_course(store, "teacher-1", "Allowed")
        denied = seed_course(store, "teacher-1", "Denied")
        policy.decisions[("read", f"course:{denied['id']}")] = False

        listing = gateway.list_courses(student)

        assert [course.id for course in listing.courses] == [allowed["id"]]
        assert listing.filtered is True
        checked = {call[2] for call in policy.calls if call[1] == "read"}
        assert checked == {f"course:{allowed['id']}", f"course:{denied['id']}"}

    def test_policy_error_excludes_course_without_failing(self, gateway, store, policy, student):
        reachable = seed_course(store, "teacher-1", "Reachable")
        unreachable = seed_course(store, "teacher-1", "Unreachable")
        policy.decisions[("read", f"course:{unreachable['id']}")] = PolicyCheckError("timeout")

        listing = gateway.list_courses(student)

        assert [course.id for course in listing.courses] == [reachable["id"]]
        errors = gateway.audit_trail.entries(AuditAction.POLICY_ERROR)
        assert len(errors) == 1
        assert errors[0].data["resource"] == f"course:{unreachable['id']}"

    def test_denied_course_is_audited_as_filtered(self, gateway, store, policy, student):
        course = seed_course(store, "teacher-1")
        policy.default = False

        listing = gateway.list_courses(student)

        assert listing.courses == []
        filtered = gateway.audit_trail.entries(AuditAction.ACCESS_FILTERED)
        assert [entry.data["resource"] for entry in filtered] == [f"course:{course['id']}"]

    def test_unexpected_checker_failure_excludes_course(self, gateway, store, policy, student):
        kept = seed_course(store, "teacher-1", "Kept")
        broken = seed_course(store, "teacher-1", "Broken")
        policy.decisions[("read", f"course:{broken['id']}")] = RuntimeError("checker bug")

        listing = gateway.list_courses(student)

        assert [course.id for course in listing.courses] == [kept["id"]]
        errors = gateway.audit_trail.entries(AuditAction.POLICY_ERROR)
        assert errors[0].data["error"] == "RuntimeError: checker bug"

    def test_malformed_remote_answer_excludes_course(self, store, student, concurrency_manager):
        session = MagicMock(spec=requests.Session)
        answer = MagicMock(status_code=200)
        answer.json.return_value = [True]
        session.post.return_value = answer
        checker = RemotePolicyChecker(token="secret", session=session)
        gateway = AuthorizationGateway(store, checker, concurrency_manager=concurrency_manager)
        seed_course(store, "teacher-1")

        listing = gateway.list_courses(student)

        assert listing.courses == []
        assert listing.filtered is True
        assert len(gateway.audit_trail.entries(AuditAction.POLICY_ERROR)) == 1

    def test_unassigned_principal_is_rejected(self, gateway, store, policy, unassigned):
        seed_course(store, "teacher-1")

        with pytest.raises(AuthorizationError):
            gateway.list_courses(unassigned)
        assert policy.calls == []


class TestCreateCourse:
    """Course creation"""

    def test_teacher_creates_course_for_self(self, gateway, policy, teacher):
        course = gateway.create_course(teacher, "T", "D")

        assert course.id is not None
        assert course.teacher_id == teacher.id
        assert course.student_ids == []
        assert course.id in [c.id for c in gateway.list_courses(teacher).courses]
        assert ("course", course.id, {"teacherId": teacher.id, "studentIds": []}) in policy.synced

    def test_granted_decision_is_audited(self, gateway, teacher):
        gateway.create_course(teacher, "T", "D")

        granted = gateway.audit_trail.entries(AuditAction.ACCESS_GRANTED)
        assert [(e.principal_id, e.data) for e in granted] == [
            (teacher.id, {"action": "create", "resource": "course"})
        ]
        assert gateway.audit_trail.verify()

    def test_policy_checked_before_write(self, gateway, store, policy, teacher):
        policy.decisions[("create", "course")] = False

        with pytest.raises(AuthorizationError):
            gateway.create_course(teacher, "T", "D")
        assert store.list("courses") == []

    def test_admin_creates_course_for_other_teacher(self, gateway, admin):
        course = gateway.create_course(admin, "T", "D", teacher_id="teacher-2")

        assert course.teacher_id == "teacher-2"

    def test_teacher_cannot_create_course_for_other_teacher(self, gateway, store, teacher):
        with pytest.raises(AuthorizationError):
            gateway.create_course(teacher, "T", "D", teacher_id="teacher-2")
        assert store.list("courses") == []

    def test_blank_title_rejected_before_policy(self, gateway, policy, teacher):
        with pytest.raises(ValidationError):
            gateway.create_course(teacher, "   ", "D")
        assert policy.calls == []

    def test_policy_outage_aborts_without_write(self, gateway, store, policy, teacher):
        policy.decisions[("create", "course")] = PolicyCheckError("unreachable")

        with pytest.raises(UpstreamError):
            gateway.create_course(teacher, "T", "D")
        assert store.list("courses") == []

    def test_sync_failure_keeps_course(self, gateway, store, policy, teacher):
        policy.sync_error = UpstreamError("sync down")

        course = gateway.create_course(teacher, "T", "D")

        assert store.get("courses", course.id)["title"] == "T"
        assert gateway.audit_trail.entries(AuditAction.SYNC_FAILED)

    def test_background_sync_runs_on_pool(self, store, policy, teacher):
        manager = ConcurrencyManager(max_workers=1)
        gateway = AuthorizationGateway(store, policy, concurrency_manager=manager,
                                       sync_mode=SyncMode.BACKGROUND)

        course = gateway.create_course(teacher, "T", "D")
        manager.cleanup()

        assert policy.synced == [("course", course.id, {"teacherId": teacher.id, "studentIds": []})]


class TestEnrollInCourse:
    """Enrollment idempotency and conflict handling"""

    def test_enroll_twice_conflicts(self, gateway, store, student):
        course = seed_course(store, "teacher-1")

        enrolled = gateway.enroll_in_course(student, course["id"])
        assert enrolled.student_ids == [student.id]

        with pytest.raises(DuplicateEnrollmentError):
            gateway.enroll_in_course(student, course["id"])
        assert store.get("courses", course["id"])["studentIds"] == [student.id]

    def test_only_students_enroll(self, gateway, store, policy, teacher):
        course = seed_course(store, "teacher-2")

        with pytest.raises(AuthorizationError):
            gateway.enroll_in_course(teacher, course["id"])
        assert policy.calls == []

    def test_policy_deny_blocks_enrollment(self, gateway, store, policy, student):
        course = seed_course(store, "teacher-1")
        policy.decisions[("enroll", f"course:{course['id']}")] = False

        with pytest.raises(AuthorizationError):
            gateway.enroll_in_course(student, course["id"])
        assert store.get("courses", course["id"])["studentIds"] == []

    def test_missing_course(self, gateway, student):
        with pytest.raises(ResourceNotFoundError):
            gateway.enroll_in_course(student, "missing")

    def test_enrollment_syncs_student_ids(self, gateway, store, policy, student):
        course = seed_course(store, "teacher-1")

        gateway.enroll_in_course(student, course["id"])

        assert policy.synced[-1] == ("course", course["id"],
                                     {"teacherId": "teacher-1", "studentIds": [student.id]})

    def test_concurrent_writer_is_not_lost(self, policy, student, concurrency_manager):
        class RacingStore(InMemoryDocumentStore):
            raced = False

            def update(self, collection, document_id, attributes, expected_revision=None):
                if not self.raced:
                    self.raced = True
                    super().update(collection, document_id, {"studentIds": ["student-9"]})
                return super().update(collection, document_id, attributes, expected_revision)

        store = RacingStore()
        course = seed_course(store, "teacher-1")
        gateway = AuthorizationGateway(store, policy, concurrency_manager=concurrency_manager)

        enrolled = gateway.enroll_in_course(student, course["id"])

        assert enrolled.student_ids == ["student-9", student.id]

    def test_retries_exhausted_surface_conflict(self, policy, student):
        class AlwaysStaleStore(InMemoryDocumentStore):
            def update(self, collection, document_id, attributes, expected_revision=None):
                raise StaleRevisionError("changed")

        delays = []
        store = AlwaysStaleStore()
        course = seed_course(store, "teacher-1")
        manager = ConcurrencyManager(max_retries=2, backoff_factor=0.1, sleep=delays.append)
        gateway = AuthorizationGateway(store, policy, concurrency_manager=manager)

        with pytest.raises(ConflictError) as excinfo:
            gateway.enroll_in_course(student, course["id"])

        assert not isinstance(excinfo.value, DuplicateEnrollmentError)
        assert delays == [0.1, 0.2]


class TestAssignments:
    """Assignment listing and creation"""

    def test_list_assignments_of_course(self, gateway, store, student):
        course = seed_course(store, "teacher-1")
        other = seed_course(store, "teacher-1")
        mine = seed_assignment(store, course["id"])
        seed_assignment(store, other["id"])

        assignments = gateway.list_assignments(student, course["id"])

        assert [a.id for a in assignments] == [mine["id"]]

    def test_list_assignments_denied(self, gateway, store, policy, student):
        course = seed_course(store, "teacher-1")
        policy.decisions[("read", "assignment")] = False

        with pytest.raises(AuthorizationError):
            gateway.list_assignments(student, course["id"])

    def test_create_assignment_requires_existing_course(self, gateway, teacher):
        with pytest.raises(ResourceNotFoundError):
            gateway.create_assignment(teacher, "missing", "HW", "2026-04-01")

    def test_create_assignment_rejects_bad_date(self, gateway, store, policy, teacher):
        course = seed_course(store, teacher.id)

        with pytest.raises(ValidationError):
            gateway.create_assignment(teacher, course["id"], "HW", "next week")
        assert policy.calls == []

    def test_students_cannot_create_assignments(self, gateway, store, student):
        course = seed_course(store, "teacher-1")

        with pytest.raises(AuthorizationError):
            gateway.create_assignment(student, course["id"], "HW", "2026-04-01")

    def test_create_assignment_syncs_course_link(self, gateway, store, policy, teacher):
        course = seed_course(store, teacher.id)

        assignment = gateway.create_assignment(teacher, course["id"], "HW", "2026-04-01")

        assert assignment.course_id == course["id"]
        assert policy.synced[-1] == ("assignment", assignment.id, {
            "courseId": course["id"], "teacherId": teacher.id, "dueDate": "2026-04-01"
        })


class TestSubmitAssignment:
    """Submission and due-date gating"""

    def test_submit_before_due_date(self, gateway, store, student):
        course = seed_course(store, "teacher-1", student_ids=[student.id])
        assignment = seed_assignment(store, course["id"], "2026-03-15")

        submission = gateway.submit_assignment(student, assignment["id"], "my answer")

        assert submission.grade == 0
        assert submission.feedback == ""
        assert submission.student_id == student.id
        assert submission.submitted_at == FIXED_NOW.isoformat()

    def test_past_due_rejected_even_when_allowed(self, gateway, store, policy, student):
        course = seed_course(store, "teacher-1")
        assignment = seed_assignment(store, course["id"], "2026-02-28")

        with pytest.raises(PastDueError):
            gateway.submit_assignment(student, assignment["id"], "late")
        assert store.list("submissions") == []
        assert ("student-1", "submit", f"assignment:{assignment['id']}") in policy.calls

    def test_deadline_is_start_of_due_date(self, gateway, store, student):
        course = seed_course(store, "teacher-1")
        assignment = seed_assignment(store, course["id"], "2026-03-01")

        with pytest.raises(PastDueError):
            gateway.submit_assignment(student, assignment["id"], "same day")

    def test_only_students_submit(self, gateway, store, policy, teacher):
        with pytest.raises(AuthorizationError):
            gateway.submit_assignment(teacher, "any", "answer")
        assert policy.calls == []

    def test_missing_assignment(self, gateway, student):
        with pytest.raises(ResourceNotFoundError):
            gateway.submit_assignment(student, "missing", "answer")

    def test_resubmission_is_not_deduplicated(self, gateway, store, student):
        course = seed_course(store, "teacher-1")
        assignment = seed_assignment(store, course["id"])

        gateway.submit_assignment(student, assignment["id"], "first")
        gateway.submit_assignment(student, assignment["id"], "second")

        assert len(store.list("submissions", {"assignmentId": assignment["id"]})) == 2


class TestGradeSubmission:
    """Grading"""

    def test_student_cannot_grade_and_policy_not_called(self, gateway, store, policy, student):
        submission = seed_submission(store, "assignment-1")

        with pytest.raises(AuthorizationError):
            gateway.grade_submission(student, submission["id"], 90, "nice")
        assert policy.calls == []

    def test_teacher_grades_submission(self, gateway, store, policy, teacher):
        submission = seed_submission(store, "assignment-1")

        graded = gateway.grade_submission(teacher, submission["id"], 88, "Good")

        assert graded.grade == 88
        assert graded.feedback == "Good"
        assert graded.is_graded
        assert policy.calls == [(teacher.id, "grade", "assignment:assignment-1")]

    def test_policy_deny_leaves_submission_ungraded(self, gateway, store, policy, teacher):
        submission = seed_submission(store, "assignment-1")
        policy.decisions[("grade", "assignment:assignment-1")] = False

        with pytest.raises(AuthorizationError):
            gateway.grade_submission(teacher, submission["id"], 88, "Good")
        assert store.get("submissions", submission["id"])["grade"] == 0

    @pytest.mark.parametrize("grade", [0, 101, -5])
    def test_grade_out_of_range(self, gateway, store, teacher, grade):
        submission = seed_submission(store, "assignment-1")

        with pytest.raises(ValidationError):
            gateway.grade_submission(teacher, submission["id"], grade)

    def test_missing_submission(self, gateway, admin):
        with pytest.raises(ResourceNotFoundError):
            gateway.grade_submission(admin, "missing", 50)


class TestRuleBasedFlow:
    """End-to-end flow against the in-process rules"""

    def test_full_course_lifecycle(self, rules_gateway, teacher, other_teacher, student, other_student):
        course = rules_gateway.create_course(teacher, "Algorithms", "Sorting and searching")
        assignment = rules_gateway.create_assignment(teacher, course.id, "HW1", "2026-03-10")

        with pytest.raises(AuthorizationError):
            rules_gateway.submit_assignment(student, assignment.id, "not enrolled yet")

        rules_gateway.enroll_in_course(student, course.id)
        submission = rules_gateway.submit_assignment(student, assignment.id, "answer")

        with pytest.raises(AuthorizationError):
            rules_gateway.grade_submission(other_teacher, submission.id, 70)
        graded = rules_gateway.grade_submission(teacher, submission.id, 92, "Solid")

        assert graded.grade == 92
        with pytest.raises(AuthorizationError):
            rules_gateway.list_assignments(other_teacher, course.id)
        assert [a.id for a in rules_gateway.list_assignments(student, course.id)] == [assignment.id]
        with pytest.raises(AuthorizationError):
            rules_gateway.submit_assignment(other_student, assignment.id, "sneaky")

    def test_assignments_hidden_until_enrolled(self, rules_gateway, teacher, student, admin):
        course = rules_gateway.create_course(teacher, "Algorithms")
        assignment = rules_gateway.create_assignment(teacher, course.id, "HW1", "2026-03-10")

        with pytest.raises(AuthorizationError):
            rules_gateway.list_assignments(student, course.id)

        rules_gateway.enroll_in_course(student, course.id)

        assert [a.id for a in rules_gateway.list_assignments(student, course.id)] == [assignment.id]
        assert [a.id for a in rules_gateway.list_assignments(teacher, course.id)] == [assignment.id]
        assert [a.id for a in rules_gateway.list_assignments(admin, course.id)] == [assignment.id]
