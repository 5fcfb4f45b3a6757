"""
Core entities for the Athena platform.

Entities are plain records mirroring documents held by the document store.
Field names on the wire follow the store's camelCase attribute names.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from .enums import Role, ResourceType
from .exceptions import ValidationError


UNGRADED = 0
MIN_GRADE = 1
MAX_GRADE = 100


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_due_date(value: Any) -> datetime:
    """Parse an assignment due date into the instant the deadline passes.

    A calendar date ``YYYY-MM-DD`` becomes midnight UTC at the start of that
    day. Full ISO timestamps are accepted as stored by some document stores;
    naive timestamps are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            if len(text) == 10:
                day = date.fromisoformat(text)
                parsed = datetime(day.year, day.month, day.day)
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Malformed due date: {value!r}", error_code="invalid_due_date")
    else:
        raise ValidationError(f"Malformed due date: {value!r}", error_code="invalid_due_date")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Principal:
    """The authenticated caller."""
    id: str
    role: Role
    name: str = ""
    email: str = ""
    roles: List[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles


@dataclass
class ResourceDescriptor:
    """Attribute bundle describing the object a policy check is about."""
    resource_type: ResourceType
    resource_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        if self.resource_id:
            return f"{self.resource_type.value}:{self.resource_id}"
        return self.resource_type.value


@dataclass
class Course:
    """Course owned by a teacher with a set of enrolled students."""
    title: str
    description: str
    teacher_id: str
    student_ids: List[str] = field(default_factory=list)
    id: Optional[str] = None
    revision: Optional[str] = None

    def is_enrolled(self, student_id: str) -> bool:
        return student_id in self.student_ids

    def policy_attributes(self) -> Dict[str, Any]:
        return {"teacherId": self.teacher_id, "studentIds": list(self.student_ids)}

    def to_document(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "teacherId": self.teacher_id,
            "studentIds": list(self.student_ids),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id}
        data.update(self.to_document())
        return data

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Course":
        # Stored lists may already hold duplicates written by older clients.
        student_ids: List[str] = []
        for student_id in document.get("studentIds") or []:
            if student_id not in student_ids:
                student_ids.append(student_id)
        return cls(
            id=document.get("id"),
            revision=document.get("revision"),
            title=document.get("title", ""),
            description=document.get("description", ""),
            teacher_id=document.get("teacherId", ""),
            student_ids=student_ids,
        )


@dataclass
class Assignment:
    """Assignment belonging to a course."""
    title: str
    course_id: str
    due_date: str
    description: str = ""
    id: Optional[str] = None
    revision: Optional[str] = None

    @property
    def deadline(self) -> datetime:
        return parse_due_date(self.due_date)

    def is_past_due(self, now: datetime) -> bool:
        return now > self.deadline

    def to_document(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "courseId": self.course_id,
            "dueDate": self.due_date,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id}
        data.update(self.to_document())
        return data

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Assignment":
        return cls(
            id=document.get("id"),
            revision=document.get("revision"),
            title=document.get("title", ""),
            description=document.get("description", ""),
            course_id=document.get("courseId", ""),
            due_date=document.get("dueDate", ""),
        )


@dataclass
class Submission:
    """A student's answer to an assignment."""
    assignment_id: str
    student_id: str
    content: str
    submitted_at: str
    grade: int = UNGRADED
    feedback: str = ""
    id: Optional[str] = None
    revision: Optional[str] = None

    @property
    def is_graded(self) -> bool:
        return self.grade != UNGRADED

    def to_document(self) -> Dict[str, Any]:
        return {
            "assignmentId": self.assignment_id,
            "studentId": self.student_id,
            "content": self.content,
            "submittedAt": self.submitted_at,
            "grade": self.grade,
            "feedback": self.feedback,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id}
        data.update(self.to_document())
        return data

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Submission":
        return cls(
            id=document.get("id"),
            revision=document.get("revision"),
            assignment_id=document.get("assignmentId", ""),
            student_id=document.get("studentId", ""),
            content=document.get("content", ""),
            submitted_at=document.get("submittedAt", ""),
            grade=int(document.get("grade") or UNGRADED),
            feedback=document.get("feedback") or "",
        )
