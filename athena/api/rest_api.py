"""
REST API implementation for the Athena platform using FastAPI.
"""

import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from pydantic import BaseModel, Field

from fastapi import FastAPI, Depends, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.entities import Principal
from ..core.exceptions import (
    AthenaException, AuthenticationError, AuthorizationError, BusinessRuleError,
    ConflictError, ResourceNotFoundError, ValidationError
)
from ..core.interfaces import IdentityResolver
from ..services import AuthorizationGateway


logger = logging.getLogger(__name__)


# Pydantic models for API
class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=5000)
    teacher_id: Optional[str] = Field(None, alias="teacherId")


class AssignmentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=5000)
    due_date: str = Field(..., alias="dueDate", pattern=r'^\d{4}-\d{2}-\d{2}$')


class SubmissionCreate(BaseModel):
    content: str = Field(..., min_length=1)


class GradeRequest(BaseModel):
    # Range is checked by the gateway, after its role check.
    grade: int
    feedback: str = Field("", max_length=5000)


class ApiResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
    meta: Optional[Dict[str, Any]] = None


# Most specific classes first.
_STATUS_BY_ERROR = [
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ResourceNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (BusinessRuleError, 422),
]


def status_for_error(error: AthenaException) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _envelope(status_code: int, message: str, error_code: Optional[str] = None) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "message": message}
    if error_code:
        body["error_code"] = error_code
    return JSONResponse(status_code=status_code, content=body)


class AthenaRestAPI:
    """REST API implementation for the Athena platform."""

    def __init__(self, gateway: AuthorizationGateway, identity_resolver: IdentityResolver,
                 cors_origins: Optional[list] = None):
        self._gateway = gateway
        self._identity_resolver = identity_resolver

        # Create FastAPI app
        self.app = FastAPI(
            title="Athena Course Management API",
            description="Policy-gated course, assignment and submission management",
            version=__version__,
            docs_url="/docs",
            redoc_url="/redoc"
        )

        # Add CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins or ["*"],
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

        self._setup_exception_handlers()
        self._setup_routes()

    def _setup_exception_handlers(self):
        """Translate every failure into the response envelope."""

        @self.app.exception_handler(AthenaException)
        async def athena_error(request: Request, exc: AthenaException):
            status_code = status_for_error(exc)
            if status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
                return _envelope(status_code, "Upstream service failure", exc.error_code)
            return _envelope(status_code, exc.message, exc.error_code)

        @self.app.exception_handler(RequestValidationError)
        async def invalid_request(request: Request, exc: RequestValidationError):
            errors = exc.errors()
            first = errors[0] if errors else {}
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"Invalid request payload: {field} {first.get('msg', '')}".strip()
            return _envelope(status.HTTP_400_BAD_REQUEST, message, "invalid_payload")

        @self.app.exception_handler(Exception)
        async def unexpected_error(request: Request, exc: Exception):
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal error")

    def _current_principal(self, authorization: Optional[str] = Header(None)) -> Principal:
        """Resolve the bearer token on the request."""
        if not authorization:
            raise AuthenticationError("Authorization header is required", error_code="missing_credential")

        # Expecting format: "Bearer <token>"
        parts = authorization.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
            raise AuthenticationError("Invalid authorization header format", error_code="malformed_credential")

        return self._identity_resolver.resolve(parts[1])

    def _setup_routes(self):
        """Setup API routes."""
        current_principal = self._current_principal

        @self.app.get("/", response_model=Dict[str, str])
        async def root():
            """Root endpoint."""
            return {
                "message": "Athena Course Management API",
                "version": __version__,
                "docs": "/docs"
            }

        @self.app.get("/health", response_model=Dict[str, str])
        async def health_check():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

        # Course endpoints
        @self.app.get("/api/courses", response_model=ApiResponse)
        def list_courses(principal: Principal = Depends(current_principal)):
            """List the courses visible to the caller."""
            listing = self._gateway.list_courses(principal)
            return ApiResponse(
                success=True,
                data=[course.to_dict() for course in listing.courses],
                meta={"total": listing.total, "filtered": listing.filtered}
            )

        @self.app.post("/api/courses", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
        def create_course(course_data: CourseCreate, principal: Principal = Depends(current_principal)):
            """Create a new course."""
            course = self._gateway.create_course(
                principal,
                title=course_data.title,
                description=course_data.description,
                teacher_id=course_data.teacher_id
            )
            return ApiResponse(success=True, message="Course created successfully", data=course.to_dict())

        @self.app.post("/api/courses/{course_id}/enroll", response_model=ApiResponse)
        def enroll_in_course(course_id: str, principal: Principal = Depends(current_principal)):
            """Enroll the calling student in a course."""
            course = self._gateway.enroll_in_course(principal, course_id)
            return ApiResponse(success=True, message="Successfully enrolled in course", data=course.to_dict())

        # Assignment endpoints
        @self.app.get("/api/courses/{course_id}/assignments", response_model=ApiResponse)
        def list_assignments(course_id: str, principal: Principal = Depends(current_principal)):
            """List the assignments of a course."""
            assignments = self._gateway.list_assignments(principal, course_id)
            return ApiResponse(
                success=True,
                message="Assignments retrieved successfully",
                data=[assignment.to_dict() for assignment in assignments]
            )

        @self.app.post("/api/courses/{course_id}/assignments", response_model=ApiResponse,
                       status_code=status.HTTP_201_CREATED)
        def create_assignment(course_id: str, assignment_data: AssignmentCreate,
                              principal: Principal = Depends(current_principal)):
            """Create an assignment in a course."""
            assignment = self._gateway.create_assignment(
                principal,
                course_id=course_id,
                title=assignment_data.title,
                due_date=assignment_data.due_date,
                description=assignment_data.description
            )
            return ApiResponse(success=True, message="Assignment created successfully", data=assignment.to_dict())

        # Submission endpoints
        @self.app.post("/api/assignments/{assignment_id}/submissions", response_model=ApiResponse,
                       status_code=status.HTTP_201_CREATED)
        def submit_assignment(assignment_id: str, submission_data: SubmissionCreate,
                              principal: Principal = Depends(current_principal)):
            """Submit an answer to an assignment."""
            submission = self._gateway.submit_assignment(principal, assignment_id, submission_data.content)
            return ApiResponse(success=True, message="Submission created successfully", data=submission.to_dict())

        @self.app.post("/api/submissions/{submission_id}/grade", response_model=ApiResponse)
        def grade_submission(submission_id: str, grade_data: GradeRequest,
                             principal: Principal = Depends(current_principal)):
            """Grade a submission."""
            submission = self._gateway.grade_submission(
                principal, submission_id, grade_data.grade, grade_data.feedback
            )
            return ApiResponse(success=True, message="Submission graded successfully", data=submission.to_dict())
