"""
Platform-wide exception hierarchy.

Every domain rule violation raises one of the types below.  Each carries a
stable machine-readable ``code`` (e.g. ``APPROVAL_STEP_ORDER_VIOLATION``)
and a human-readable message.  The five kinds are:

    NotFoundError      referenced aggregate is missing           → 404
    ForbiddenError     caller lacks role / ownership             → 403
    ConflictError      uniqueness, overlap, concurrent update    → 409
    InvalidStateError  entity is outside the required state      → 400
    ValidationError    malformed input                           → 400

The HTTP mapping lives in ``portfolio.utils.errors``; services never
build responses themselves.

Usage:
    from portfolio.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Schedule", schedule_id, code="SCHEDULE_NOT_FOUND")
    raise ValidationError("Title is required", code="INVALID_DOCUMENT")
"""


class DomainError(Exception):
    """Base class for every rule violation raised by the service layer.

    Args:
        message: Human-readable explanation.
        code: Machine-readable code; falls back to the class default.
        details: Optional structured payload for API responses.
    """

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, code: str | None = None, details: dict | None = None) -> None:
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(message)


# ── Kinds ────────────────────────────────────────────────────────────────────


class NotFoundError(DomainError):
    """Raised when a requested resource does not exist.

    Also used for resources that exist but sit outside the caller's
    scope (e.g. a slot owned by another host) so that a 403 does not
    confirm existence.

    Args:
        resource: Human-readable entity name (e.g. "Workflow", "TimeSlot").
        resource_id: The key that was looked up.
        code: Machine-readable code, defaults to ``NOT_FOUND``.
    """

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: int | str | None = None, code: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, code=code)


class ForbiddenError(DomainError):
    """Raised when the caller lacks the role or ownership an operation needs."""

    code = "FORBIDDEN"


class AuthenticationError(ForbiddenError):
    """Credentials missing or wrong (HTTP 401 rather than 403)."""

    code = "INVALID_CREDENTIALS"


class ConflictError(DomainError):
    """Raised when an operation collides with existing state.

    Covers duplicate names, overlapping time windows, unique-constraint
    violations surfaced at commit, and lost optimistic-concurrency races.
    """

    code = "CONFLICT"


class InvalidStateError(DomainError):
    """Raised when an entity is not in the state an operation requires."""

    code = "INVALID_STATE"


class ValidationError(DomainError):
    """Raised when input is malformed (empty name, inverted range, bad mime type)."""

    code = "VALIDATION_ERROR"


# ── Persistence ──────────────────────────────────────────────────────────────


class DuplicateEntryError(ConflictError):
    code = "DUPLICATE_ENTRY"

    def __init__(self, message: str = "A record with the same unique values already exists") -> None:
        super().__init__(message)


class ConcurrentUpdateError(ConflictError):
    """The row changed underneath this transaction; the caller may retry."""

    code = "CONCURRENT_UPDATE"

    def __init__(self, message: str = "The record was modified by another request. Reload and retry.") -> None:
        super().__init__(message, details={"retryable": True})


# ── Document manager ─────────────────────────────────────────────────────────


class WorkflowNotFoundError(NotFoundError):
    def __init__(self, workflow_id):
        super().__init__("Workflow", workflow_id, code="WORKFLOW_NOT_FOUND")


class WorkflowNotActiveError(InvalidStateError):
    def __init__(self, workflow_id):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow id={workflow_id} is not active", code="WORKFLOW_NOT_ACTIVE")


class DuplicateStepOrderError(ConflictError):
    def __init__(self, step_order: int):
        self.step_order = step_order
        super().__init__(
            f"Step order {step_order} is used more than once in this workflow",
            code="DUPLICATE_STEP_ORDER",
        )


class DocumentNotFoundError(NotFoundError):
    def __init__(self, document_id):
        super().__init__("Document", document_id, code="DOCUMENT_NOT_FOUND")


class DocumentNotInDraftError(InvalidStateError):
    def __init__(self, document_id, status: str):
        super().__init__(
            f"Document id={document_id} is '{status}'; only draft documents can be changed",
            code="DOCUMENT_NOT_IN_DRAFT",
        )


class DocumentHasNoVersionsError(InvalidStateError):
    def __init__(self, document_id):
        super().__init__(
            f"Document id={document_id} has no versions and cannot be submitted",
            code="DOCUMENT_HAS_NO_VERSIONS",
        )


class InvalidDocumentStateError(InvalidStateError):
    def __init__(self, message: str):
        super().__init__(message, code="INVALID_DOCUMENT_STATE")


class UnauthorizedDocumentAccessError(ForbiddenError):
    def __init__(self, document_id):
        super().__init__(
            f"You are not allowed to access document id={document_id}",
            code="UNAUTHORIZED_DOCUMENT_ACCESS",
        )


class ApprovalRequestNotFoundError(NotFoundError):
    def __init__(self, approval_request_id):
        super().__init__("ApprovalRequest", approval_request_id, code="APPROVAL_REQUEST_NOT_FOUND")


class ApprovalRequestAlreadyExistsError(ConflictError):
    def __init__(self, document_id):
        super().__init__(
            f"Document id={document_id} already has an active approval request",
            code="APPROVAL_REQUEST_ALREADY_EXISTS",
        )


class ApprovalRequestNotInProgressError(InvalidStateError):
    def __init__(self, approval_request_id, status: str):
        self.status = status
        super().__init__(
            f"Approval request id={approval_request_id} is '{status}' and accepts no further decisions",
            code="APPROVAL_REQUEST_NOT_IN_PROGRESS",
        )


class ApprovalStepOrderViolationError(InvalidStateError):
    def __init__(self, expected: int, attempted: int):
        self.expected = expected
        self.attempted = attempted
        super().__init__(
            f"Step {attempted} cannot be decided; the current step is {expected}",
            code="APPROVAL_STEP_ORDER_VIOLATION",
            details={"current_step_order": expected, "attempted_step_order": attempted},
        )


class UnauthorizedApproverError(ForbiddenError):
    def __init__(self, required_role: str):
        self.required_role = required_role
        super().__init__(
            f"Deciding this step requires role '{required_role}'",
            code="UNAUTHORIZED_APPROVER",
            details={"required_role": required_role},
        )


# ── Scheduling ───────────────────────────────────────────────────────────────


class SchedulingProfileNotFoundError(NotFoundError):
    def __init__(self, profile_id):
        super().__init__("SchedulingProfile", profile_id, code="SCHEDULING_PROFILE_NOT_FOUND")


class UnauthorizedSchedulingAccessError(ForbiddenError):
    def __init__(self, message: str = "You do not own this scheduling profile"):
        super().__init__(message, code="UNAUTHORIZED_SCHEDULING_ACCESS")


class InvalidScheduleConfigurationError(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, code="INVALID_SCHEDULE_CONFIGURATION")


class OverlappingAvailabilityError(ConflictError):
    def __init__(self, start, end):
        super().__init__(
            f"Availability {start.isoformat()} - {end.isoformat()} overlaps an existing one",
            code="OVERLAPPING_AVAILABILITY",
        )


class TimeSlotNotFoundError(NotFoundError):
    def __init__(self, time_slot_id):
        super().__init__("TimeSlot", time_slot_id, code="TIME_SLOT_NOT_FOUND")


class TimeSlotNotAvailableError(ConflictError):
    def __init__(self, time_slot_id, status: str):
        super().__init__(
            f"Time slot id={time_slot_id} is '{status}' and cannot be booked",
            code="TIME_SLOT_NOT_AVAILABLE",
        )


class TimeSlotAlreadyBookedError(ConflictError):
    def __init__(self, time_slot_id):
        super().__init__(
            f"Time slot id={time_slot_id} was booked by another request",
            code="TIME_SLOT_ALREADY_BOOKED",
            details={"retryable": True},
        )


class BookingWindowViolationError(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, code="BOOKING_WINDOW_VIOLATION")


class AppointmentNotFoundError(NotFoundError):
    def __init__(self, appointment_id):
        super().__init__("Appointment", appointment_id, code="APPOINTMENT_NOT_FOUND")
