"""
Workflow errors
===============

Every rejected operation in the engine raises one of these. The kind of the
error (its class and ``code``) is what callers branch on; ``message`` is safe
to show to an end user and never carries internal state.

Usage:
    from academic_workflow.core.exceptions import NotFoundError

    if not classroom:
        raise NotFoundError("Classroom", classroom_id)
"""

from typing import Optional, Any, Dict


class WorkflowError(Exception):
    """Base exception for all engine errors"""

    code = "WORKFLOW_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class NotFoundError(WorkflowError):
    """Referenced entity does not exist"""

    code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: Any = None, message: Optional[str] = None):
        if message is None:
            message = f"{resource_type} not found"
        super().__init__(
            message,
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class ForbiddenError(WorkflowError):
    """Caller lacks ownership or role for the operation"""

    code = "FORBIDDEN"

    def __init__(self, message: str = "Not allowed"):
        super().__init__(message)


class InvalidStateError(WorkflowError):
    """Operation is not valid in the entity's current lifecycle state"""

    code = "INVALID_STATE"

    def __init__(self, message: str, current_state: Optional[str] = None):
        details = {"current_state": current_state} if current_state else None
        super().__init__(message, details=details)


class ConflictError(WorkflowError):
    """Uniqueness violation"""

    code = "CONFLICT"


class AlreadyMemberError(ConflictError):
    """Student is already on the classroom roster"""

    code = "ALREADY_MEMBER"

    def __init__(self, message: str = "Already joined this classroom"):
        super().__init__(message)


class OutOfRangeError(WorkflowError):
    """Numeric input outside its domain (marks, grade, SGPA)"""

    code = "OUT_OF_RANGE"


class EmptyInputError(WorkflowError):
    """A required collection was empty"""

    code = "EMPTY_INPUT"
