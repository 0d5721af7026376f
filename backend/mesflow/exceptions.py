"""
MesFlow - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the planning, scheduling and execution services.

Usage:
    from mesflow.exceptions import NotFoundError, StructuralError

    raise NotFoundError("ManufacturingOrder", order_id)
    raise StructuralError("BOM has no root item", bom_id=bom.id)
"""
from typing import Any, Dict, List, Optional


class MesFlowException(Exception):
    """
    Base exception for all MesFlow errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "VALIDATION_ERROR")
        details: Additional context for debugging
    """

    error_code: str = "MESFLOW_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a plain dictionary for event sinks and callers."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# Input Errors
# ===================


class ValidationError(MesFlowException):
    """Raised when input validation fails (before any mutation)."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details=details)


class NotFoundError(MesFlowException):
    """Raised when a record is not found."""

    error_code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# State Errors
# ===================


class InvalidStateError(MesFlowException):
    """Raised when an operation is invalid for the current state."""

    error_code = "INVALID_STATE"

    def __init__(
        self,
        message: str = "Operation not allowed in current state",
        *,
        current_state: Optional[str] = None,
        allowed_states: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if allowed_states:
            details["allowed_states"] = sorted(str(s) for s in allowed_states)
        super().__init__(message, details=details)


class DependencyError(InvalidStateError):
    """Raised when a step is started before its predecessor has completed."""

    error_code = "DEPENDENCY_ERROR"

    def __init__(
        self,
        message: str = "Step dependency not satisfied",
        *,
        step_id: Optional[int] = None,
        depends_on_step_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if step_id is not None:
            details["step_id"] = step_id
        if depends_on_step_id is not None:
            details["depends_on_step_id"] = depends_on_step_id
        super().__init__(message, details=details)


# ===================
# Structure Errors
# ===================


class StructuralError(MesFlowException):
    """
    Raised when a BOM tree is malformed for the requested operation.

    Covers a missing root item, several root items, a root whose item does
    not match the BOM output, a missing current version and BOM cycles.
    Always fatal to the enclosing explosion.
    """

    error_code = "STRUCTURAL_ERROR"

    def __init__(
        self,
        message: str = "Bill of materials structure is invalid",
        *,
        bom_id: Optional[int] = None,
        version_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if bom_id is not None:
            details["bom_id"] = bom_id
        if version_id is not None:
            details["version_id"] = version_id
        super().__init__(message, details=details)


# ===================
# Conflict Errors
# ===================


class ConflictError(MesFlowException):
    """Raised when there's a resource conflict."""

    error_code = "CONFLICT"

    def __init__(
        self,
        message: str = "Resource conflict",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class SchedulingConflictError(ConflictError):
    """Raised when a schedule write would double-book a work cell."""

    error_code = "SCHEDULING_CONFLICT"

    def __init__(
        self,
        message: str = "Work cell is already booked for the requested interval",
        *,
        work_cell_id: Optional[int] = None,
        conflicting_schedule_ids: Optional[List[int]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if work_cell_id is not None:
            details["work_cell_id"] = work_cell_id
        self.conflicting_schedule_ids = list(conflicting_schedule_ids or [])
        if self.conflicting_schedule_ids:
            details["conflicting_schedule_ids"] = self.conflicting_schedule_ids
        super().__init__(message, details=details)


class ConcurrencyError(ConflictError):
    """Raised when concurrent modification is detected."""

    error_code = "CONCURRENCY_ERROR"

    def __init__(
        self,
        message: str = "Record was modified by another transaction",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
