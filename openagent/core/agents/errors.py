"""
Errors — Failure taxonomy for the agent core
=============================================
Capability failures are data: handlers raise ``CapabilityError`` and the
dispatcher turns it into a failed ``CapabilityResult``. Only model/transport
failures (``ModelError``) and bad task graphs (``DecompositionError``) are
allowed to end a turn or a swarm run early.
"""

from enum import Enum
from typing import Any, Dict


class ErrorCategory(str, Enum):
    """Coarse error classes reported to callers"""
    INPUT_VALIDATION = "InputValidation"
    SAFETY_BLOCKED = "SafetyBlocked"
    RESOURCE_LIMIT = "ResourceLimit"
    NOT_FOUND = "NotFound"
    TRANSIENT = "Transient"
    UNRESOLVED = "Unresolved"
    EXECUTION = "Execution"


class ErrorKind(str, Enum):
    """Fine-grained capability failure kinds"""
    UNKNOWN_CAPABILITY = "unknown_capability"
    MISSING_ARGUMENT = "missing_argument"
    INVALID_ARGUMENT = "invalid_argument"
    SAFETY_BLOCKED = "safety_blocked"
    TIMEOUT = "timeout"
    OUTPUT_TOO_LARGE = "output_too_large"
    FILE_TOO_LARGE = "file_too_large"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    EXECUTION_FAILED = "execution_failed"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORY_MAP[self]


_CATEGORY_MAP = {
    ErrorKind.UNKNOWN_CAPABILITY: ErrorCategory.INPUT_VALIDATION,
    ErrorKind.MISSING_ARGUMENT: ErrorCategory.INPUT_VALIDATION,
    ErrorKind.INVALID_ARGUMENT: ErrorCategory.INPUT_VALIDATION,
    ErrorKind.SAFETY_BLOCKED: ErrorCategory.SAFETY_BLOCKED,
    ErrorKind.TIMEOUT: ErrorCategory.RESOURCE_LIMIT,
    ErrorKind.OUTPUT_TOO_LARGE: ErrorCategory.RESOURCE_LIMIT,
    ErrorKind.FILE_TOO_LARGE: ErrorCategory.RESOURCE_LIMIT,
    ErrorKind.NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.TRANSIENT: ErrorCategory.TRANSIENT,
    ErrorKind.EXECUTION_FAILED: ErrorCategory.EXECUTION,
}


class CapabilityError(Exception):
    """
    Raised by a capability handler to report a failure.

    Extra keyword arguments are carried into the result payload, so a failed
    command can still report its stdout/stderr.
    """

    def __init__(self, kind: ErrorKind, message: str, **payload: Any):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.payload: Dict[str, Any] = payload


class ModelError(Exception):
    """Communication with the chat model failed (transient, fatal to a turn)"""

    category = ErrorCategory.TRANSIENT


class DecompositionError(Exception):
    """The planner did not return a usable task graph"""


class RegistryError(Exception):
    """The capability catalog and the registered handlers disagree"""
