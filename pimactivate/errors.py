from __future__ import annotations

from enum import Enum, IntEnum
from typing import Optional


class ExitCode(IntEnum):
    SUCCESS = 0
    AUTH_FAILURE = 1
    USAGE = 2
    NO_ELIGIBLE_ROLES = 3
    CONFLICT = 4
    ACTIVATION_FAILED = 5
    ALREADY_ACTIVE = 6
    PENDING = 7
    ACRS_FAILED = 8
    API_ERROR = 9
    ABORTED = 130


class ActivationFailure(Enum):
    ALREADY_ACTIVE = "already_active"
    PENDING = "pending"
    ACRS_FAILED = "acrs_failed"
    GENERIC = "generic"

    @property
    def exit_code(self) -> ExitCode:
        return _FAILURE_EXIT_CODES[self]

    @property
    def description(self) -> str:
        return _FAILURE_DESCRIPTIONS[self]


_FAILURE_EXIT_CODES = {
    ActivationFailure.ALREADY_ACTIVE: ExitCode.ALREADY_ACTIVE,
    ActivationFailure.PENDING: ExitCode.PENDING,
    ActivationFailure.ACRS_FAILED: ExitCode.ACRS_FAILED,
    ActivationFailure.GENERIC: ExitCode.ACTIVATION_FAILED,
}

_FAILURE_DESCRIPTIONS = {
    ActivationFailure.ALREADY_ACTIVE: "The role is already active for this account.",
    ActivationFailure.PENDING: "An activation request for this role is already pending.",
    ActivationFailure.ACRS_FAILED: (
        "The role requires step-up authentication that the current session does not satisfy. "
        "Sign in again with --auth-context."
    ),
    ActivationFailure.GENERIC: "Role activation failed.",
}

# Ordered: first match wins.
_FAILURE_MARKERS: list[tuple[str, ActivationFailure]] = [
    ("RoleAssignmentExists", ActivationFailure.ALREADY_ACTIVE),
    ("PendingRoleAssignmentRequest", ActivationFailure.PENDING),
    ("RoleAssignmentRequestAcrsValidationFailed", ActivationFailure.ACRS_FAILED),
]


def classify_activation_error(message: Optional[str]) -> ActivationFailure:
    """
    Translate an activation error message into an ActivationFailure.
    This is the only place where Graph error text is inspected.
    """
    text = message or ""
    for marker, kind in _FAILURE_MARKERS:
        if marker in text:
            return kind
    return ActivationFailure.GENERIC


class PimError(Exception):
    pass


class AuthFailure(PimError):
    pass


class InvalidInput(PimError, ValueError):
    pass


class GraphError(PimError):
    def __init__(self, message: str, *, status_code: Optional[int] = None, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class ActivationError(PimError):
    def __init__(self, message: str, *, kind: Optional[ActivationFailure] = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or classify_activation_error(message)

    @property
    def exit_code(self) -> ExitCode:
        return self.kind.exit_code
