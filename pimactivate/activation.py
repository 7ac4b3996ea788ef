from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pimactivate.catalog import DEFAULT_SCOPE, EligibleRole
from pimactivate.errors import ActivationError, GraphError
from pimactivate.graph import GraphSession
from pimactivate.prompts import parse_iso_duration


ACTIVATION_PATH = "roleManagement/directory/roleAssignmentScheduleRequests"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _fmt_utc_z(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class ActivationRequest:
    principal_id: str
    role_definition_id: str
    justification: str
    duration: str
    directory_scope_id: str = DEFAULT_SCOPE
    start_date_time: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if not self.directory_scope_id:
            self.directory_scope_id = DEFAULT_SCOPE

    @property
    def expires_at(self) -> datetime:
        return self.start_date_time + parse_iso_duration(self.duration)

    def to_payload(self) -> dict[str, Any]:
        return {
            "action": "selfActivate",
            "principalId": self.principal_id,
            "roleDefinitionId": self.role_definition_id,
            "directoryScopeId": self.directory_scope_id,
            "justification": self.justification,
            "scheduleInfo": {
                "startDateTime": _fmt_utc_z(self.start_date_time),
                "expiration": {
                    "type": "afterDuration",
                    "duration": self.duration,
                },
            },
        }


@dataclass
class ActivationResult:
    role_name: str
    request_id: Optional[str]
    status: Optional[str]
    started_at: datetime
    expires_at: datetime


def build_request(
    role: EligibleRole,
    *,
    duration: str,
    justification: str,
    now: Callable[[], datetime] = _utc_now,
) -> ActivationRequest:
    return ActivationRequest(
        principal_id=role.principal_id,
        role_definition_id=role.role_definition_id,
        directory_scope_id=role.directory_scope_id,
        justification=justification,
        duration=duration,
        start_date_time=now(),
    )


def submit_activation(session: GraphSession, role: EligibleRole, request: ActivationRequest) -> ActivationResult:
    """
    Send the self-activation request once.
    Raises ActivationError classified as already-active, pending, step-up or generic.
    """
    try:
        data = session.post_json(ACTIVATION_PATH, request.to_payload())
    except GraphError as e:
        raise ActivationError(e.message) from e
    return ActivationResult(
        role_name=role.display_name,
        request_id=data.get("id"),
        status=data.get("status"),
        started_at=request.start_date_time,
        expires_at=request.expires_at,
    )
