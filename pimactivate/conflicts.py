from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pimactivate.catalog import EligibleRole
from pimactivate.errors import GraphError
from pimactivate.graph import GraphSession


ACTIVE_ASSIGNMENTS_PATH = "roleManagement/directory/roleAssignmentScheduleInstances"


class ConflictStatus(Enum):
    NONE = "none"
    CONFLICT = "conflict"
    # The lookup failed. Activation still proceeds; Graph rejects a duplicate with RoleAssignmentExists.
    INCONCLUSIVE = "inconclusive"


@dataclass
class ConflictResult:
    status: ConflictStatus
    assignments: list[dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def blocks_activation(self) -> bool:
        return self.status is ConflictStatus.CONFLICT

    @property
    def active_until(self) -> Optional[str]:
        for a in self.assignments:
            end = a.get("endDateTime")
            if end:
                return end
        return None


def check_conflict(session: GraphSession, role: EligibleRole) -> ConflictResult:
    params = {
        "$filter": f"principalId eq '{role.principal_id}' and roleDefinitionId eq '{role.role_definition_id}'",
    }
    try:
        items = session.get_all(ACTIVE_ASSIGNMENTS_PATH, params=params)
    except GraphError as e:
        return ConflictResult(status=ConflictStatus.INCONCLUSIVE, error=str(e))
    if items:
        return ConflictResult(status=ConflictStatus.CONFLICT, assignments=items)
    return ConflictResult(status=ConflictStatus.NONE)
