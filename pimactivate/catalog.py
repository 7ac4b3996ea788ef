from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pimactivate import console
from pimactivate.graph import GraphSession


ELIGIBILITY_PATH = "roleManagement/directory/roleEligibilitySchedules"
DEFAULT_SCOPE = "/"


@dataclass(frozen=True)
class EligibleRole:
    principal_id: str
    role_definition_id: str
    display_name: str
    directory_scope_id: str = DEFAULT_SCOPE


def _role_from_schedule(item: dict[str, Any]) -> Optional[EligibleRole]:
    role_def = item.get("roleDefinition")
    name = role_def.get("displayName") if isinstance(role_def, dict) else None
    if not isinstance(name, str) or not name.strip():
        return None
    principal_id = item.get("principalId")
    role_definition_id = item.get("roleDefinitionId") or (role_def.get("id") if isinstance(role_def, dict) else None)
    if not principal_id or not role_definition_id:
        return None
    return EligibleRole(
        principal_id=principal_id,
        role_definition_id=role_definition_id,
        display_name=name.strip(),
        directory_scope_id=item.get("directoryScopeId") or DEFAULT_SCOPE,
    )


def fetch_eligible_roles(session: GraphSession, principal_id: str) -> list[EligibleRole]:
    """
    List the principal's PIM eligibility schedules with role names expanded.
    Entries without a role display name are dropped.
    """
    items = session.get_all(
        ELIGIBILITY_PATH,
        params={
            "$filter": f"principalId eq '{principal_id}'",
            "$expand": "roleDefinition",
        },
    )
    roles: list[EligibleRole] = []
    for item in items:
        role = _role_from_schedule(item)
        if role is not None:
            roles.append(role)
    return roles


def is_index(value: str) -> bool:
    # str.isdigit() also accepts non-ASCII digits such as "²", which int() rejects.
    return value.isascii() and value.isdigit()


def build_selection(roles: list[EligibleRole]) -> dict[int, EligibleRole]:
    return {i: role for i, role in enumerate(roles, start=1)}


def find_role(selection: dict[int, EligibleRole], wanted: str) -> Optional[EligibleRole]:
    """Resolve a pre-supplied --role value: a 1-based index or a display name (case-insensitive)."""
    wanted = (wanted or "").strip()
    if not wanted:
        return None
    if is_index(wanted):
        return selection.get(int(wanted))
    matches = [r for r in selection.values() if r.display_name.lower() == wanted.lower()]
    return matches[0] if len(matches) == 1 else None


def print_selection(selection: dict[int, EligibleRole]) -> None:
    console.section("Eligible roles")
    for idx, role in selection.items():
        scope = "" if role.directory_scope_id == DEFAULT_SCOPE else f" (scope {role.directory_scope_id})"
        print(f"  {idx}. {role.display_name}{scope}")
