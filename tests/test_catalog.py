from conftest import FakeResponse, eligibility_item
from pimactivate.catalog import (
    ELIGIBILITY_PATH,
    EligibleRole,
    build_selection,
    fetch_eligible_roles,
    find_role,
)


def test_fetch_filters_by_principal_and_expands_role_names(session, http):
    http.add("GET", ELIGIBILITY_PATH, FakeResponse(200, {"value": [eligibility_item("Global Reader")]}))

    roles = fetch_eligible_roles(session, "user-1")

    assert roles == [EligibleRole("user-1", "role-1", "Global Reader", "/")]
    params = http.calls[0]["params"]
    assert params["$filter"] == "principalId eq 'user-1'"
    assert params["$expand"] == "roleDefinition"


def test_entries_without_display_name_are_dropped(session, http):
    items = [
        eligibility_item("Global Reader", role_id="r1"),
        eligibility_item(None, role_id="r2"),
        eligibility_item("  ", role_id="r3"),
        {"principalId": "user-1", "roleDefinitionId": "r4"},
    ]
    http.add("GET", ELIGIBILITY_PATH, FakeResponse(200, {"value": items}))

    roles = fetch_eligible_roles(session, "user-1")

    assert [r.role_definition_id for r in roles] == ["r1"]


def test_missing_scope_defaults_to_root(session, http):
    http.add("GET", ELIGIBILITY_PATH, FakeResponse(200, {"value": [eligibility_item("Helpdesk", scope=None)]}))
    (role,) = fetch_eligible_roles(session, "user-1")
    assert role.directory_scope_id == "/"


def test_empty_eligibility(session, http):
    http.add("GET", ELIGIBILITY_PATH, FakeResponse(200, {"value": []}))
    assert fetch_eligible_roles(session, "user-1") == []


def test_selection_is_one_based():
    roles = [EligibleRole("u", "r1", "A"), EligibleRole("u", "r2", "B")]
    selection = build_selection(roles)
    assert list(selection) == [1, 2]
    assert selection[1].display_name == "A"
    assert selection[2].display_name == "B"


def test_find_role_by_index_or_name():
    selection = build_selection([EligibleRole("u", "r1", "Global Reader"), EligibleRole("u", "r2", "Security Reader")])
    assert find_role(selection, "2").role_definition_id == "r2"
    assert find_role(selection, "global reader").role_definition_id == "r1"
    assert find_role(selection, "3") is None
    assert find_role(selection, "Nope") is None
    assert find_role(selection, "") is None


def test_find_role_ambiguous_name():
    selection = build_selection(
        [EligibleRole("u", "r1", "User Administrator", "/"), EligibleRole("u", "r1", "User Administrator", "/administrativeUnits/au1")]
    )
    assert find_role(selection, "User Administrator") is None
    assert find_role(selection, "2").directory_scope_id == "/administrativeUnits/au1"


def test_find_role_rejects_non_ascii_digits():
    selection = build_selection([EligibleRole("u", "r1", "Global Reader"), EligibleRole("u", "r2", "Security Reader")])
    assert find_role(selection, "²") is None
    assert find_role(selection, "١") is None
