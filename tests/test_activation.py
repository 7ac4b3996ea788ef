from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeResponse, graph_error
from pimactivate.activation import ACTIVATION_PATH, ActivationRequest, build_request, submit_activation
from pimactivate.catalog import EligibleRole
from pimactivate.errors import ActivationError, ActivationFailure


NOW = datetime(2026, 10, 18, 9, 0, 0, tzinfo=timezone.utc)
ROLE = EligibleRole("user-1", "role-1", "Global Reader")


def test_payload_shape():
    req = build_request(ROLE, duration="PT1H30M", justification="incident response", now=lambda: NOW)
    assert req.to_payload() == {
        "action": "selfActivate",
        "principalId": "user-1",
        "roleDefinitionId": "role-1",
        "directoryScopeId": "/",
        "justification": "incident response",
        "scheduleInfo": {
            "startDateTime": "2026-10-18T09:00:00Z",
            "expiration": {"type": "afterDuration", "duration": "PT1H30M"},
        },
    }


def test_empty_scope_defaults_to_root():
    req = ActivationRequest("u", "r", "why", "PT1H", directory_scope_id="")
    assert req.directory_scope_id == "/"


def test_expiry_is_start_plus_duration():
    req = build_request(ROLE, duration="PT2H30M", justification="x", now=lambda: NOW)
    assert req.expires_at == NOW + timedelta(hours=2, minutes=30)


def test_submit_success(session, http):
    http.add("POST", ACTIVATION_PATH, FakeResponse(201, {"id": "req-1", "status": "Provisioned"}))
    req = build_request(ROLE, duration="PT45M", justification="x", now=lambda: NOW)

    result = submit_activation(session, ROLE, req)

    assert result.role_name == "Global Reader"
    assert result.request_id == "req-1"
    assert result.status == "Provisioned"
    assert result.expires_at == NOW + timedelta(minutes=45)
    assert len(http.calls_to("POST", ACTIVATION_PATH)) == 1


@pytest.mark.parametrize(
    "code, kind",
    [
        ("RoleAssignmentExists", ActivationFailure.ALREADY_ACTIVE),
        ("PendingRoleAssignmentRequest", ActivationFailure.PENDING),
        ("RoleAssignmentRequestAcrsValidationFailed", ActivationFailure.ACRS_FAILED),
        ("RoleAssignmentRequestPolicyValidationFailed", ActivationFailure.GENERIC),
    ],
)
def test_submit_failure_is_classified(session, http, code, kind):
    http.add("POST", ACTIVATION_PATH, graph_error(400, code, "details"))
    req = build_request(ROLE, duration="PT1H", justification="x", now=lambda: NOW)

    with pytest.raises(ActivationError) as exc:
        submit_activation(session, ROLE, req)

    assert exc.value.kind is kind
    assert exc.value.message == f"{code}: details"
    # Sent once, never retried.
    assert len(http.calls_to("POST", ACTIVATION_PATH)) == 1
