#!/usr/bin/env python3

from __future__ import annotations

import argparse
import sys
import time
from typing import Any, Callable, Optional

import requests

from pimactivate import console
from pimactivate.activation import build_request, submit_activation
from pimactivate.auth import AUTH_METHODS, AuthResult, Principal, authenticate, resolve_principal
from pimactivate.catalog import EligibleRole, build_selection, fetch_eligible_roles, find_role, print_selection
from pimactivate.conflicts import ConflictStatus, check_conflict
from pimactivate.errors import ActivationError, ActivationFailure, AuthFailure, ExitCode, GraphError, InvalidInput
from pimactivate.graph import DEFAULT_TIMEOUT, GRAPH_ENDPOINT, GraphSession
from pimactivate.prompts import (
    duration_to_iso,
    prompt_duration,
    prompt_justification,
    prompt_selection,
    validate_justification,
)
from pimactivate.report import Outcome, atomic_write_json, build_report


DEFAULT_COUNTDOWN = 5

# Outcomes that end with countdown, disconnect and acknowledgment.
WIND_DOWN_CODES = {
    ExitCode.SUCCESS,
    ExitCode.CONFLICT,
    ExitCode.ACTIVATION_FAILED,
    ExitCode.ALREADY_ACTIVE,
    ExitCode.PENDING,
    ExitCode.ACRS_FAILED,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Self-activate an eligible Entra ID (PIM) directory role through Microsoft Graph."
    )

    # Auth.
    ap.add_argument(
        "--auth-method",
        default="auto",
        choices=AUTH_METHODS,
        help="auto: Graph token, then Azure CLI cache, then interactive sign-in; "
        "interactive: browser sign-in with MFA; token: use --graph-token / PIM_GRAPH_TOKEN; "
        "az-cache: reuse the Azure CLI token cache (default: auto).",
    )
    ap.add_argument("--tenant-id", help="Tenant ID for interactive sign-in (default: AZURE_TENANT_ID or 'organizations').")
    ap.add_argument("--client-id", help="Public client ID for interactive sign-in (default: AZURE_CLIENT_ID or Microsoft Graph CLI app id).")
    ap.add_argument("--graph-token", help="Microsoft Graph access token (Bearer) of a pre-authenticated session (or PIM_GRAPH_TOKEN).")
    ap.add_argument("--device-code", action="store_true", help="Use device-code sign-in instead of opening a browser.")
    ap.add_argument(
        "--no-az-token-cache",
        action="store_true",
        help="Do not read tokens from ~/.azure/msal_token_cache.json.",
    )
    ap.add_argument(
        "--auth-context",
        help="Authentication context id (e.g. c1) to satisfy at sign-in, for roles that require step-up authentication.",
    )

    # Request.
    ap.add_argument("--role", help="Role to activate: display name or 1-based index (skips the role prompt).")
    ap.add_argument("--duration", help="Activation duration such as 1H, 30M or 2H30M (skips the duration prompt).")
    ap.add_argument("--justification", help="Justification text (skips the justification prompt).")

    # Behaviour.
    ap.add_argument("--graph-endpoint", default=GRAPH_ENDPOINT, help=f"Microsoft Graph base URL (default: {GRAPH_ENDPOINT}).")
    ap.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help=f"Per-request timeout in seconds (default: {DEFAULT_TIMEOUT}).")
    ap.add_argument("--countdown", type=int, default=DEFAULT_COUNTDOWN, help=f"Seconds to wait before disconnecting (default: {DEFAULT_COUNTDOWN}).")
    ap.add_argument("--no-pause", action="store_true", help="Do not wait for Enter before exiting.")
    ap.add_argument("--verbose", action="store_true", help="Print Graph requests and response codes.")
    ap.add_argument("--out-json", help="Write the outcome to this path as JSON (stdout stays human-readable).")
    return ap


def _write_outcome(args, outcome: Outcome) -> None:
    if not getattr(args, "out_json", None):
        return
    try:
        atomic_write_json(args.out_json, build_report(outcome))
    except OSError as e:
        console.error(f"Failed to write {args.out_json}: {e}")


def _wind_down(session: GraphSession, args, *, sleep: Callable[[float], None], input_fn: Callable[[str], str]) -> None:
    console.countdown(getattr(args, "countdown", DEFAULT_COUNTDOWN), sleep=sleep)
    session.disconnect()
    console.info("Disconnected from Microsoft Graph.")
    if not getattr(args, "no_pause", False):
        console.wait_for_ack(input_fn=input_fn)


def _choose_role(args, selection: dict[int, EligibleRole], *, input_fn: Callable[[str], str]) -> Optional[EligibleRole]:
    if getattr(args, "role", None):
        role = find_role(selection, args.role)
        if role is None:
            console.error(f"Role '{args.role}' is not one of your eligible roles (or matches more than one scope).")
        return role
    return prompt_selection(selection, input_fn=input_fn)


def _activate(session: GraphSession, args, principal: Principal, *, input_fn: Callable[[str], str]) -> Outcome:
    try:
        roles = fetch_eligible_roles(session, principal.id)
    except GraphError as e:
        console.error(f"Failed to list eligible roles: {e}")
        return Outcome(ExitCode.API_ERROR, "Failed to list eligible roles", principal=principal.label, error=str(e))

    if not roles:
        console.warn(f"No eligible roles found for {principal.label}.")
        return Outcome(ExitCode.NO_ELIGIBLE_ROLES, "No eligible roles", principal=principal.label)

    selection = build_selection(roles)
    print_selection(selection)

    role = _choose_role(args, selection, input_fn=input_fn)
    if role is None:
        return Outcome(ExitCode.USAGE, "Unknown role", principal=principal.label, error=f"Unknown role '{args.role}'")

    duration = duration_to_iso(args.duration) if getattr(args, "duration", None) is not None else prompt_duration(input_fn=input_fn)
    justification = (
        validate_justification(args.justification)
        if getattr(args, "justification", None) is not None
        else prompt_justification(input_fn=input_fn)
    )
    base = {"principal": principal.label, "role": role.display_name, "duration": duration, "justification": justification}

    conflict = check_conflict(session, role)
    if conflict.blocks_activation:
        until = f" until {conflict.active_until}" if conflict.active_until else ""
        console.error(f"Role '{role.display_name}' is already active for {principal.label}{until}. Nothing to do.")
        return Outcome(ExitCode.CONFLICT, "Role already has an active assignment", **base)
    if conflict.status is ConflictStatus.INCONCLUSIVE:
        console.warn(f"Could not check existing assignments ({conflict.error}). Continuing with activation.")

    request = build_request(role, duration=duration, justification=justification)
    console.info(f"Requesting activation of '{role.display_name}' for {duration}...")
    try:
        result = submit_activation(session, role, request)
    except ActivationError as e:
        console.error(e.kind.description)
        if e.kind is ActivationFailure.GENERIC:
            console.error(e.message)
        return Outcome(e.exit_code, e.kind.description, error=e.message, **base)

    local_expiry = result.expires_at.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
    if (result.status or "").lower().startswith("pending"):
        console.warn(f"Activation of '{result.role_name}' submitted and awaiting approval (status: {result.status}).")
    else:
        console.success(f"Role '{result.role_name}' activated.")
    console.kv("Expires", f"{local_expiry} ({result.expires_at.strftime('%Y-%m-%dT%H:%M:%SZ')})")
    return Outcome(
        ExitCode.SUCCESS,
        f"Activated {result.role_name}",
        request_id=result.request_id,
        started_at=result.started_at,
        expires_at=result.expires_at,
        **base,
    )


def run(
    args,
    *,
    input_fn: Callable[[str], str] = input,
    sleep: Callable[[float], None] = time.sleep,
    http: Optional[requests.Session] = None,
    candidates: Optional[list[tuple[str, Any, list[str]]]] = None,
) -> ExitCode:
    # Pre-supplied values are checked before anything touches the network.
    try:
        if getattr(args, "duration", None) is not None:
            duration_to_iso(args.duration)
        if getattr(args, "justification", None) is not None:
            validate_justification(args.justification)
    except InvalidInput as e:
        console.error(str(e))
        _write_outcome(args, Outcome(ExitCode.USAGE, "Invalid arguments", error=str(e)))
        return ExitCode.USAGE

    try:
        auth: AuthResult = authenticate(args, candidates=candidates)
    except AuthFailure as e:
        console.error(f"Authentication failed: {e}")
        _write_outcome(args, Outcome(ExitCode.AUTH_FAILURE, "Authentication failed", error=str(e)))
        return ExitCode.AUTH_FAILURE

    trace = console.info if getattr(args, "verbose", False) else None
    with GraphSession(
        token=auth.token,
        endpoint=getattr(args, "graph_endpoint", GRAPH_ENDPOINT),
        timeout=getattr(args, "timeout", DEFAULT_TIMEOUT),
        http=http,
        trace=trace,
    ) as session:
        try:
            principal = resolve_principal(session, auth)
        except AuthFailure as e:
            console.error(f"Authentication failed: {e}")
            outcome = Outcome(ExitCode.AUTH_FAILURE, "Authentication failed", error=str(e))
        else:
            console.success(f"Signed in as {principal.label} ({auth.method}).")
            try:
                outcome = _activate(session, args, principal, input_fn=input_fn)
            except (EOFError, KeyboardInterrupt):
                print()
                console.warn("Aborted.")
                outcome = Outcome(ExitCode.ABORTED, "Aborted by operator", principal=principal.label)

        _write_outcome(args, outcome)
        if outcome.exit_code in WIND_DOWN_CODES:
            _wind_down(session, args, sleep=sleep, input_fn=input_fn)
    return outcome.exit_code


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    sys.exit(int(run(args)))


if __name__ == "__main__":
    main()
