from __future__ import annotations

import base64
import json
import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import msal
from azure.core.credentials import AccessToken
from azure.identity import DeviceCodeCredential, InteractiveBrowserCredential

from pimactivate import console
from pimactivate.errors import AuthFailure, GraphError
from pimactivate.graph import GRAPH_SCOPE, GraphSession


AZURE_CLI_CLIENT_ID = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"  # Azure CLI public app id (owner of the az token cache)
GRAPH_CLI_CLIENT_ID = "14d82eec-204b-4c2f-b7e8-296a70dab67e"  # Microsoft Graph Command Line Tools public app id

# Delegated scopes needed to read eligibility and self-activate.
PIM_SCOPES = [
    "https://graph.microsoft.com/User.Read",
    "https://graph.microsoft.com/RoleEligibilitySchedule.Read.Directory",
    "https://graph.microsoft.com/RoleAssignmentSchedule.ReadWrite.Directory",
]

AUTH_METHODS = ("auto", "interactive", "token", "az-cache")


class AzureMsalTokenCacheCredential:
    """
    Use the Azure CLI MSAL token cache (~/.azure/msal_token_cache.json) WITHOUT invoking `az`.
    Lets operators reuse an existing `az login` session.
    """

    def __init__(
        self,
        *,
        cache_path: Optional[str] = None,
        client_id: str = AZURE_CLI_CLIENT_ID,
        authority: str = "https://login.microsoftonline.com/organizations",
    ) -> None:
        self._cache_path = cache_path or os.path.expanduser("~/.azure/msal_token_cache.json")
        self._client_id = client_id
        self._authority = authority
        self._cache = msal.SerializableTokenCache()
        self._app: Optional[msal.PublicClientApplication] = None

    def available(self) -> bool:
        return os.path.exists(self._cache_path)

    def _load(self) -> msal.PublicClientApplication:
        if self._app is not None:
            return self._app
        if not self.available():
            raise RuntimeError(f"Azure CLI token cache not found at {self._cache_path}")
        with open(self._cache_path, "r", encoding="utf-8") as f:
            self._cache.deserialize(f.read())
        self._app = msal.PublicClientApplication(
            client_id=self._client_id,
            authority=self._authority,
            token_cache=self._cache,
        )
        return self._app

    def get_token(self, *scopes: str, claims: Optional[str] = None, **kwargs: Any) -> AccessToken:
        app = self._load()
        accounts = app.get_accounts()
        if not accounts:
            raise RuntimeError("No accounts found in Azure CLI token cache. Run `az login` or use --auth-method interactive.")
        result = app.acquire_token_silent_with_error(list(scopes), account=accounts[0], claims_challenge=claims)
        if not result or "access_token" not in result:
            detail = (result or {}).get("error_description") or "no cached refresh token"
            raise RuntimeError(f"Failed to acquire token silently from Azure CLI cache: {detail}")
        expires_on = int(result.get("expires_on") or 0) or int(time.time()) + int(result.get("expires_in") or 300)
        return AccessToken(result["access_token"], expires_on)


class StaticTokenCredential:
    def __init__(self, *, graph_token: str) -> None:
        self._token = (graph_token or "").strip()
        if self._token.lower().startswith("bearer "):
            self._token = self._token[7:].strip()

    def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        if not self._token:
            raise ValueError("Empty Graph token. Provide --graph-token or PIM_GRAPH_TOKEN.")
        exp = _jwt_exp(self._token) or int(time.time()) + 300
        return AccessToken(self._token, exp)


def _jwt_claims(token: str) -> dict[str, Any]:
    """
    Decode JWT claims WITHOUT verifying signature (best-effort).
    Used to read oid/upn/tid/exp from access tokens.
    """
    try:
        parts = token.split(".")
        if len(parts) < 2:
            return {}
        payload = parts[1]
        pad = "=" * (-len(payload) % 4)
        data = base64.urlsafe_b64decode(payload + pad)
        obj = json.loads(data.decode("utf-8", errors="ignore"))
        return obj if isinstance(obj, dict) else {}
    except (ValueError, UnicodeDecodeError):
        return {}


def _jwt_exp(token: str) -> Optional[int]:
    exp = _jwt_claims(token).get("exp")
    try:
        return int(exp) if exp is not None else None
    except (TypeError, ValueError):
        return None


def acrs_claims(auth_context: str) -> str:
    """Claims challenge asking for a token that satisfies the given authentication context (e.g. c1)."""
    return json.dumps({"access_token": {"acrs": {"essential": True, "value": auth_context}}})


@dataclass
class AuthResult:
    method: str
    token: str
    expires_on: int
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Principal:
    id: str
    display_name: Optional[str] = None
    user_principal_name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.user_principal_name or self.display_name or self.id


def _interactive_credential(args) -> Any:
    tenant_id = getattr(args, "tenant_id", None) or os.getenv("AZURE_TENANT_ID") or "organizations"
    client_id = getattr(args, "client_id", None) or os.getenv("AZURE_CLIENT_ID") or GRAPH_CLI_CLIENT_ID

    if getattr(args, "device_code", False):
        def prompt_callback(verification_uri: str, user_code: str, expires_on: Any) -> None:
            console.info(f"To sign in, open {verification_uri} and enter the code {user_code}")

        return DeviceCodeCredential(tenant_id=tenant_id, client_id=client_id, prompt_callback=prompt_callback)

    return InteractiveBrowserCredential(tenant_id=tenant_id, client_id=client_id)


def candidate_credentials(args) -> list[tuple[str, Any, list[str]]]:
    """
    Ordered (label, credential, scopes) candidates for the selected auth method.
    TokenPassthrough candidates come first; interactive sign-in is the fallback.
    """
    auth_method = (getattr(args, "auth_method", None) or "auto").strip().lower()
    if auth_method not in AUTH_METHODS:
        raise ValueError(f"Invalid --auth-method. Use one of: {', '.join(AUTH_METHODS)}")

    graph_token = getattr(args, "graph_token", None) or os.getenv("PIM_GRAPH_TOKEN")
    out: list[tuple[str, Any, list[str]]] = []

    if auth_method in ("auto", "token") and graph_token:
        out.append(("token", StaticTokenCredential(graph_token=graph_token), [GRAPH_SCOPE]))
    if auth_method == "token" and not out:
        raise ValueError("token auth selected but no Graph token was given (--graph-token or PIM_GRAPH_TOKEN).")

    if auth_method in ("auto", "az-cache") and not getattr(args, "no_az_token_cache", False):
        cache_cred = AzureMsalTokenCacheCredential()
        if cache_cred.available() or auth_method == "az-cache":
            out.append(("az-cache", cache_cred, [GRAPH_SCOPE]))
    if auth_method == "az-cache" and not out:
        raise ValueError("az-cache auth selected but --no-az-token-cache was also given.")

    # A static token or cached session cannot be stepped up; the step-up claim needs a fresh sign-in.
    if getattr(args, "auth_context", None) and auth_method == "auto":
        out = []

    if auth_method in ("auto", "interactive"):
        out.append(("interactive", _interactive_credential(args), list(PIM_SCOPES)))
    return out


def authenticate(args, *, candidates: Optional[list[tuple[str, Any, list[str]]]] = None) -> AuthResult:
    """
    Acquire a Graph access token, trying each candidate in order.
    Raises AuthFailure when none of them yields a token.
    """
    try:
        candidates = candidates if candidates is not None else candidate_credentials(args)
    except ValueError as e:
        raise AuthFailure(str(e)) from e

    auth_context = getattr(args, "auth_context", None)
    claims = acrs_claims(auth_context) if auth_context else None

    last_error: Optional[Exception] = None
    for label, credential, scopes in candidates:
        try:
            if claims:
                at = credential.get_token(*scopes, claims=claims)
            else:
                at = credential.get_token(*scopes)
        except Exception as e:
            # Any credential failure (azure-identity, msal or token decoding) moves on to the next candidate.
            last_error = e
            if len(candidates) > 1:
                console.warn(f"{label} sign-in failed: {e}")
            continue
        return AuthResult(method=label, token=at.token, expires_on=int(at.expires_on), claims=_jwt_claims(at.token))

    if last_error is None:
        raise AuthFailure("No authentication method available.")
    raise AuthFailure(str(last_error)) from last_error


def resolve_principal(session: GraphSession, auth: AuthResult) -> Principal:
    """Identify the signed-in principal via /me, falling back to the token's oid claim."""
    try:
        me = session.me()
    except GraphError as e:
        oid = auth.claims.get("oid")
        if not oid:
            raise AuthFailure(f"Could not identify the signed-in account: {e}") from e
        return Principal(id=oid, user_principal_name=auth.claims.get("upn") or auth.claims.get("preferred_username"))
    pid = me.get("id") or auth.claims.get("oid")
    if not pid:
        raise AuthFailure("Could not identify the signed-in account: /me returned no id")
    return Principal(id=pid, display_name=me.get("displayName"), user_principal_name=me.get("userPrincipalName"))
