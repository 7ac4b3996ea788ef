from __future__ import annotations

from typing import Any, Callable, Optional

import requests

from pimactivate.errors import GraphError


GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
DEFAULT_TIMEOUT = 30


def _error_message(r: requests.Response) -> tuple[Optional[str], str]:
    """
    Graph errors look like {"error": {"code": "...", "message": "..."}}.
    Returns (code, "code: message") so callers can match on either part.
    """
    try:
        data = r.json()
    except ValueError:
        data = None
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict):
        code = err.get("code")
        msg = err.get("message") or ""
        if code:
            return code, f"{code}: {msg}" if msg else code
        if msg:
            return None, msg
    return None, f"HTTP {r.status_code}: {r.text[:200]}"


class GraphSession:
    """
    Minimal Microsoft Graph session over requests.
    Opened with connect() (or as a context manager) and closed with disconnect().
    """

    def __init__(
        self,
        *,
        token: str,
        endpoint: str = GRAPH_ENDPOINT,
        timeout: int = DEFAULT_TIMEOUT,
        http: Optional[requests.Session] = None,
        trace: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._token = token
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._http = http
        self._owns_http = http is None
        self._trace = trace
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> "GraphSession":
        if self._http is None:
            self._http = requests.Session()
        self._http.headers.update(
            {
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )
        self._connected = True
        return self

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        if self._http is not None:
            self._http.headers.pop("Authorization", None)
            if self._owns_http:
                self._http.close()
                self._http = None

    def __enter__(self) -> "GraphSession":
        return self.connect()

    def __exit__(self, *exc: Any) -> None:
        self.disconnect()

    def _url(self, path: str) -> str:
        # nextLink values are absolute.
        if path.startswith("https://") or path.startswith("http://"):
            return path
        return f"{self._endpoint}/{path.lstrip('/')}"

    def _send(self, method: str, path: str, *, params: Optional[dict[str, str]] = None, payload: Any = None) -> Any:
        if not self._connected or self._http is None:
            raise GraphError("Graph session is not connected")
        url = self._url(path)
        if self._trace:
            self._trace(f"{method} {url}")
        try:
            r = self._http.request(method, url, params=params, json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            raise GraphError(f"Graph {method} {url} failed: {e}") from e
        if self._trace:
            self._trace(f"{method} {url} -> {r.status_code}")
        if r.status_code >= 400:
            code, message = _error_message(r)
            raise GraphError(message, status_code=r.status_code, code=code)
        if r.status_code == 204 or not r.content:
            return {}
        try:
            return r.json()
        except ValueError as e:
            raise GraphError(f"Unexpected Graph response (not JSON) from {url}") from e

    def get_json(self, path: str, params: Optional[dict[str, str]] = None) -> dict[str, Any]:
        data = self._send("GET", path, params=params)
        if not isinstance(data, dict):
            raise GraphError("Unexpected Graph response (not JSON object)")
        return data

    def get_all(self, path: str, params: Optional[dict[str, str]] = None) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        url: Optional[str] = path
        while url:
            data = self.get_json(url, params=params)
            params = None  # nextLink includes query
            values = data.get("value") or []
            if isinstance(values, list):
                out.extend(v for v in values if isinstance(v, dict))
            url = data.get("@odata.nextLink")
        return out

    def post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = self._send("POST", path, payload=payload)
        return data if isinstance(data, dict) else {}

    def me(self) -> dict[str, Any]:
        return self.get_json("me", params={"$select": "id,displayName,userPrincipalName"})
