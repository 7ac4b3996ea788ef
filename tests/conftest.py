"""Shared fixtures: an in-memory stand-in for Microsoft Graph.

FakeHttp mimics the slice of ``requests.Session`` that GraphSession uses
(``headers``, ``request()``, ``close()``) and answers from a route table keyed
by (method, path-relative-to-the-endpoint).
"""

import argparse
import json
from typing import Any, Dict, List, Optional

import pytest

from pimactivate.graph import GraphSession


ENDPOINT = "https://graph.test/v1.0"


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None):
        self.status_code = status_code
        self._body = body
        if body is None:
            self.text = ""
        elif isinstance(body, str):
            self.text = body
        else:
            self.text = json.dumps(body)
        self.content = self.text.encode("utf-8")

    def json(self):
        if not self.text:
            raise ValueError("no body")
        return json.loads(self.text)


def graph_error(status_code: int, code: str, message: str) -> FakeResponse:
    return FakeResponse(status_code, {"error": {"code": code, "message": message}})


class FakeHttp:
    def __init__(self, routes: Optional[Dict[tuple, Any]] = None):
        self.headers: Dict[str, str] = {}
        self.routes: Dict[tuple, List[Any]] = {}
        self.calls: List[dict] = []
        self.closed = False
        for key, value in (routes or {}).items():
            self.add(key[0], key[1], value)

    def add(self, method: str, path: str, response: Any) -> None:
        items = response if isinstance(response, list) else [response]
        self.routes[(method, path)] = list(items)

    def request(self, method, url, params=None, json=None, timeout=None):
        path = url[len(ENDPOINT):].lstrip("/") if url.startswith(ENDPOINT) else url
        self.calls.append({"method": method, "path": path, "params": params, "json": json, "timeout": timeout})
        queue = self.routes.get((method, path))
        if not queue:
            return FakeResponse(404, {"error": {"code": "NotFound", "message": f"no route for {method} {path}"}})
        item = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True

    def calls_to(self, method: str, path: str) -> List[dict]:
        return [c for c in self.calls if c["method"] == method and c["path"] == path]


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def session(http):
    s = GraphSession(token="test-token", endpoint=ENDPOINT, http=http)
    s.connect()
    yield s
    s.disconnect()


def make_args(**overrides) -> argparse.Namespace:
    defaults = dict(
        auth_method="token",
        tenant_id=None,
        client_id=None,
        graph_token="test-token",
        device_code=False,
        no_az_token_cache=True,
        auth_context=None,
        role=None,
        duration=None,
        justification=None,
        graph_endpoint=ENDPOINT,
        timeout=5,
        countdown=0,
        no_pause=True,
        verbose=False,
        out_json=None,
    )
    defaults.update(overrides)
    return argparse.Namespace(**defaults)


def eligibility_item(name: Optional[str], *, role_id: str = "role-1", principal_id: str = "user-1", scope: Optional[str] = "/"):
    item = {
        "id": f"sched-{role_id}",
        "principalId": principal_id,
        "roleDefinitionId": role_id,
        "directoryScopeId": scope,
        "roleDefinition": {"id": role_id, "displayName": name},
    }
    return item


def scripted_input(answers: List[str]):
    """Return an input() replacement that replays answers and records prompts."""
    prompts: List[str] = []
    it = iter(answers)

    def _input(prompt: str = "") -> str:
        prompts.append(prompt)
        try:
            return next(it)
        except StopIteration:
            raise EOFError

    _input.prompts = prompts
    return _input
