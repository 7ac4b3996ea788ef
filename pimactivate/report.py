from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pimactivate.errors import ExitCode


SCHEMA_VERSION = 1
TOOL_NAME = "pim-activate"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _dt_iso(dt: Optional[datetime]) -> Optional[str]:
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def atomic_write_json(path: str, obj: Any) -> None:
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=False, default=str)
        f.write("\n")
    os.replace(tmp_path, path)


@dataclass
class Outcome:
    exit_code: ExitCode
    message: str
    principal: Optional[str] = None
    role: Optional[str] = None
    duration: Optional[str] = None
    justification: Optional[str] = None
    request_id: Optional[str] = None
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "outcome": self.exit_code.name.lower(),
            "exit_code": int(self.exit_code),
            "message": self.message,
        }
        for key in ("principal", "role", "duration", "justification", "request_id", "error"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        for key in ("started_at", "expires_at"):
            value = getattr(self, key)
            if value is not None:
                out[key] = _dt_iso(value)
        return out


def build_report(outcome: Outcome) -> dict:
    return {
        "tool": TOOL_NAME,
        "schema_version": SCHEMA_VERSION,
        "generated_at": utc_now_iso(),
        "result": outcome.to_dict(),
    }
