from __future__ import annotations

import re
import sys
from datetime import timedelta
from typing import Callable, TypeVar

from pimactivate import console
from pimactivate.catalog import EligibleRole, is_index
from pimactivate.errors import InvalidInput


T = TypeVar("T")

# "1H", "30M", "2H30M", or a bare number of hours.
_DURATION_RE = re.compile(r"^(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?$|^(?P<bare>\d+)$", re.ASCII)
_ISO_DURATION_RE = re.compile(r"^PT(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?$", re.ASCII)


def flush_stdin() -> None:
    """Drop keystrokes typed ahead so they cannot pre-fill the next prompt."""
    try:
        if not sys.stdin.isatty():
            return
    except (AttributeError, ValueError):
        return
    if sys.platform == "win32":
        import msvcrt

        while msvcrt.kbhit():
            msvcrt.getwch()
    else:
        import termios

        termios.tcflush(sys.stdin, termios.TCIFLUSH)


def _duration_parts(text: str) -> tuple[int, int]:
    value = (text or "").strip().upper()
    if not value:
        raise InvalidInput("Duration cannot be empty.")
    m = _DURATION_RE.match(value)
    if not m:
        raise InvalidInput(f"Invalid duration '{text.strip()}'. Use hours and/or minutes, e.g. 1H, 30M or 2H30M.")
    if m.group("bare") is not None:
        hours, minutes = int(m.group("bare")), 0
    else:
        hours, minutes = int(m.group("hours") or 0), int(m.group("minutes") or 0)
    if hours == 0 and minutes == 0:
        raise InvalidInput("Duration must be greater than zero.")
    return hours, minutes


def duration_to_iso(text: str) -> str:
    """
    Convert operator input to an ISO-8601 duration:
    1H -> PT1H, 30M -> PT30M, 2H30M -> PT2H30M, 2 -> PT2H.
    """
    value = (text or "").strip().upper()
    hours, _ = _duration_parts(value)
    if is_index(value):
        return f"PT{hours}H"
    return f"PT{value}"


def parse_iso_duration(iso: str) -> timedelta:
    m = _ISO_DURATION_RE.match((iso or "").strip().upper())
    if not m or not (m.group("hours") or m.group("minutes")):
        raise InvalidInput(f"Unsupported ISO-8601 duration '{iso}'")
    return timedelta(hours=int(m.group("hours") or 0), minutes=int(m.group("minutes") or 0))


def validate_selection(text: str, count: int) -> int:
    value = (text or "").strip()
    if not value:
        raise InvalidInput("Selection cannot be empty.")
    if not is_index(value):
        raise InvalidInput(f"Invalid selection '{value}'. Enter a number between 1 and {count}.")
    idx = int(value)
    if idx < 1 or idx > count:
        raise InvalidInput(f"Selection {idx} is out of range. Enter a number between 1 and {count}.")
    return idx


def validate_justification(text: str) -> str:
    value = (text or "").strip()
    if not value:
        raise InvalidInput("Justification cannot be empty.")
    return value


def ask(
    prompt: str,
    validate: Callable[[str], T],
    *,
    input_fn: Callable[[str], str] = input,
    flush: Callable[[], None] = flush_stdin,
) -> T:
    while True:
        flush()
        raw = input_fn(prompt)
        try:
            return validate(raw)
        except InvalidInput as e:
            console.error(str(e))


def prompt_selection(selection: dict[int, EligibleRole], **kwargs) -> EligibleRole:
    count = len(selection)
    idx = ask(f"Select a role to activate (1-{count}): ", lambda s: validate_selection(s, count), **kwargs)
    return selection[idx]


def prompt_duration(**kwargs) -> str:
    return ask("Activation duration (e.g. 1H, 30M, 2H30M): ", duration_to_iso, **kwargs)


def prompt_justification(**kwargs) -> str:
    return ask("Justification: ", validate_justification, **kwargs)
