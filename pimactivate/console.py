from __future__ import annotations

import sys
import time
from typing import Callable

from termcolor import colored
from tqdm import tqdm


def success(msg: str) -> None:
    print(f"{colored('[+] ', 'green')}{msg}")


def error(msg: str) -> None:
    print(f"{colored('[-] ', 'red')}{msg}")


def warn(msg: str) -> None:
    print(f"{colored('[!] ', 'yellow')}{msg}")


def info(msg: str) -> None:
    print(f"{colored('[*] ', 'cyan')}{msg}")


def section(title: str) -> None:
    print(colored(title, "yellow", attrs=["bold"]) + ":")


def kv(key: str, value: str) -> None:
    print(f"{colored(key + ':', 'white')} {value}")


def countdown(seconds: int, *, desc: str = "Disconnecting", sleep: Callable[[float], None] = time.sleep) -> None:
    if seconds <= 0:
        return
    with tqdm(total=seconds, desc=desc, unit="s", leave=False, bar_format="{desc}: {bar} {n_fmt}/{total_fmt}s") as bar:
        for _ in range(seconds):
            sleep(1)
            bar.update(1)


def wait_for_ack(prompt: str = "Press Enter to exit...", *, input_fn: Callable[[str], str] = input) -> None:
    # Nothing to acknowledge when stdin is piped.
    if input_fn is input and not sys.stdin.isatty():
        return
    try:
        input_fn(prompt)
    except (EOFError, KeyboardInterrupt):
        print()
