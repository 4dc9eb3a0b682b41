from __future__ import annotations

import os
import sys
from typing import TextIO

_COLORS = {
    "INFO": "\033[0;32m",
    "WARN": "\033[1;33m",
    "ERROR": "\033[0;31m",
}
_RESET = "\033[0m"


def _use_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _emit(level: str, message: str, stream: TextIO) -> None:
    tag = f"[{level}]"
    if _use_color(stream):
        tag = f"{_COLORS[level]}{tag}{_RESET}"
    print(f"{tag} {message}", file=stream)


def info(message: str) -> None:
    _emit("INFO", message, sys.stdout)


def warn(message: str) -> None:
    _emit("WARN", message, sys.stderr)


def error(message: str) -> None:
    _emit("ERROR", message, sys.stderr)
