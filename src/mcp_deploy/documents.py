"""
Read, parse, render and atomically write settings documents.

JSON is the default format. Files with a ``.toml`` suffix are handled as TOML
(parsed with tomllib/tomli, rendered by ``_render_toml``).
"""

from __future__ import annotations

import datetime as _dt
import json
import os
import re
import shutil
import tempfile
from pathlib import Path

from .errors import ParseError, RenderError, SettingsIOError

try:
    import tomllib as _toml_parser  # Python 3.11+
except ModuleNotFoundError:
    try:
        import tomli as _toml_parser  # Python 3.10 fallback
    except ModuleNotFoundError:
        _toml_parser = None

DOCUMENT_FORMATS = ("json", "toml")

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def detect_format(path: Path) -> str:
    return "toml" if Path(path).suffix.lower() == ".toml" else "json"


def _parse_json_object_or_raise(*, text: str, source_label: str) -> dict:
    try:
        parsed = json.loads(text)
    except Exception as exc:
        raise ParseError(f"Malformed JSON in {source_label}: {exc}", path=source_label) from exc
    if not isinstance(parsed, dict):
        raise ParseError(f"Malformed JSON in {source_label}: root must be an object.", path=source_label)
    return parsed


def _parse_toml_or_raise(*, text: str, source_label: str) -> dict:
    """Parse TOML text and return a dictionary; raise a descriptive error on failure."""
    if _toml_parser is None:
        raise ParseError(
            f"Cannot read {source_label}: TOML parser unavailable. "
            "Install Python 3.11+ or add dependency 'tomli' for Python 3.10.",
            path=source_label,
        )
    try:
        parsed = _toml_parser.loads(text)
    except Exception as exc:
        raise ParseError(f"Malformed TOML in {source_label}: {exc}", path=source_label) from exc
    return parsed


def parse_document(text: str, *, source_label: str, fmt: str = "json") -> dict:
    if fmt == "toml":
        return _parse_toml_or_raise(text=text, source_label=source_label)
    if fmt == "json":
        return _parse_json_object_or_raise(text=text, source_label=source_label)
    raise ValueError(f"Unknown document format: {fmt}")


def read_text(path: Path) -> str:
    try:
        with open(path, encoding="utf-8", newline="") as handle:
            return handle.read()
    except FileNotFoundError as exc:
        raise SettingsIOError(f"File not found: {path}", path=path) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise SettingsIOError(f"Cannot read {path}: {exc}", path=path) from exc


def read_document(path: Path, fmt: str | None = None) -> dict:
    """Read and parse ``path``; the format defaults to the one implied by its suffix."""
    path = Path(path)
    return parse_document(read_text(path), source_label=str(path), fmt=fmt or detect_format(path))


def _toml_key(key: str) -> str:
    if _BARE_KEY.match(key):
        return key
    return json.dumps(key)


def _toml_value(value: object) -> str:
    """Serialize a Python value for inline use in TOML."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, (_dt.datetime, _dt.date, _dt.time)):
        # TOML date/time literals are RFC 3339, which isoformat() produces.
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    if isinstance(value, dict):
        items = ", ".join(f"{_toml_key(str(k))} = {_toml_value(v)}" for k, v in value.items())
        return "{ " + items + " }" if items else "{}"
    if value is None:
        raise ValueError("TOML has no null value.")
    raise ValueError(f"Cannot represent {type(value).__name__} in TOML.")


def _render_toml_table(table: dict, prefix: tuple[str, ...], lines: list[str]) -> None:
    nested: list[tuple[str, dict]] = []
    for key, value in table.items():
        if isinstance(value, dict):
            nested.append((str(key), value))
            continue
        lines.append(f"{_toml_key(str(key))} = {_toml_value(value)}")

    for key, value in nested:
        path = prefix + (key,)
        if lines:
            lines.append("")
        lines.append("[" + ".".join(_toml_key(part) for part in path) + "]")
        _render_toml_table(value, path, lines)


def _render_toml(document: dict) -> str:
    lines: list[str] = []
    _render_toml_table(document, (), lines)
    return "\n".join(lines) + "\n"


def render_document(document: dict, fmt: str = "json") -> str:
    if fmt == "toml":
        try:
            return _render_toml(document)
        except ValueError as exc:
            raise RenderError(f"Cannot render document as TOML: {exc}") from exc
    if fmt == "json":
        try:
            return json.dumps(document, indent=2) + "\n"
        except (TypeError, ValueError) as exc:
            raise RenderError(f"Cannot render document as JSON: {exc}") from exc
    raise ValueError(f"Unknown document format: {fmt}")


def write_text_atomic(path: Path, text: str) -> None:
    """
    Replace ``path`` with ``text`` via a temp file in the same directory.

    Symlinks are followed so the link itself survives, and an existing file
    keeps its permission bits.
    """
    path = Path(os.path.realpath(path))
    temp_path: Path | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            newline="",
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(text)
        if path.exists():
            shutil.copymode(path, temp_path)
        else:
            umask = os.umask(0)
            os.umask(umask)
            os.chmod(temp_path, 0o666 & ~umask)
        os.replace(temp_path, path)
    except OSError as exc:
        raise SettingsIOError(f"Cannot write {path}: {exc}", path=path) from exc
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink(missing_ok=True)
