"""
Settings Merger: apply an overlay document on top of a settings file.

Merges are shallow. Every top-level key of the overlay replaces the base value
for that key entirely; keys only present in the base are kept untouched.
An existing destination is always copied to ``<dest>.backup.<unix-seconds>``
before it is rewritten.
"""

from __future__ import annotations

import json
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from .documents import (
    detect_format,
    parse_document,
    read_text,
    render_document,
    write_text_atomic,
)
from .errors import MergeError, SettingsIOError, UnsupportedEnvironment

MERGER_CHOICES = ("builtin", "jq", "none")

# `+` on two objects is jq's shallow merge; `*` would recurse.
_JQ_SHALLOW_FILTER = ".[0] + .[1]"


class StructuredMerger(Protocol):
    name: str

    def merge_documents(self, base: dict, overlay: dict) -> dict:
        ...


class ShallowMerger:
    """Built-in top-level overwrite merge."""

    name = "builtin"

    def merge_documents(self, base: dict, overlay: dict) -> dict:
        merged = dict(base)
        merged.update(overlay)
        return merged


class JqMerger:
    """Shallow merge delegated to the `jq` executable."""

    name = "jq"

    def __init__(self, executable: str = "jq", *, timeout_seconds: float = 30.0) -> None:
        self.executable = executable
        self.timeout_seconds = timeout_seconds

    def merge_documents(self, base: dict, overlay: dict) -> dict:
        stdin = json.dumps(base) + "\n" + json.dumps(overlay) + "\n"
        try:
            completed = subprocess.run(
                [self.executable, "-s", _JQ_SHALLOW_FILTER],
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise MergeError(f"Failed to run {self.executable}: {exc}") from exc
        if completed.returncode != 0:
            detail = (completed.stderr or "").strip() or f"exit code {completed.returncode}"
            raise MergeError(f"{self.executable} merge failed: {detail}")
        try:
            merged = json.loads(completed.stdout)
        except ValueError as exc:
            raise MergeError(f"{self.executable} produced invalid JSON: {exc}") from exc
        if not isinstance(merged, dict):
            raise MergeError(f"{self.executable} produced a non-object result.")
        return merged


def resolve_merger(
    preference: str = "builtin",
    *,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> StructuredMerger | None:
    """
    Return the merger for ``preference``, or None when that capability is missing.

    None puts ``merge`` into degraded mode: existing destinations are left for
    manual reconciliation.
    """
    if preference == "builtin":
        return ShallowMerger()
    if preference == "jq":
        executable = which("jq")
        if executable is None:
            return None
        return JqMerger(executable)
    if preference == "none":
        return None
    raise ValueError(f"Unknown merger: {preference}")


@dataclass(frozen=True)
class MergeResult:
    dest_path: Path
    document: dict
    backup_path: Path | None
    action: str

    def as_dict(self) -> dict:
        return {
            "dest_path": str(self.dest_path),
            "backup_path": str(self.backup_path) if self.backup_path is not None else None,
            "action": self.action,
        }


def make_backup_path(dest_path: Path, *, timestamp: int) -> Path:
    base_name = f"{dest_path.name}.backup.{timestamp}"
    candidate = dest_path.with_name(base_name)
    suffix = 1
    while candidate.exists():
        candidate = dest_path.with_name(f"{base_name}.{suffix}")
        suffix += 1
    return candidate


def create_backup(dest_path: Path, *, clock: Callable[[], float] = time.time) -> Path:
    backup_path = make_backup_path(dest_path, timestamp=int(clock()))
    try:
        shutil.copy2(dest_path, backup_path)
    except OSError as exc:
        raise SettingsIOError(f"Cannot back up {dest_path} to {backup_path}: {exc}", path=dest_path) from exc
    return backup_path


def _backup_if_present(dest_path: Path, *, clock: Callable[[], float]) -> Path | None:
    if not dest_path.exists():
        return None
    return create_backup(dest_path, clock=clock)


def merge(
    base_path: Path | str,
    overlay_path: Path | str,
    dest_path: Path | str | None = None,
    *,
    merger: StructuredMerger | None = ShallowMerger(),
    clock: Callable[[], float] = time.time,
) -> MergeResult:
    """
    Merge ``overlay_path`` into ``base_path`` and persist the result at ``dest_path``.

    ``dest_path`` defaults to ``base_path``. Raises SettingsIOError, ParseError,
    RenderError, or UnsupportedEnvironment (``merger`` is None and a merge is
    required). The destination is never modified when an error is raised, and
    only a failed write can leave a backup behind.
    """
    base_path = Path(base_path)
    overlay_path = Path(overlay_path)
    dest_path = Path(dest_path) if dest_path is not None else base_path
    dest_format = detect_format(dest_path)
    overlay_format = detect_format(overlay_path)

    overlay_text = read_text(overlay_path)
    overlay = parse_document(overlay_text, source_label=str(overlay_path), fmt=overlay_format)

    if not base_path.exists():
        if overlay_format == dest_format:
            text = overlay_text
        else:
            text = render_document(overlay, dest_format)
        backup_path = _backup_if_present(dest_path, clock=clock)
        write_text_atomic(dest_path, text)
        return MergeResult(dest_path=dest_path, document=overlay, backup_path=backup_path, action="created")

    if merger is None:
        raise UnsupportedEnvironment(
            f"No structured merger available; {dest_path} was not modified. "
            f"Merge {overlay_path} into it manually.",
            overlay_path=overlay_path,
            dest_path=dest_path,
        )

    base = parse_document(read_text(base_path), source_label=str(base_path), fmt=detect_format(base_path))
    merged = merger.merge_documents(base, overlay)
    text = render_document(merged, dest_format)

    # Everything that can fail on content has run; only the backup and write remain.
    backup_path = _backup_if_present(dest_path, clock=clock)
    write_text_atomic(dest_path, text)
    return MergeResult(dest_path=dest_path, document=merged, backup_path=backup_path, action="merged")
