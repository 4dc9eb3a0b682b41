from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .errors import SettingsIOError, UnsupportedEnvironment
from .merger import MergeResult, ShallowMerger, StructuredMerger, merge
from .platforms import PlatformPathResolver

SETTINGS_FILENAME = "settings.json"
WORKSPACE_SETTINGS_DIR = ".vscode"


@dataclass
class DeploymentOutcome:
    scope: str
    settings_path: Path
    applied: bool
    result: Optional[MergeResult] = None
    manual_steps: list[str] = field(default_factory=list)

    @property
    def backup_path(self) -> Optional[Path]:
        return self.result.backup_path if self.result is not None else None


def _manual_merge_steps(exc: UnsupportedEnvironment) -> list[str]:
    return [
        "No JSON merge tool available. Please manually merge the MCP settings:",
        f"1. Copy contents of {exc.overlay_path}",
        f"2. Add to your existing {exc.dest_path}",
    ]


def _apply(
    *,
    scope: str,
    settings_path: Path,
    overlay_path: Path,
    merger: StructuredMerger | None,
    clock: Optional[Callable[[], float]],
) -> DeploymentOutcome:
    kwargs = {"clock": clock} if clock is not None else {}
    try:
        result = merge(settings_path, overlay_path, settings_path, merger=merger, **kwargs)
    except UnsupportedEnvironment as exc:
        return DeploymentOutcome(
            scope=scope,
            settings_path=settings_path,
            applied=False,
            manual_steps=_manual_merge_steps(exc),
        )
    return DeploymentOutcome(scope=scope, settings_path=settings_path, applied=True, result=result)


def deploy_workspace(
    workspace_dir: Path | str,
    overlay_path: Path | str,
    *,
    merger: StructuredMerger | None = ShallowMerger(),
    clock: Optional[Callable[[], float]] = None,
) -> DeploymentOutcome:
    """Merge the overlay into ``<workspace_dir>/.vscode/settings.json``, creating it if needed."""
    settings_dir = Path(workspace_dir).expanduser() / WORKSPACE_SETTINGS_DIR
    try:
        settings_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SettingsIOError(f"Cannot create {settings_dir}: {exc}", path=settings_dir) from exc
    return _apply(
        scope="workspace",
        settings_path=settings_dir / SETTINGS_FILENAME,
        overlay_path=Path(overlay_path),
        merger=merger,
        clock=clock,
    )


def deploy_global(
    resolver: PlatformPathResolver,
    overlay_path: Path | str,
    *,
    merger: StructuredMerger | None = ShallowMerger(),
    clock: Optional[Callable[[], float]] = None,
) -> DeploymentOutcome:
    """Merge the overlay into the editor's user settings; the settings directory must already exist."""
    settings_dir = resolver.user_settings_dir()
    if not settings_dir.is_dir():
        raise SettingsIOError(
            f"VS Code user configuration directory not found: {settings_dir}",
            path=settings_dir,
        )
    return _apply(
        scope="global",
        settings_path=settings_dir / SETTINGS_FILENAME,
        overlay_path=Path(overlay_path),
        merger=merger,
        clock=clock,
    )
