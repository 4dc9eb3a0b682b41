from __future__ import annotations

from pathlib import Path


class MergeError(Exception):
    """Base class for failures raised while deploying settings."""


class SettingsIOError(MergeError, OSError):
    """A settings, overlay, or backup file could not be read or written."""

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ParseError(MergeError, ValueError):
    """A document is not valid structured data (or its root is not an object)."""

    def __init__(self, message: str, *, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class UnsupportedEnvironment(MergeError, RuntimeError):
    """No structured-merge capability is available; the merge was refused."""

    def __init__(self, message: str, *, overlay_path: Path, dest_path: Path) -> None:
        super().__init__(message)
        self.overlay_path = Path(overlay_path)
        self.dest_path = Path(dest_path)


class UnsupportedPlatform(MergeError, RuntimeError):
    """The host OS has no known editor user-settings location."""


class MissingEnvFile(MergeError, FileNotFoundError):
    """The environment file does not exist."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Environment file not found: {path}")
        self.path = Path(path)

    def __str__(self) -> str:
        return str(self.args[0])


class RenderError(MergeError, ValueError):
    """A merged document cannot be represented in the destination format."""
