from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Mapping, Optional, Protocol

from .errors import UnsupportedPlatform


class PlatformPathResolver(Protocol):
    name: str

    def user_settings_dir(self) -> Path:
        ...


class _HomeResolver:
    name = ""
    relpath: tuple[str, ...] = ()

    def __init__(self, home: Optional[Path] = None) -> None:
        self._home = Path(home) if home is not None else None

    def user_settings_dir(self) -> Path:
        home = self._home if self._home is not None else Path.home()
        return home.joinpath(*self.relpath)


class MacOSPathResolver(_HomeResolver):
    name = "macOS"
    relpath = ("Library", "Application Support", "Code", "User")


class LinuxPathResolver(_HomeResolver):
    name = "Linux"
    relpath = (".config", "Code", "User")


class WindowsPathResolver:
    name = "Windows"

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def user_settings_dir(self) -> Path:
        appdata = (self._environ.get("APPDATA") or "").strip()
        if not appdata:
            raise UnsupportedPlatform("APPDATA is not set; cannot locate VS Code user settings.")
        return Path(appdata) / "Code" / "User"


def resolve_platform(
    system: Optional[str] = None,
    *,
    home: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PlatformPathResolver:
    """Pick the settings-directory resolver for ``system`` (defaults to the host OS)."""
    system = system if system is not None else platform.system()
    if system == "Darwin":
        return MacOSPathResolver(home)
    if system == "Linux":
        return LinuxPathResolver(home)
    if system == "Windows" or system.startswith(("CYGWIN", "MSYS", "MINGW")):
        return WindowsPathResolver(environ)
    raise UnsupportedPlatform(f"Unsupported operating system: {system or 'unknown'}")
