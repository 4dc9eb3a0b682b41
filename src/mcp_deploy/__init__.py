"""Deploy MCP server settings into VS Code workspace or user settings."""

from .errors import (
    MergeError,
    MissingEnvFile,
    ParseError,
    RenderError,
    SettingsIOError,
    UnsupportedEnvironment,
    UnsupportedPlatform,
)
from .merger import MergeResult, ShallowMerger, JqMerger, merge, resolve_merger

__all__ = [
    "JqMerger",
    "MergeError",
    "MergeResult",
    "MissingEnvFile",
    "ParseError",
    "RenderError",
    "SettingsIOError",
    "ShallowMerger",
    "UnsupportedEnvironment",
    "UnsupportedPlatform",
    "merge",
    "resolve_merger",
]
