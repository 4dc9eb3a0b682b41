from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from typing import Callable, Optional

REQUIRED_TOOLS = ("node", "npx")
EDITOR_CLI = "code"


@dataclass
class PrerequisiteReport:
    ready: bool
    problems: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    editor_cli: Optional[str] = None


def check_prerequisites(which: Callable[[str], Optional[str]] = shutil.which) -> PrerequisiteReport:
    """`node` and `npx` are required to launch the servers; the editor CLI is optional."""
    problems: list[str] = []
    warnings: list[str] = []

    editor_cli = which(EDITOR_CLI)
    if editor_cli is None:
        warnings.append("VS Code CLI is not installed or not in PATH.")
        warnings.append("You can still manually copy the configuration files.")

    if which("node") is None:
        problems.append("Node.js is not installed or not in PATH. Node.js is required for MCP servers.")
    if which("npx") is None:
        problems.append("npx is not installed or not in PATH. npx is required for MCP servers.")

    return PrerequisiteReport(
        ready=len(problems) == 0,
        problems=problems,
        warnings=warnings,
        editor_cli=editor_cli,
    )
