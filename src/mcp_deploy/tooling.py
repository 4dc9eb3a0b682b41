"""
External CLI invocations: editor extension install and MCP server probes.

Nothing here touches settings files. Failures are reported through
``ToolRunResult`` rather than raised, since they never block a deployment.
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

MCP_EXTENSION_ID = "modelcontextprotocol.mcp"

DEFAULT_SERVER_PACKAGES: Dict[str, str] = {
    "GitHub": "@modelcontextprotocol/server-github",
    "Atlassian": "@modelcontextprotocol/server-atlassian",
}

MANUAL_EXTENSION_STEPS = (
    "Please manually install the MCP extension in VS Code:",
    "1. Open VS Code",
    "2. Go to Extensions (Ctrl+Shift+X)",
    "3. Search for 'Model Context Protocol'",
    "4. Install the official MCP extension",
)

_DEFAULT_TIMEOUT_SECONDS = 120


@dataclass
class ToolRunResult:
    ok: bool
    command: List[str]
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    error: Optional[str] = None
    timed_out: bool = False
    elapsed_seconds: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "command": self.command,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "error": self.error,
            "timed_out": self.timed_out,
            "elapsed_seconds": self.elapsed_seconds,
        }


Runner = Callable[[List[str], float], ToolRunResult]


def _cmd_to_str(cmd: Sequence[str]) -> str:
    if os.name == "nt":
        return subprocess.list2cmdline(list(cmd))
    return " ".join(shlex.quote(p) for p in cmd)


def default_timeout_seconds() -> int:
    # Can be overridden by env var; npx may need to download a package first.
    env = os.environ.get("MCP_DEPLOY_TIMEOUT_SECONDS", "").strip()
    if env:
        try:
            v = int(env)
            if v > 0:
                return v
        except ValueError:
            pass
    return _DEFAULT_TIMEOUT_SECONDS


def run_command(cmd: List[str], timeout_seconds: float) -> ToolRunResult:
    started = time.monotonic()
    try:
        completed = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired:
        return ToolRunResult(
            ok=False,
            command=cmd,
            error=f"Timed out after {timeout_seconds}s: {_cmd_to_str(cmd)}",
            timed_out=True,
            elapsed_seconds=time.monotonic() - started,
        )
    except OSError as exc:
        return ToolRunResult(
            ok=False,
            command=cmd,
            error=f"Failed to run {_cmd_to_str(cmd)}: {exc}",
            elapsed_seconds=time.monotonic() - started,
        )
    return ToolRunResult(
        ok=completed.returncode == 0,
        command=cmd,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        exit_code=completed.returncode,
        elapsed_seconds=time.monotonic() - started,
    )


@dataclass
class ExtensionInstall:
    attempted: bool
    result: Optional[ToolRunResult] = None
    manual_steps: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.attempted and self.result is not None and self.result.ok


def install_extension(
    extension_id: str = MCP_EXTENSION_ID,
    *,
    runner: Runner = run_command,
    which: Callable[[str], Optional[str]] = shutil.which,
    timeout_seconds: Optional[float] = None,
) -> ExtensionInstall:
    """Install the MCP extension through the `code` CLI, or return manual steps without it."""
    code = which("code")
    if code is None:
        return ExtensionInstall(attempted=False, manual_steps=MANUAL_EXTENSION_STEPS)
    timeout = timeout_seconds if timeout_seconds is not None else default_timeout_seconds()
    result = runner([code, "--install-extension", extension_id], timeout)
    return ExtensionInstall(attempted=True, result=result)


@dataclass
class ServerProbe:
    label: str
    package: str
    available: bool
    result: Optional[ToolRunResult] = None


def probe_servers(
    packages: Optional[Dict[str, str]] = None,
    *,
    runner: Runner = run_command,
    which: Callable[[str], Optional[str]] = shutil.which,
    timeout_seconds: Optional[float] = None,
) -> List[ServerProbe]:
    """Run ``npx -y <package>@latest --version`` for each server; empty when npx is missing."""
    npx = which("npx")
    if npx is None:
        return []
    packages = packages if packages is not None else DEFAULT_SERVER_PACKAGES
    timeout = timeout_seconds if timeout_seconds is not None else default_timeout_seconds()

    probes: List[ServerProbe] = []
    for label, package in packages.items():
        result = runner([npx, "-y", f"{package}@latest", "--version"], timeout)
        probes.append(ServerProbe(label=label, package=package, available=result.ok, result=result))
    return probes
