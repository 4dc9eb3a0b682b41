#!/usr/bin/env python3
"""
Deploy MCP server settings into VS Code.

    mcp-deploy workspace [path]   merge into <path>/.vscode/settings.json (default: .)
    mcp-deploy global             merge into the VS Code user settings.json
    mcp-deploy help
"""

from __future__ import annotations

import argparse
import shutil
from pathlib import Path

from . import console
from .config import DEFAULT_ENV_FILE, bootstrap_env_file, default_settings_path, load_config
from .deploy import DeploymentOutcome, deploy_global, deploy_workspace
from .errors import MergeError, MissingEnvFile
from .merger import MERGER_CHOICES, resolve_merger
from .platforms import resolve_platform
from .prerequisites import check_prerequisites
from .tooling import MCP_EXTENSION_ID, install_extension, probe_servers, run_command

NEXT_STEPS = (
    "1. Restart VS Code to load the new MCP configuration",
    "2. Verify your environment variables are set correctly",
    "3. Test MCP functionality in VS Code",
)


def _add_deploy_options(parser: argparse.ArgumentParser, *, suppress_defaults: bool) -> None:
    # Subcommands repeat the options with suppressed defaults so they do not
    # reset values already given before the subcommand.
    def default(value):
        return argparse.SUPPRESS if suppress_defaults else value

    parser.add_argument(
        "--env-file",
        default=default(DEFAULT_ENV_FILE),
        help="Environment file with server credentials (default: ./.env). Created from a template if missing.",
    )
    parser.add_argument(
        "--settings",
        default=default(None),
        help="Overlay settings document to deploy (default: bundled vscode-mcp-settings.json).",
    )
    parser.add_argument(
        "--merger",
        choices=MERGER_CHOICES,
        default=default("builtin"),
        help="Merge implementation for existing settings: builtin, jq, or none (manual merge).",
    )
    parser.add_argument(
        "--skip-extension",
        action="store_true",
        default=default(False),
        help="Do not install the VS Code MCP extension.",
    )
    parser.add_argument(
        "--skip-server-checks",
        action="store_true",
        default=default(False),
        help="Do not probe MCP server packages through npx after deploying.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-deploy",
        description="Deploy MCP server configuration to VS Code workspace or global settings.",
        epilog=(
            "Examples:\n"
            "  mcp-deploy workspace                    # Deploy to current workspace\n"
            "  mcp-deploy workspace /path/to/project   # Deploy to specific workspace\n"
            "  mcp-deploy global --merger jq           # Deploy globally, merging with jq"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_deploy_options(parser, suppress_defaults=False)

    sub = parser.add_subparsers(dest="command", metavar="{workspace,global,help}")
    workspace = sub.add_parser("workspace", help="Deploy MCP config to workspace (default: current directory).")
    workspace.add_argument("path", nargs="?", default=".", help="Workspace directory.")
    _add_deploy_options(workspace, suppress_defaults=True)
    global_ = sub.add_parser("global", help="Deploy MCP config globally to VS Code user settings.")
    _add_deploy_options(global_, suppress_defaults=True)
    sub.add_parser("help", help="Show this message.")
    return parser


def _setup_environment(env_file: str) -> bool:
    console.info("Setting up environment...")
    try:
        config = load_config(env_file)
    except MissingEnvFile as exc:
        console.warn("Environment file not found. Creating from template...")
        created = bootstrap_env_file(exc.path)
        console.warn(f"Please edit {created} with your configuration before running again.")
        return False

    for warning in config.credential_warnings():
        console.warn(warning)
    return True


def _install_extension() -> None:
    console.info("Installing VS Code MCP extension...")
    outcome = install_extension(MCP_EXTENSION_ID, runner=run_command, which=shutil.which)
    if not outcome.attempted:
        for step in outcome.manual_steps:
            console.warn(step)
        return
    if outcome.ok:
        console.info("MCP extension installed successfully")
        return
    result = outcome.result
    detail = (result.error or result.stderr.strip()) if result is not None else ""
    console.warn(f"MCP extension install failed: {detail or 'unknown error'}")


def _report_outcome(outcome: DeploymentOutcome) -> None:
    if outcome.backup_path is not None:
        console.warn(f"Existing settings backed up to: {outcome.backup_path}")
    if not outcome.applied:
        for step in outcome.manual_steps:
            console.warn(step)
        console.warn(f"MCP configuration NOT applied to: {outcome.settings_path}")
        return
    result = outcome.result
    if result is not None and result.action == "merged":
        console.info(f"MCP configuration merged with existing {outcome.scope} settings")
    else:
        console.info(f"MCP configuration deployed as new {outcome.scope} settings")
    console.info(f"MCP configuration deployed to: {outcome.settings_path}")


def _probe_servers() -> None:
    console.info("Testing MCP server installations...")
    for probe in probe_servers(runner=run_command, which=shutil.which):
        console.info(f"Testing {probe.label} MCP server...")
        if probe.available:
            console.info(f"✓ {probe.label} MCP server is available")
        else:
            console.warn(f"✗ {probe.label} MCP server test failed")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    command = args.command or "workspace"

    if command == "help":
        parser.print_help()
        return 0

    console.info("Starting VS Code MCP configuration deployment...")

    console.info("Checking prerequisites...")
    report = check_prerequisites(which=shutil.which)
    for warning in report.warnings:
        console.warn(warning)
    if not report.ready:
        for problem in report.problems:
            console.error(problem)
        return 1

    try:
        if not _setup_environment(args.env_file):
            return 1

        overlay_path = Path(args.settings).expanduser() if args.settings else default_settings_path()
        merger = resolve_merger(args.merger, which=shutil.which)
        if merger is None:
            console.warn(f"Merger '{args.merger}' unavailable; existing settings will need a manual merge.")

        if not args.skip_extension:
            _install_extension()

        if command == "workspace":
            workspace_path = getattr(args, "path", ".")
            console.info(f"Deploying MCP configuration to workspace: {workspace_path}")
            outcome = deploy_workspace(workspace_path, overlay_path, merger=merger)
        else:
            console.info("Deploying MCP configuration globally...")
            outcome = deploy_global(resolve_platform(), overlay_path, merger=merger)
    except (MergeError, OSError) as exc:
        console.error(str(exc))
        return 1

    _report_outcome(outcome)

    if not args.skip_server_checks:
        _probe_servers()

    console.info("Deployment completed successfully!")
    console.info("")
    console.info("Next steps:")
    for step in NEXT_STEPS:
        console.info(step)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
