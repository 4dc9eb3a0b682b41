"""
Deployment configuration, read once from the environment file at startup.

The environment file holds ``NAME=value`` lines (the same format the servers
read at runtime). Values are never exported into ``os.environ``; the resulting
``DeployConfig`` is passed explicitly to whatever needs it.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values

from .errors import MissingEnvFile, SettingsIOError

DEFAULT_ENV_FILE = ".env"

ATLASSIAN_ENV_VARS = ("ATLASSIAN_CLOUD_ID", "ATLASSIAN_API_TOKEN", "ATLASSIAN_EMAIL")
GITHUB_ENV_VARS = ("GITHUB_TOKEN",)


def data_dir() -> Path:
    return Path(__file__).resolve().parent / "data"


def default_settings_path() -> Path:
    return data_dir() / "vscode-mcp-settings.json"


def env_template_path() -> Path:
    return data_dir() / "env.template"


@dataclass(frozen=True)
class DeployConfig:
    env_file: Path
    values: Mapping[str, str] = field(default_factory=dict)

    def get(self, name: str) -> str:
        return (self.values.get(name) or "").strip()

    @property
    def github_token(self) -> str:
        return self.get("GITHUB_TOKEN")

    @property
    def atlassian_cloud_id(self) -> str:
        return self.get("ATLASSIAN_CLOUD_ID")

    @property
    def atlassian_api_token(self) -> str:
        return self.get("ATLASSIAN_API_TOKEN")

    @property
    def atlassian_email(self) -> str:
        return self.get("ATLASSIAN_EMAIL")

    def missing(self, names: tuple[str, ...]) -> list[str]:
        return [name for name in names if not self.get(name)]

    def credential_warnings(self) -> list[str]:
        """Warnings for servers whose credentials are incomplete. Never fatal."""
        warnings: list[str] = []
        if self.missing(ATLASSIAN_ENV_VARS):
            warnings.append("Atlassian environment variables not set. Atlassian MCP server will not work.")
        if self.missing(GITHUB_ENV_VARS):
            warnings.append("GitHub token not set. GitHub MCP server will not work.")
        return warnings


def load_config(env_file: Path | str = DEFAULT_ENV_FILE) -> DeployConfig:
    env_file = Path(env_file).expanduser()
    if not env_file.is_file():
        raise MissingEnvFile(env_file)
    raw = dotenv_values(env_file, interpolate=True)
    values = {key: value for key, value in raw.items() if value is not None}
    return DeployConfig(env_file=env_file, values=values)


def bootstrap_env_file(env_file: Path | str, template: Path | None = None) -> Path:
    """Create ``env_file`` from the bundled template so the operator can fill it in."""
    env_file = Path(env_file).expanduser()
    template = template if template is not None else env_template_path()
    try:
        env_file.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(template, env_file)
    except OSError as exc:
        raise SettingsIOError(f"Cannot create {env_file} from {template}: {exc}", path=env_file) from exc
    return env_file
