"""Configuration management for ghkit."""

from __future__ import annotations

import os
import sys
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


_CONFIG_FILENAME = ".ghkit.toml"
_GLOBAL_CONFIG_FILENAME = "config.toml"

# Keys that ``write_config`` persists. Secrets stay in the environment.
_PERSISTED_KEYS = (
    "api_url",
    "oauth_url",
    "timeout",
    "default_branch",
    "log_level",
    "oauth_client_id",
)

ENV_MAP: dict[str, str] = {
    "GITHUB_TOKEN": "github_token",
    "GHKIT_API_URL": "api_url",
    "GHKIT_OAUTH_URL": "oauth_url",
    "GHKIT_TIMEOUT": "timeout",
    "GHKIT_DEFAULT_BRANCH": "default_branch",
    "GHKIT_LOG_LEVEL": "log_level",
    "GHKIT_OAUTH_CLIENT_ID": "oauth_client_id",
    "GHKIT_OAUTH_CLIENT_SECRET": "oauth_client_secret",
}


class Settings(BaseModel):
    """Application-wide settings loaded from environment and/or config file.

    Resolution order (highest priority first):
    1. Explicit constructor kwargs
    2. Environment variables
    3. ``.ghkit.toml`` in the base path (or working directory)
    4. The global ``config.toml``
    5. Defaults defined here
    """

    github_token: str = Field(default="", description="GitHub token for authenticated calls")
    api_url: str = Field(default="https://api.github.com", description="REST API root")
    oauth_url: str = Field(default="https://github.com", description="Host serving /login/oauth")
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")
    default_branch: str = Field(default="main", description="Branch used when none is given")
    log_level: str = Field(default="WARNING", description="Logging level")
    oauth_client_id: str = Field(default="", description="OAuth app client id")
    oauth_client_secret: str = Field(default="", description="OAuth app client secret")

    # ----- class methods ----

    @classmethod
    def load(
        cls,
        overrides: dict[str, Any] | None = None,
        *,
        base_path: str | Path | None = None,
        global_path: str | Path | None = None,
    ) -> "Settings":
        """Build a ``Settings`` instance honouring env vars and config files.

        Args:
            overrides: Explicit key-value overrides (e.g. from CLI flags).
            base_path: Directory to use when resolving ``.ghkit.toml``.
            global_path: Explicit global config file path (for tests/overrides).

        Returns:
            A fully resolved ``Settings`` object.
        """
        values: dict[str, Any] = {}

        # 1. Global config (lowest precedence among config files)
        global_cfg = Path(global_path).resolve() if global_path else global_config_path()
        if global_cfg.is_file():
            values.update(_parse_toml(global_cfg))

        # 2. Local config overrides global
        cfg_path = config_path(base_path)
        if cfg_path.is_file():
            values.update(_parse_toml(cfg_path))

        # 3. Environment variables
        for env_key, field_name in ENV_MAP.items():
            env_val = os.environ.get(env_key)
            if env_val is not None:
                values[field_name] = env_val

        # 4. Explicit overrides win
        if overrides:
            values.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**values)


def config_path(base_path: str | Path | None = None) -> Path:
    """Return the path to the local config file for ``base_path`` (or cwd)."""
    base = Path(base_path).resolve() if base_path else Path.cwd()
    return base / _CONFIG_FILENAME


def global_config_path() -> Path:
    """Return the OS-appropriate global config path for ghkit.

    Linux: ``$XDG_CONFIG_HOME/ghkit/config.toml`` or ``~/.config/...``
    macOS: ``~/Library/Application Support/ghkit/config.toml``
    Windows: ``%APPDATA%\\ghkit\\config.toml``
    """
    if os.name == "nt":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata).resolve() if appdata else (Path.home() / "AppData" / "Roaming")
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        xdg = os.environ.get("XDG_CONFIG_HOME")
        base = Path(xdg).resolve() if xdg else (Path.home() / ".config")

    return base / "ghkit" / _GLOBAL_CONFIG_FILENAME


def write_config(settings: Settings, path: str | Path | None = None) -> Path:
    """Write the non-secret settings to a ``.ghkit.toml`` file.

    Args:
        settings: The Settings object to save.
        path: Target file path. Defaults to ``.ghkit.toml`` in cwd.

    Returns:
        The path that was written.
    """
    target = Path(path) if path else config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    values = {k: getattr(settings, k) for k in _PERSISTED_KEYS}
    target.write_text(_render_toml(values), encoding="utf-8")
    return target


def update_config_key(key: str, value: str, path: str | Path | None = None) -> Path:
    """Set a single key in the config file, preserving other values.

    If the file doesn't exist it's created. If the key already exists
    it's updated in-place.

    Args:
        key: Setting name (e.g. ``default_branch``, ``log_level``).
        value: New value as a string.
        path: Config file path. Defaults to ``.ghkit.toml`` in cwd.

    Returns:
        The path that was written.

    Raises:
        KeyError: If ``key`` is not a known setting.
    """
    if key not in Settings.model_fields:
        raise KeyError(key)

    target = Path(path) if path else config_path()
    target.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, Any] = {}
    if target.is_file():
        existing = _parse_toml(target)

    if key == "timeout":
        try:
            existing[key] = float(value)
        except ValueError:
            existing[key] = value
    else:
        existing[key] = value

    target.write_text(_render_toml(existing), encoding="utf-8")
    return target


def _render_toml(values: dict[str, Any]) -> str:
    # Flat string/number/bool values only, so no TOML writer is needed.
    lines = ["[ghkit]"]
    for k, v in sorted(values.items()):
        if isinstance(v, bool):
            lines.append(f"{k} = {'true' if v else 'false'}")
        elif isinstance(v, (int, float)):
            lines.append(f"{k} = {v}")
        else:
            escaped = str(v).replace("\\", "\\\\").replace('"', '\\"')
            lines.append(f'{k} = "{escaped}"')
    lines.append("")
    return "\n".join(lines)


def _parse_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file and return a flat dict of settings."""
    with open(path, "rb") as fh:
        data = tomllib.load(fh)

    # Support a top-level [ghkit] table or flat keys
    return dict(data.get("ghkit", data))
