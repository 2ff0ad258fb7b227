"""Configuration management for the rehearsal planner service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from .database import resolve_database_path

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3001
DEFAULT_TOKEN_TTL_HOURS = 24.0


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP service and CLI."""

    database_path: Path
    secret_key: Optional[str] = None
    token_ttl: timedelta = timedelta(hours=DEFAULT_TOKEN_TTL_HOURS)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    trusted_proxies: List[str] | str = "*"

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data (YAML file contents)."""

        unknown = set(data.keys()) - {
            "database_path",
            "secret_key",
            "token_ttl_hours",
            "host",
            "port",
            "trusted_proxies",
        }
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_db_path = data.get("database_path")
        if raw_db_path:
            candidate = Path(str(raw_db_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        secret = data.get("secret_key")
        return Settings(
            database_path=database_path,
            secret_key=str(secret) if secret else None,
            token_ttl=_parse_ttl(data.get("token_ttl_hours", DEFAULT_TOKEN_TTL_HOURS)),
            host=str(data.get("host") or DEFAULT_HOST),
            port=_parse_port(data.get("port", DEFAULT_PORT)),
            trusted_proxies=_parse_proxies(data.get("trusted_proxies")),
        )


def _parse_ttl(value: object) -> timedelta:
    try:
        hours = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid token lifetime {value!r}") from exc
    if hours <= 0:
        raise ValueError("Token lifetime must be positive")
    return timedelta(hours=hours)


def _parse_port(value: object) -> int:
    try:
        port = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid port {value!r}") from exc
    if not 1 <= port <= 65535:
        raise ValueError(f"Port {port} is out of range")
    return port


def _parse_proxies(value: object) -> List[str] | str:
    if value is None:
        return "*"
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",") if item.strip()]
    elif isinstance(value, list):
        items = [str(item).strip() for item in value if str(item).strip()]
    else:
        raise ValueError("trusted_proxies must be a list or a comma separated string")
    if not items or items == ["*"]:
        return "*"
    return items


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "planner.yaml").resolve(strict=False)
    return candidate


def _read_config_file(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return raw


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build settings from the YAML file (if present) overlaid with environment variables."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("REHEARSAL_CONFIG"))

    raw: Dict[str, object] = {}
    if path.exists():
        raw = _read_config_file(path)
    elif config_path is not None or env.get("REHEARSAL_CONFIG"):
        raise ValueError(f"Configuration file {path} does not exist")

    overrides = {
        "REHEARSAL_DB_PATH": "database_path",
        "REHEARSAL_SECRET_KEY": "secret_key",
        "REHEARSAL_TOKEN_TTL_HOURS": "token_ttl_hours",
        "REHEARSAL_HOST": "host",
        "REHEARSAL_PORT": "port",
        "REHEARSAL_TRUSTED_PROXIES": "trusted_proxies",
    }
    for variable, key in overrides.items():
        value = env.get(variable)
        if value is not None and value.strip():
            raw[key] = value.strip()
    if env.get("REHEARSAL_DB_PATH", "").strip():
        # Relative paths from the environment are taken from the working directory.
        raw["database_path"] = str(resolve_database_path(env["REHEARSAL_DB_PATH"].strip()))

    return Settings.from_dict(raw, base_path=path.parent)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
