"""Configuration management for the messaging service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

DEFAULT_WORK_FACTOR = 12
MIN_WORK_FACTOR = 4
MAX_WORK_FACTOR = 31

_ENV_OVERRIDES = {
    "MESSAGELY_SECRET_KEY": "secret_key",
    "MESSAGELY_BCRYPT_WORK_FACTOR": "bcrypt_work_factor",
    "MESSAGELY_TOKEN_TTL": "token_ttl",
}


@dataclass(frozen=True)
class Settings:
    """Immutable process-wide settings, built once at startup."""

    secret_key: str
    database_path: Path
    bcrypt_work_factor: int = DEFAULT_WORK_FACTOR
    token_ttl: Optional[int] = None

    @staticmethod
    def from_dict(
        data: Mapping[str, object],
        base_path: Path | None = None,
        *,
        require_secret: bool = True,
    ) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        secret_key = str(data.get("secret_key") or "").strip()
        if require_secret and not secret_key:
            raise ValueError("Missing required configuration field: secret_key")

        try:
            work_factor = int(data.get("bcrypt_work_factor", DEFAULT_WORK_FACTOR))  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValueError("bcrypt_work_factor must be an integer") from exc
        if not MIN_WORK_FACTOR <= work_factor <= MAX_WORK_FACTOR:
            raise ValueError(
                f"bcrypt_work_factor must be between {MIN_WORK_FACTOR} and {MAX_WORK_FACTOR}"
            )

        raw_ttl = data.get("token_ttl")
        token_ttl: Optional[int] = None
        if raw_ttl not in (None, ""):
            try:
                token_ttl = int(raw_ttl)  # type: ignore[arg-type]
            except (TypeError, ValueError) as exc:
                raise ValueError("token_ttl must be an integer number of seconds") from exc
            if token_ttl <= 0:
                raise ValueError("token_ttl must be positive")

        raw_path = data.get("database_path")
        if raw_path:
            candidate = Path(str(raw_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        return Settings(
            secret_key=secret_key,
            database_path=database_path,
            bcrypt_work_factor=work_factor,
            token_ttl=token_ttl,
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "messagely.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    require_secret: bool = True,
) -> Settings:
    """Load settings from an optional YAML file overlaid with environment variables.

    An explicitly requested configuration file must exist. The default location
    is optional so that a deployment may be configured from the environment only.
    """
    env = os.environ if environ is None else environ
    explicit = config_path or env.get("MESSAGELY_CONFIG")
    path = resolve_config_path(str(explicit) if explicit else None)

    raw: Dict[str, object] = {}
    if explicit or path.exists():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        raw.update(loaded)

    for variable, key in _ENV_OVERRIDES.items():
        value = env.get(variable)
        if value:
            raw[key] = value

    db_env = env.get("MESSAGELY_DB_PATH")
    if db_env:
        raw["database_path"] = str(resolve_database_path(db_env))

    return Settings.from_dict(raw, base_path=path.parent, require_secret=require_secret)


__all__ = [
    "DEFAULT_WORK_FACTOR",
    "Settings",
    "load_settings",
    "resolve_config_path",
]
