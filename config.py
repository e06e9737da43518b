from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from infrastructure.notifications.discord_webhook import DEFAULT_WEBHOOK_USERNAME

DB_BACKENDS = ("postgres", "sqlite")


@dataclass
class Settings:
    """Process configuration, loaded once at startup."""

    discord_token: str
    webhook_url: str
    webhook_username: str = DEFAULT_WEBHOOK_USERNAME
    db_backend: str = "postgres"
    db_params: Optional[dict] = None
    db_path: str = "civ_relay.db"
    server_host: str = "0.0.0.0"
    server_port: int = 3000
    log_level: str = "INFO"


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise RuntimeError(f"{name} environment variable is not set.")
    return value


def _parse_port(env: Mapping[str, str], name: str, default: Optional[int] = None) -> int:
    raw = env.get(name)
    if raw is None and default is not None:
        return default
    if raw is None:
        raise RuntimeError(f"{name} environment variable is not set.")
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}.") from None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read settings from `env` (the process environment by default, after
    loading any `.env` file).
    """

    if env is None:
        load_dotenv()
        env = os.environ

    db_backend = env.get("DB_BACKEND", "postgres").lower()
    if db_backend not in DB_BACKENDS:
        raise RuntimeError(f"DB_BACKEND must be one of {', '.join(DB_BACKENDS)}.")

    db_params = None
    if db_backend == "postgres":
        db_params = {
            "host": _require(env, "DATABASE_HOST"),
            "port": _parse_port(env, "DATABASE_PORT"),
            "dbname": _require(env, "DATABASE_NAME"),
            "user": _require(env, "DATABASE_USERNAME"),
            "password": _require(env, "DATABASE_PASSWORD"),
        }

    return Settings(
        discord_token=_require(env, "DISCORD_TOKEN"),
        webhook_url=_require(env, "WEBHOOK_URL"),
        webhook_username=env.get("WEBHOOK_USERNAME", DEFAULT_WEBHOOK_USERNAME),
        db_backend=db_backend,
        db_params=db_params,
        db_path=env.get("DB_PATH", "civ_relay.db"),
        server_host=env.get("SERVER_HOST", "0.0.0.0"),
        server_port=_parse_port(env, "SERVER_PORT", default=3000),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
