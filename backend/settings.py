# backend/settings.py
"""
Runtime settings for the mealbot client and reference server.

Values come from the environment, after loading a .env file from the project
root when one exists:

- MEALBOT_BASE_URL: server the client syncs against
- MEALBOT_POLL_INTERVAL: seconds between refreshes (default 10)
- MEALBOT_TEMPLATE_TIMEOUT: seconds to wait for the row template (default 30)
- MEALBOT_REQUEST_TIMEOUT: per-request timeout in seconds (default 5)
- MEALBOT_IDENTITY_FILE: where the "uid" cookie is kept
- MEALBOT_USERS: comma separated names the server starts with
- MEALBOT_PORT: port for the reference server (default 5000)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

_ROOT = Path(__file__).resolve().parent.parent
_ENV_PATH = _ROOT / ".env"

DATA_PATH = "/api/get-data"
TEMPLATE_PATH = "/templates/debtrow.html"
EDIT_MEAL_PATH = "/api/edit_meal"


@dataclass(frozen=True)
class Settings:
    base_url: str = "http://127.0.0.1:5000"
    poll_interval: float = 10.0
    template_timeout: float | None = 30.0
    request_timeout: float = 5.0
    identity_file: Path = Path("~/.mealbot/identity")
    users: tuple[str, ...] = field(default_factory=tuple)
    port: int = 5000
    data_path: str = DATA_PATH
    template_path: str = TEMPLATE_PATH
    edit_meal_path: str = EDIT_MEAL_PATH


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _user_list(raw: str | None) -> tuple[str, ...]:
    return tuple(name.strip() for name in (raw or "").split(",") if name.strip())


def get_settings() -> Settings:
    """Build Settings from the environment. Call again to pick up changes."""
    load_dotenv(_ENV_PATH)
    return Settings(
        base_url=(os.getenv("MEALBOT_BASE_URL") or Settings.base_url).strip(),
        poll_interval=_float_env("MEALBOT_POLL_INTERVAL", Settings.poll_interval),
        template_timeout=_float_env("MEALBOT_TEMPLATE_TIMEOUT", 30.0),
        request_timeout=_float_env("MEALBOT_REQUEST_TIMEOUT", Settings.request_timeout),
        identity_file=Path(os.getenv("MEALBOT_IDENTITY_FILE") or Settings.identity_file).expanduser(),
        users=_user_list(os.getenv("MEALBOT_USERS")),
        port=int(_float_env("MEALBOT_PORT", Settings.port)),
    )
