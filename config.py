"""Runtime settings resolved once from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _log_level() -> str:
    level = (_env("LOG_LEVEL") or "WARNING").upper()
    return level if level in LOG_LEVELS else "WARNING"


@dataclass(frozen=True)
class Settings:
    """Credentials and knobs that decide which tools the server advertises."""

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    reddit_client_id: str | None = None
    reddit_client_secret: str | None = None
    reddit_username: str | None = None
    reddit_password: str | None = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            openai_api_key=_env("OPENAI_API_KEY"),
            openai_model=_env("OPENAI_MODEL") or "gpt-4o-mini",
            reddit_client_id=_env("REDDIT_CLIENT_ID"),
            reddit_client_secret=_env("REDDIT_CLIENT_SECRET"),
            reddit_username=_env("REDDIT_USERNAME"),
            reddit_password=_env("REDDIT_PASSWORD"),
            log_level=_log_level(),
        )

    @property
    def reddit_configured(self) -> bool:
        return all((
            self.reddit_client_id,
            self.reddit_client_secret,
            self.reddit_username,
            self.reddit_password,
        ))

    @property
    def openai_configured(self) -> bool:
        return bool(self.openai_api_key)
