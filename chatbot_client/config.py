from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BACKEND_URL = "http://localhost:3000/api/chat"


@dataclass(frozen=True)
class Settings:
    """Configuration container for the chat endpoint, timers, and limits."""
    backend_url: str
    user_id: str
    request_timeout: float
    max_attempts: int
    debounce_seconds: float
    typing_delay: float
    reveal_grace_seconds: float
    history_capacity: int
    max_message_chars: int
    eager_session: bool
    log_level: str


def _env_flag(name: str, default: str) -> bool:
    # Accept the usual truthy spellings for boolean switches.
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """Purpose: Load client configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables.
    Dependencies: Uses os.getenv; app.py loads .env before calling this.
    Failure Modes: Invalid numeric env values raise ValueError.
    If Removed: Engine and transport cannot be configured and the bridge fails at startup.
    Testing Notes: Verify defaults and overrides via monkeypatched environment variables.
    """
    # Fall back to the local backend when no endpoint is configured.
    backend_url = os.getenv("CHAT_BACKEND_URL", "").strip() or DEFAULT_BACKEND_URL

    return Settings(
        backend_url=backend_url,
        user_id=os.getenv("CHAT_USER_ID", "user1"),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "10")),
        max_attempts=int(os.getenv("MAX_ATTEMPTS", "3")),
        debounce_seconds=float(os.getenv("DEBOUNCE_SECONDS", "1.0")),
        typing_delay=float(os.getenv("TYPING_DELAY", "0.02")),
        reveal_grace_seconds=float(os.getenv("REVEAL_GRACE_SECONDS", "0.5")),
        history_capacity=int(os.getenv("HISTORY_CAPACITY", "20")),
        max_message_chars=int(os.getenv("MAX_MESSAGE_CHARS", "500")),
        eager_session=_env_flag("EAGER_SESSION", "1"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
