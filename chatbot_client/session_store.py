from __future__ import annotations

import logging
from typing import Callable, Optional

from .utils import generate_session_id

logger = logging.getLogger("chatbot.session")


class SessionStore:
    """Owner of the single conversation session id for one client instance."""

    def __init__(self, id_factory: Callable[[], str] = generate_session_id) -> None:
        """Purpose: Initialize an empty store; no id exists until create() is called.
        Inputs/Outputs: Input is an optional id factory; no return value.
        Side Effects / State: Holds the current session id in memory only.
        Dependencies: Uses generate_session_id by default.
        Failure Modes: None.
        If Removed: Requests cannot carry a sessionId and the backend loses context.
        Testing Notes: Inject a deterministic factory to assert ids.
        """
        self._id_factory = id_factory
        self._session_id: Optional[str] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def has_session(self) -> bool:
        return bool(self._session_id)

    def create(self) -> str:
        """Purpose: Return the current session id, generating one when absent.
        Inputs/Outputs: No inputs; returns the session id string.
        Side Effects / State: Sets the cached id on first call.
        Dependencies: Uses the configured id factory.
        Failure Modes: Raises ValueError if the factory yields an empty id.
        If Removed: The engine has no way to open a session.
        Testing Notes: Calling twice returns the same id.
        """
        # Create once; later calls keep the existing session.
        if not self._session_id:
            self._session_id = self._new_id()
            logger.info("session=%s created", self._session_id)
        return self._session_id

    def reset(self) -> str:
        """Purpose: Replace the current session id with a fresh one.
        Inputs/Outputs: No inputs; returns the new session id.
        Side Effects / State: Overwrites the cached id.
        Dependencies: Uses the configured id factory.
        Failure Modes: Raises ValueError if the factory yields an empty id.
        If Removed: Conversation reset would keep talking to the old backend session.
        Testing Notes: New id differs from the previous one.
        """
        previous = self._session_id
        self._session_id = self._new_id()
        logger.info("session=%s reset previous=%s", self._session_id, previous)
        return self._session_id

    def _new_id(self) -> str:
        session_id = self._id_factory()
        if not session_id:
            raise ValueError("session id factory returned an empty id")
        return session_id
