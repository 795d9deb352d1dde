from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .config import Settings
from .models import ChatReply, ChatRequest

logger = logging.getLogger("chatbot.transport")


class TransportError(Exception):
    """Failed round trip to the chat endpoint (network, timeout, status, or body)."""

    def __init__(self, detail: str, status_code: Optional[int] = None, server_error: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.server_error = server_error


class ChatTransport:
    """Thin async wrapper around httpx for the chat endpoint."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        """Purpose: Bind the endpoint, user id and timeout; create an HTTP client if none is given.
        Inputs/Outputs: Inputs are Settings and an optional AsyncClient; no return value.
        Side Effects / State: Owns (and later closes) the client it creates.
        Dependencies: httpx.AsyncClient.
        Failure Modes: Raises ValueError when the endpoint is empty.
        If Removed: The engine cannot reach the chat backend.
        Testing Notes: Inject an AsyncClient built on httpx.MockTransport.
        """
        if not settings.backend_url:
            raise ValueError("CHAT_BACKEND_URL is required")
        self._url = settings.backend_url
        self._user_id = settings.user_id
        self._timeout = httpx.Timeout(settings.request_timeout)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    @property
    def url(self) -> str:
        return self._url

    async def send(self, message: str, session_id: str) -> str:
        """Purpose: POST one user message and return the bot's reply text.
        Inputs/Outputs: Inputs are the normalized message and session id; output is
            the "response" string of the reply body.
        Side Effects / State: One HTTP request.
        Dependencies: ChatRequest/ChatReply models for the wire format.
        Failure Modes: Raises TransportError on network errors, timeouts, non-2xx
            statuses, malformed JSON, or a body without a string "response".
        If Removed: No reply ever reaches the conversation.
        Testing Notes: Check the JSON body keys message/userId/sessionId.
        """
        payload = ChatRequest(message=message, user_id=self._user_id, session_id=session_id)
        try:
            response = await self._client.post(
                self._url,
                json=payload.model_dump(by_alias=True),
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportError(f"request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            raise TransportError(
                f"Request failed with status code {response.status_code}",
                status_code=response.status_code,
                server_error=_error_field(response),
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError("malformed JSON in reply") from exc
        try:
            reply = ChatReply.model_validate(data)
        except ValidationError as exc:
            raise TransportError("reply is missing a string 'response' field") from exc
        logger.debug("session=%s status=%s chars=%s", session_id, response.status_code, len(reply.response))
        return reply.response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_field(response: httpx.Response) -> Optional[str]:
    # Servers report failures as {"error": "..."}; anything else is ignored.
    try:
        body: Any = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None
