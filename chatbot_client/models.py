from __future__ import annotations

import time
import uuid
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Place(BaseModel):
    """Structured location record extracted from a bot reply."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    opening_hours: Optional[str] = Field(default=None, alias="openingHours")
    map_link: Optional[str] = Field(default=None, alias="mapLink")
    ai_menu_link: Optional[str] = Field(default=None, alias="aiMenuLink")
    highlights: List[str] = Field(default_factory=list)


class Message(BaseModel):
    """Conversation log entry; carries either text or a list of places."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    sender: Literal["user", "bot"]
    text: Optional[str] = None
    locations: Optional[List[Place]] = None
    revealed: bool = False
    is_error: bool = Field(default=False, alias="isError")
    created_at: float = Field(default_factory=time.time, alias="createdAt")


class ChatRequest(BaseModel):
    """Request body posted to the chat endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    user_id: str = Field(alias="userId")
    session_id: str = Field(alias="sessionId")


class ChatReply(BaseModel):
    """Reply body returned by the chat endpoint."""
    response: str


class EngineSnapshot(BaseModel):
    """Read model handed to the presentation layer."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    messages: List[Message]
    busy: bool
    unread: int
    visible: bool
    history_labels: List[str] = Field(alias="historyLabels")
    composer_clears: int = Field(alias="composerClears")
    reveal_progress: Dict[str, int] = Field(default_factory=dict, alias="revealProgress")


class TextIntent(BaseModel):
    """Bridge payload for submit / suggestion intents."""
    text: str


class PlaceIntent(BaseModel):
    """Bridge payload for picking a parsed place."""
    name: str


class Suggestion(BaseModel):
    """Quick-reply chip: short label and the literal text it submits."""
    label: str
    text: str
