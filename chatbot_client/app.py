from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from .config import Settings, load_settings
from .engine import SUGGESTIONS, ConversationEngine, Transport
from .models import EngineSnapshot, PlaceIntent, Suggestion, TextIntent

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)


def configure_logging(level_name: str) -> None:
    """Install the root handler once and align the chatbot.* loggers with LOG_LEVEL."""
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("chatbot").setLevel(log_level)


def create_app(settings: Optional[Settings] = None, transport: Optional[Transport] = None) -> FastAPI:
    """Purpose: Build the presentation bridge around one ConversationEngine.
    Inputs/Outputs: Optional Settings and transport override; returns the FastAPI app.
    Side Effects / State: Configures logging; the engine lives in app.state during lifespan.
    Dependencies: ConversationEngine, load_settings, FastAPI lifespan.
    Failure Modes: Invalid settings raise ValueError at startup.
    If Removed: Presentation clients have no way to forward intents to the core.
    Testing Notes: Use TestClient as a context manager so the lifespan runs.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Engine timers need the running loop, so build it inside the lifespan.
        engine = ConversationEngine(settings, transport=transport)
        app.state.engine = engine
        try:
            yield
        finally:
            await engine.aclose()

    app = FastAPI(title="Culture & Travel Chatbot Client", lifespan=lifespan)

    def _engine(request: Request) -> ConversationEngine:
        return request.app.state.engine

    async def _settled(engine: ConversationEngine, wait: bool) -> EngineSnapshot:
        if wait:
            await engine.wait_idle()
            await engine.wait_revealed()
        return engine.snapshot()

    @app.get("/api/state", response_model=EngineSnapshot)
    async def get_state(request: Request) -> EngineSnapshot:
        """Return the current message log and indicator state."""
        return _engine(request).snapshot()

    @app.get("/api/suggestions", response_model=List[Suggestion])
    async def list_suggestions() -> List[Suggestion]:
        return SUGGESTIONS

    @app.post("/api/messages", response_model=EngineSnapshot)
    async def submit_message(intent: TextIntent, request: Request, wait: bool = False) -> EngineSnapshot:
        """Purpose: Forward composer text to the engine.
        Inputs/Outputs: Input is TextIntent; output is the snapshot (settled when wait=true).
        Side Effects / State: Arms the engine debounce timer.
        Dependencies: ConversationEngine.submit.
        Failure Modes: Rejected input still returns 200 with an unchanged snapshot.
        If Removed: The composer cannot send messages.
        Testing Notes: Post with wait=true against a mock transport and inspect messages.
        """
        engine = _engine(request)
        engine.submit(intent.text)
        return await _settled(engine, wait)

    @app.post("/api/suggestions/select", response_model=EngineSnapshot)
    async def select_suggestion(intent: TextIntent, request: Request, wait: bool = False) -> EngineSnapshot:
        engine = _engine(request)
        engine.select_suggestion(intent.text)
        return await _settled(engine, wait)

    @app.post("/api/places/select", response_model=EngineSnapshot)
    async def select_place(intent: PlaceIntent, request: Request, wait: bool = False) -> EngineSnapshot:
        engine = _engine(request)
        engine.select_place(intent.name)
        return await _settled(engine, wait)

    @app.delete("/api/history", response_model=EngineSnapshot)
    async def delete_history(request: Request, label: str) -> EngineSnapshot:
        engine = _engine(request)
        engine.delete_history_entry(label)
        return engine.snapshot()

    @app.post("/api/reset", response_model=EngineSnapshot)
    async def reset_conversation(request: Request) -> EngineSnapshot:
        engine = _engine(request)
        engine.reset_conversation()
        return engine.snapshot()

    @app.post("/api/visibility/toggle", response_model=EngineSnapshot)
    async def toggle_visibility(request: Request) -> EngineSnapshot:
        engine = _engine(request)
        engine.toggle_visibility()
        return engine.snapshot()

    return app


app = create_app()
