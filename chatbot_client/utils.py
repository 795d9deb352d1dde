import re
import secrets
import string
import time

TRUNCATION_MARKER = "…"
LABEL_MAX_CHARS = 20
LABEL_KEEP_CHARS = 17
LABEL_ELLIPSIS = "..."

_BASE36 = string.digits + string.ascii_lowercase
_CONTROL_WS = re.compile(r"[\n\t\r]")


def to_base36(value: int) -> str:
    """Render a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_session_id() -> str:
    """Purpose: Build a client-side session identifier without a server round trip.
    Inputs/Outputs: No inputs; returns "sess_" + base36 millisecond timestamp + random suffix.
    Side Effects / State: Reads the wall clock and the OS random source.
    Dependencies: Uses time.time and secrets; called by SessionStore.
    Failure Modes: None; uniqueness is only probabilistic within one client run.
    If Removed: The engine cannot tag requests with a session.
    Testing Notes: Ensure the prefix and that two consecutive ids differ.
    """
    # Time-based prefix keeps ids roughly ordered; random suffix separates collisions.
    stamp = to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(11))
    return f"sess_{stamp}{suffix}"


def clean_message(text: str) -> str:
    """Collapse literal newline/tab/carriage-return characters to spaces and trim."""
    if not text:
        return ""
    return _CONTROL_WS.sub(" ", text).strip()


def truncate_message(text: str, limit: int = 500) -> str:
    """Hard-truncate to ``limit`` characters, appending the marker when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def normalize_message(text: str, limit: int = 500) -> str:
    """Purpose: Normalize raw composer input into the text that is stored and sent.
    Inputs/Outputs: Input is raw text and a character limit; output is cleaned text.
    Side Effects / State: None; pure function.
    Dependencies: clean_message then truncate_message; used by ConversationEngine.
    Failure Modes: Returns an empty string for falsy input.
    If Removed: Multi-line input and oversized payloads reach the endpoint unmodified.
    Testing Notes: 600 "a" characters become 500 "a" plus the marker.
    """
    return truncate_message(clean_message(text), limit)


def history_label(text: str) -> str:
    # Long questions keep 17 characters plus "..." so chips stay at 20.
    if len(text) > LABEL_MAX_CHARS:
        return text[:LABEL_KEEP_CHARS] + LABEL_ELLIPSIS
    return text
