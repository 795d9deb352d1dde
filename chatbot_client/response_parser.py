"""Line-oriented parser for the bot's place-listing replies.

Reply grammar (labels are a compatibility surface with the reply producer and
must stay verbatim):

    Tìm thấy 2 địa điểm:            <- result banner, skipped
    Nhà hàng Biển Xanh              <- header line, opens a place
    Địa chỉ: 12 Trần Phú            <- field lines
    Số điện thoại: 0258 123 456
    Giờ mở cửa: 9:00 - 22:00
    Bản đồ: https://maps.example/1
    AI Menu: https://menu.example/1
    Điểm nổi bật:                   <- section header, no assignment
    - Hải sản tươi                  <- highlight bullets
    Bạn muốn chọn địa điểm nào?     <- closing prompt, skipped

Each line is matched against an ordered rule table; the first matching rule
handles it. A line matching no rule is a header line.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .models import Place

RESULT_BANNER = "Tìm thấy"
CLOSING_PROMPT = "Bạn muốn chọn"
HIGHLIGHTS_HEADER = "Điểm nổi bật:"
BULLET = "-"

FIELD_PREFIXES = (
    ("Địa chỉ:", "address"),
    ("Số điện thoại:", "phone"),
    ("Giờ mở cửa:", "opening_hours"),
    ("Bản đồ:", "map_link"),
    ("AI Menu:", "ai_menu_link"),
)


@dataclass
class ParseState:
    """Mutable cursor shared by the rules while scanning one reply."""
    places: List[Place] = field(default_factory=list)
    current: Optional[Place] = None

    def open_place(self, name: str) -> None:
        if self.current is not None:
            self.places.append(self.current)
        self.current = Place(name=name)

    def close(self) -> List[Place]:
        if self.current is not None:
            self.places.append(self.current)
            self.current = None
        return self.places


@dataclass
class ParseRule:
    """Rule descriptor: predicate on the raw line and the handler it triggers."""
    name: str
    matches: Callable[[str], bool]
    apply: Callable[[ParseState, str], None]


def _skip(state: ParseState, line: str) -> None:
    return None


def _field_rule(prefix: str, attribute: str) -> ParseRule:
    def apply(state: ParseState, line: str) -> None:
        # Field lines before any header have no owner and are dropped.
        if state.current is None:
            return
        setattr(state.current, attribute, line.replace(prefix, "", 1).strip())

    return ParseRule(name=attribute, matches=lambda line: line.startswith(prefix), apply=apply)


def _append_highlight(state: ParseState, line: str) -> None:
    if state.current is None:
        return
    state.current.highlights.append(line.replace(BULLET, "", 1).strip())


def _open_place(state: ParseState, line: str) -> None:
    state.open_place(line.strip())


RULES: List[ParseRule] = [
    ParseRule("banner", lambda line: line.startswith(RESULT_BANNER), _skip),
    ParseRule("prompt", lambda line: line.startswith(CLOSING_PROMPT), _skip),
    ParseRule("blank", lambda line: not line.strip(), _skip),
    *(_field_rule(prefix, attribute) for prefix, attribute in FIELD_PREFIXES),
    ParseRule("highlights_header", lambda line: line.startswith(HIGHLIGHTS_HEADER), _skip),
    ParseRule("highlight", lambda line: line.startswith(BULLET), _append_highlight),
    ParseRule("header", lambda line: True, _open_place),
]


def has_result_banner(raw: str) -> bool:
    """Return True when the reply should be routed through parse_response."""
    return RESULT_BANNER in (raw or "")


def parse_response(raw: str) -> List[Place]:
    """Purpose: Turn a newline-delimited place report into Place records.
    Inputs/Outputs: Input is the raw reply text; output is the list of places in
        order of first appearance.
    Side Effects / State: None; the ParseState is local to the call.
    Dependencies: Uses RULES; called by ConversationEngine when has_result_banner is True.
    Failure Modes: Never raises on malformed lines; unattributable field and bullet
        lines are dropped. Header names are not validated beyond trimming.
    If Removed: Location replies render as raw text and place picking is unavailable.
    Testing Notes: Two places with all fields and two bullets each parse verbatim.
    """
    state = ParseState()
    for line in (raw or "").split("\n"):
        for rule in RULES:
            if rule.matches(line):
                rule.apply(state, line)
                break
    return state.close()
