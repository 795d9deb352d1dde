import asyncio
from typing import List, Optional, Tuple

import pytest

from chatbot_client.config import Settings


def _settings(**overrides) -> Settings:
    values = dict(
        backend_url="http://chat.test/api/chat",
        user_id="user1",
        request_timeout=1.0,
        max_attempts=3,
        debounce_seconds=0.01,
        typing_delay=0.0,
        reveal_grace_seconds=0.0,
        history_capacity=20,
        max_message_chars=500,
        eager_session=True,
        log_level="DEBUG",
    )
    values.update(overrides)
    return Settings(**values)


class FakeTransport:
    """Scripted transport: each call pops the next reply string or raises the next exception."""

    def __init__(self, outcomes=None, gate: Optional[asyncio.Event] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: List[Tuple[str, str]] = []
        self.gate = gate
        self.closed = False

    async def send(self, message: str, session_id: str) -> str:
        self.calls.append((message, session_id))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else "Xin chào!"
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_settings():
    return _settings


@pytest.fixture
def settings():
    return _settings()


@pytest.fixture
def make_transport():
    return FakeTransport


PLACES_REPLY = "\n".join(
    [
        "Tìm thấy 2 địa điểm:",
        "Nhà hàng Biển Xanh",
        "Địa chỉ: 12 Trần Phú, Nha Trang",
        "Số điện thoại: 0258 123 456",
        "Giờ mở cửa: 9:00 - 22:00",
        "Bản đồ: https://maps.example/bien-xanh",
        "AI Menu: https://menu.example/bien-xanh",
        "Điểm nổi bật:",
        "- Hải sản tươi sống",
        "- View biển",
        "",
        "Quán Chay An Lạc",
        "Địa chỉ: 45 Lê Thánh Tôn, Nha Trang",
        "Số điện thoại: 0258 987 654",
        "Giờ mở cửa: 7:00 - 21:00",
        "Điểm nổi bật:",
        "- Món chay truyền thống",
        "- Không gian yên tĩnh",
        "",
        "Bạn muốn chọn địa điểm nào?",
    ]
)


@pytest.fixture
def places_reply():
    return PLACES_REPLY
