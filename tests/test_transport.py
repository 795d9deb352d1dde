import asyncio
import json

import httpx
import pytest

from chatbot_client.transport import ChatTransport, TransportError


def _send(settings, handler, message="Tôi tìm tour", session_id="sess_test"):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            transport = ChatTransport(settings, client=client)
            return await transport.send(message, session_id)

    return asyncio.run(scenario())


def test_posts_json_body_and_returns_reply(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"response": "Có 3 tour hôm nay."})

    reply = _send(settings, handler)

    assert reply == "Có 3 tour hôm nay."
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == settings.backend_url
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"message": "Tôi tìm tour", "userId": "user1", "sessionId": "sess_test"}


def test_non_2xx_carries_status_and_server_error(settings):
    def handler(request):
        return httpx.Response(404, json={"error": "Không tìm thấy"})

    with pytest.raises(TransportError) as excinfo:
        _send(settings, handler)

    assert excinfo.value.status_code == 404
    assert excinfo.value.server_error == "Không tìm thấy"
    assert "404" in excinfo.value.detail


def test_non_json_error_body_has_no_server_error(settings):
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    with pytest.raises(TransportError) as excinfo:
        _send(settings, handler)

    assert excinfo.value.status_code == 502
    assert excinfo.value.server_error is None


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"answer": "wrong key"}),
        httpx.Response(200, json={"response": 42}),
    ],
)
def test_malformed_reply_is_a_transport_failure(settings, response):
    with pytest.raises(TransportError) as excinfo:
        _send(settings, lambda request: response)

    assert excinfo.value.status_code is None


@pytest.mark.parametrize("error_type", [httpx.ConnectError, httpx.ReadTimeout])
def test_network_errors_are_wrapped(settings, error_type):
    def handler(request):
        raise error_type("unreachable", request=request)

    with pytest.raises(TransportError) as excinfo:
        _send(settings, handler)

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, error_type)


def test_owned_client_is_closed(settings):
    async def scenario():
        transport = ChatTransport(settings)
        await transport.aclose()
        return transport._client.is_closed

    assert asyncio.run(scenario()) is True


def test_empty_endpoint_is_rejected(make_settings):
    with pytest.raises(ValueError):
        ChatTransport(make_settings(backend_url=""))
