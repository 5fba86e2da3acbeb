from __future__ import annotations

import json

import httpx

from vcard_reminders.adapters.message_gateway import MessageGateway

API_URL = "https://gateway.test/send"


def _gateway(handler) -> MessageGateway:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return MessageGateway(api_url=API_URL, api_token="token-123", client=client)


def test_send_posts_expected_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": {"messageId": "m-1"}})

    outcome = _gateway(handler).send("hello", "+919999999999")

    assert outcome.success is True
    assert outcome.data == {"messageId": "m-1"}
    assert str(seen[0].url) == API_URL
    assert json.loads(seen[0].content) == {
        "apiToken": "token-123",
        "message": "hello",
        "phoneNumber": "+919999999999",
        "source": "vcard",
    }


def test_provider_reported_failure_carries_message() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "Invalid number"})

    outcome = _gateway(handler).send("hello", "123")

    assert outcome.success is False
    assert outcome.error_message == "Invalid number"


def test_http_error_status_is_a_failed_outcome() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    outcome = _gateway(handler).send("hello", "+919999999999")

    assert outcome.success is False
    assert "502" in (outcome.error_message or "")


def test_transport_error_is_a_failed_outcome() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    outcome = _gateway(handler).send("hello", "+919999999999")

    assert outcome.success is False
    assert "unreachable" in (outcome.error_message or "")


def test_non_json_body_is_a_failed_outcome() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="OK")

    outcome = _gateway(handler).send("hello", "+919999999999")

    assert outcome.success is False


def test_missing_configuration_never_calls_out() -> None:
    gateway = MessageGateway(api_url="", api_token="")

    outcome = gateway.send("hello", "+919999999999")

    assert outcome.success is False
    gateway.close()
