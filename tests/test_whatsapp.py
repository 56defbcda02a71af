import json

import httpx
import pytest

from town_concierge.config import Settings
from town_concierge.errors import ConfigError
from town_concierge.whatsapp import (
    ConsoleSender,
    MetaSender,
    TwilioSender,
    create_sender,
    normalize_phone_number,
    parse_incoming_message,
)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.parametrize("raw, expected", [
    ("+57 300 123 4567", "+573001234567"),
    ("57-300-(123)-4567", "+573001234567"),
    ("+573001234567", "+573001234567"),
])
def test_normalize_phone_number(raw, expected):
    assert normalize_phone_number(raw) == expected


def test_parse_twilio_payload():
    message = parse_incoming_message("twilio", {"From": "whatsapp:+573001234567", "Body": "hola"})

    assert message.from_ == "+573001234567"
    assert message.body == "hola"
    assert message.timestamp is not None


def test_console_uses_twilio_shape():
    message = parse_incoming_message("console", {"From": "+573001234567", "Body": "menú"})
    assert message.body == "menú"


def test_parse_meta_payload():
    payload = {
        "entry": [{
            "changes": [{
                "value": {
                    "messages": [{
                        "from": "573001234567",
                        "timestamp": "1700000000",
                        "text": {"body": "¿hay pizza?"},
                    }],
                },
            }],
        }],
    }

    message = parse_incoming_message("meta", payload)

    assert message.from_ == "573001234567"
    assert message.body == "¿hay pizza?"
    assert message.timestamp.year == 2023


def test_meta_status_callback_has_no_message():
    payload = {"entry": [{"changes": [{"value": {"statuses": [{"status": "read"}]}}]}]}
    assert parse_incoming_message("meta", payload) is None


@pytest.mark.parametrize("payload", [None, [], "From=x", {"entry": "broken"}])
def test_malformed_payloads_yield_none(payload):
    assert parse_incoming_message("meta", payload) is None


async def test_twilio_send_success():
    captured = {}

    def handler(request):
        captured["request"] = request
        return httpx.Response(201, json={"sid": "SM123"})

    sender = TwilioSender("AC1", "secret", "whatsapp:+14155238886", client=_client(handler))
    result = await sender.send("+573001234567", "hola")

    request = captured["request"]
    assert result.success
    assert result.message_id == "SM123"
    assert request.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
    assert request.headers["authorization"].startswith("Basic ")
    body = request.content.decode()
    assert "To=whatsapp%3A%2B573001234567" in body
    assert "Body=hola" in body
    await sender.aclose()


async def test_twilio_http_error_is_reported():
    sender = TwilioSender("AC1", "secret", "whatsapp:+1415", client=_client(lambda r: httpx.Response(500)))

    result = await sender.send("+573001234567", "hola")

    assert not result.success
    assert result.error == "Twilio error: 500"


async def test_twilio_network_error_is_reported():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    sender = TwilioSender("AC1", "secret", "whatsapp:+1415", client=_client(handler))
    result = await sender.send("+573001234567", "hola")

    assert not result.success
    assert "unreachable" in result.error


async def test_meta_send_success():
    captured = {}

    def handler(request):
        captured["request"] = request
        return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

    sender = MetaSender("12345", "token-abc", "verify", client=_client(handler))
    result = await sender.send("+573001234567", "hola")

    request = captured["request"]
    assert result.success
    assert result.message_id == "wamid.1"
    assert request.url.path == "/v18.0/12345/messages"
    assert request.headers["authorization"] == "Bearer token-abc"
    assert json.loads(request.content) == {
        "messaging_product": "whatsapp",
        "to": "573001234567",
        "type": "text",
        "text": {"body": "hola"},
    }


async def test_meta_http_error_is_reported():
    sender = MetaSender("12345", "token", "verify", client=_client(lambda r: httpx.Response(401)))

    result = await sender.send("+573001234567", "hola")

    assert not result.success
    assert result.error == "Meta error: 401"


async def test_console_sender_always_succeeds():
    result = await ConsoleSender().send("+573001234567", "hola")

    assert result.success
    assert result.message_id.startswith("console-")


def test_create_sender_by_provider():
    assert isinstance(create_sender(Settings()), ConsoleSender)
    meta = create_sender(Settings(
        whatsapp_provider="meta",
        meta_phone_number_id="12345",
        meta_access_token="token",
        meta_verify_token="verify",
    ))
    assert isinstance(meta, MetaSender)


def test_incomplete_provider_configuration():
    with pytest.raises(ConfigError):
        create_sender(Settings(whatsapp_provider="twilio", twilio_account_sid="AC1"))
    with pytest.raises(ConfigError):
        create_sender(Settings(whatsapp_provider="meta", meta_access_token="token"))
