"""
Tests for notifier construction and delivery.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs

import httpx
import pydantic
import pytest

from config.settings import NotifierSettings
from exceptions import InvalidFieldError, MissingFieldError, NotifierDeliveryError, UnknownKindError
from monitoring.notifiers import (
    PUSHOVER_API_URL,
    LogNotifier,
    NtfyNotifier,
    PushoverNotifier,
    TelegramNotifier,
    build_notifier,
    notifiers_from_settings,
)


TOKEN = "123456789:AAHdqTcvCH1vGWJxfSeofSAs0K5PALDsaw"


def with_transport(notifier, handler):
    notifier.transport = httpx.MockTransport(handler)
    return notifier


# ============================================================================
# FACTORY
# ============================================================================

class TestBuildNotifier:
    def test_consumes_recognized_keys(self):
        record = {"topic": "alerts", "priority": "high"}
        notifier = build_notifier("ntfy", record)

        assert isinstance(notifier, NtfyNotifier)
        assert notifier.endpoint == "https://ntfy.sh/alerts"
        assert record == {"priority": "high"}

    def test_unknown_kind(self):
        with pytest.raises(UnknownKindError) as exc_info:
            build_notifier("carrier-pigeon", {})
        assert "ntfy" in exc_info.value.details["known"]

    def test_missing_option(self):
        with pytest.raises(MissingFieldError):
            build_notifier("pushover", {"user": "u"})

    def test_malformed_telegram_token(self):
        with pytest.raises(InvalidFieldError):
            build_notifier("telegram", {"botToken": "not-a-token", "chatId": 42})


# ============================================================================
# HTTP NOTIFIERS
# ============================================================================

class TestNtfyNotifier:
    async def test_posts_body_with_title(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        notifier = with_transport(
            NtfyNotifier.from_record({"url": "https://ntfy.example.com/", "topic": "ops"}),
            handler,
        )
        await notifier.deliver("DNS check ✗", "server down")

        (request,) = requests
        assert request.method == "POST"
        assert request.url.path == "/ops"
        assert request.url.params["title"] == "DNS check ✗"
        assert request.content == "server down".encode("utf-8")

    async def test_http_error_raises(self):
        notifier = with_transport(
            NtfyNotifier.from_record({"topic": "ops"}),
            lambda request: httpx.Response(500),
        )

        with pytest.raises(NotifierDeliveryError) as exc_info:
            await notifier.deliver("s", "b")
        assert exc_info.value.details["status_code"] == 500

    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        notifier = with_transport(NtfyNotifier.from_record({"topic": "ops"}), handler)

        with pytest.raises(NotifierDeliveryError) as exc_info:
            await notifier.deliver("s", "b")
        assert "ConnectError" in exc_info.value.message


class TestPushoverNotifier:
    async def test_posts_form(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"status": 1})

        notifier = with_transport(
            PushoverNotifier.from_record({"user": "user-key", "token": "app-token"}),
            handler,
        )
        await notifier.deliver("subject", "body")

        (request,) = requests
        assert str(request.url) == PUSHOVER_API_URL
        form = parse_qs(request.content.decode())
        assert form == {
            "token": ["app-token"],
            "user": ["user-key"],
            "title": ["subject"],
            "message": ["body"],
        }


# ============================================================================
# TELEGRAM
# ============================================================================

class TestTelegramNotifier:
    def make(self):
        notifier = TelegramNotifier.from_record({"botToken": TOKEN, "chatId": -1001, "timeout": 1})
        bot = MagicMock()
        bot.send_message = AsyncMock()
        bot.session.close = AsyncMock()
        notifier._bot = bot
        return notifier, bot

    async def test_sends_to_chat(self):
        notifier, bot = self.make()

        await notifier.deliver("subject", "body")

        bot.send_message.assert_awaited_once_with(chat_id=-1001, text="subject\n\nbody")

    async def test_timeout_raises_delivery_error(self):
        notifier, bot = self.make()
        bot.send_message.side_effect = asyncio.TimeoutError()

        with pytest.raises(NotifierDeliveryError):
            await notifier.deliver("subject", "body")

    async def test_close_releases_session(self):
        notifier, bot = self.make()

        await notifier.close()

        bot.session.close.assert_awaited_once()
        assert notifier._bot is None


# ============================================================================
# LOG / SETTINGS
# ============================================================================

class TestLogNotifier:
    async def test_deliver_never_fails(self):
        await LogNotifier.from_record({}).deliver("subject", "body")


class TestNotifiersFromSettings:
    def test_nothing_configured(self):
        assert notifiers_from_settings(NotifierSettings()) == []

    def test_configured_channels(self):
        notifiers = notifiers_from_settings(NotifierSettings(
            ntfy_topic="ops",
            pushover_user="user-key",
            pushover_token="app-token",
            timeout=3,
        ))

        assert [type(n) for n in notifiers] == [NtfyNotifier, PushoverNotifier]
        assert notifiers[0].config.timeout == 3

    def test_incomplete_pair_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            NotifierSettings(pushover_user="user-key")
