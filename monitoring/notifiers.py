"""
============================================================================
PROBEMON - NOTIFIERS
============================================================================
Delivery channels for escalations.

    telegram   aiogram Bot.send_message to one chat
    ntfy       HTTP POST to an ntfy topic
    pushover   Pushover messages API
    log        loguru only; always available

Each notifier exposes one coroutine, ``deliver(subject, body)``. A
delivery problem raises NotifierDeliveryError; the AlertManager isolates
it so one broken channel never blocks the others.

Notifiers are built from checks-file records (``build_notifier``) or from
the NOTIFY_* settings (``notifiers_from_settings``).

License: MIT
============================================================================
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

import httpx
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.utils.token import TokenValidationError, validate_token
from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.constants import Defaults, NotifierKind
from config.settings import NotifierSettings
from exceptions import NotifierDeliveryError, UnknownKindError
from monitoring.probe import consume_record
from utils.helpers import StringHelper
from utils.logger import get_logger


logger = get_logger("Notifier")

TELEGRAM_MAX_MESSAGE = 4096
PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"


class NotifierConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    timeout: float = Field(default=10.0, gt=0)


# ============================================================================
# NOTIFIER BASE CLASS
# ============================================================================

class Notifier(ABC):
    """Base class for all notification channels."""

    KIND: ClassVar[str] = ""
    config_model: ClassVar[Type[NotifierConfig]] = NotifierConfig

    def __init__(self, config: NotifierConfig):
        self.config = config

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Notifier":
        """Build from a raw record, consuming every recognized key."""
        return cls(consume_record(record, cls.config_model, kind=f"notifier {cls.KIND}"))

    @abstractmethod
    async def deliver(self, subject: str, body: str) -> None:
        """Send one message. Raises NotifierDeliveryError on failure."""

    @abstractmethod
    def describe(self) -> str:
        ...

    async def close(self) -> None:
        """Release transport resources."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()}>"


class HTTPNotifier(Notifier):
    """
    Notifier posting over httpx. ``transport`` can be swapped for an
    ``httpx.MockTransport``.
    """

    transport: Optional[httpx.AsyncBaseTransport] = None

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout,
                headers={"User-Agent": Defaults.USER_AGENT},
                transport=self.transport,
            ) as client:
                response = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise NotifierDeliveryError(
                f"{self.describe()}: {StringHelper.describe_error(e)}",
                notifier=self.describe(),
                cause=e,
            ) from e

        if response.status_code >= 400:
            raise NotifierDeliveryError(
                f"{self.describe()}: HTTP {response.status_code}",
                notifier=self.describe(),
                status_code=response.status_code,
            )
        return response


# ============================================================================
# TELEGRAM
# ============================================================================

class TelegramConfig(NotifierConfig):
    bot_token: str = Field(alias="botToken")
    chat_id: Union[int, str] = Field(alias="chatId")

    @field_validator("bot_token")
    @classmethod
    def _check_token(cls, value: str) -> str:
        try:
            validate_token(value)
        except TokenValidationError as e:
            raise ValueError("malformed Telegram bot token") from e
        return value


class TelegramNotifier(Notifier):
    KIND = NotifierKind.TELEGRAM.value
    config_model = TelegramConfig

    def __init__(self, config: TelegramConfig):
        super().__init__(config)
        self._bot: Optional[Bot] = None

    @property
    def bot(self) -> Bot:
        # created on first use so no HTTP session exists before the loop runs
        if self._bot is None:
            self._bot = Bot(token=self.config.bot_token)
        return self._bot

    def describe(self) -> str:
        return f"telegram chat {self.config.chat_id}"

    async def deliver(self, subject: str, body: str) -> None:
        text = StringHelper.truncate(f"{subject}\n\n{body}", TELEGRAM_MAX_MESSAGE)
        try:
            await asyncio.wait_for(
                self.bot.send_message(chat_id=self.config.chat_id, text=text),
                timeout=self.config.timeout,
            )
        except (TelegramAPIError, asyncio.TimeoutError) as e:
            raise NotifierDeliveryError(
                f"{self.describe()}: {StringHelper.describe_error(e)}",
                notifier=self.describe(),
                cause=e,
            ) from e

    async def close(self) -> None:
        if self._bot is not None:
            await self._bot.session.close()
            self._bot = None


# ============================================================================
# NTFY
# ============================================================================

class NtfyConfig(NotifierConfig):
    url: str = "https://ntfy.sh"
    topic: str = Field(min_length=1)


class NtfyNotifier(HTTPNotifier):
    KIND = NotifierKind.NTFY.value
    config_model = NtfyConfig

    @property
    def endpoint(self) -> str:
        return f"{self.config.url.rstrip('/')}/{self.config.topic}"

    def describe(self) -> str:
        return f"ntfy {self.endpoint}"

    async def deliver(self, subject: str, body: str) -> None:
        # title as a query parameter; headers must be latin-1
        await self._post(self.endpoint, params={"title": subject}, content=body.encode("utf-8"))


# ============================================================================
# PUSHOVER
# ============================================================================

class PushoverConfig(NotifierConfig):
    user: str = Field(min_length=1)
    token: str = Field(min_length=1)


class PushoverNotifier(HTTPNotifier):
    KIND = NotifierKind.PUSHOVER.value
    config_model = PushoverConfig

    def describe(self) -> str:
        return f"pushover user {StringHelper.truncate(self.config.user, 8, '...')}"

    async def deliver(self, subject: str, body: str) -> None:
        await self._post(
            PUSHOVER_API_URL,
            data={
                "token": self.config.token,
                "user": self.config.user,
                "title": StringHelper.truncate(subject, 250),
                "message": StringHelper.truncate(body, 1024),
            },
        )


# ============================================================================
# LOG
# ============================================================================

class LogNotifier(Notifier):
    """Writes escalations to the application log."""

    KIND = NotifierKind.LOG.value

    def describe(self) -> str:
        return "log"

    async def deliver(self, subject: str, body: str) -> None:
        logger.warning(f"[Alert] {subject}: {body}")


# ============================================================================
# REGISTRY / FACTORIES
# ============================================================================

NOTIFIER_REGISTRY: Dict[str, Type[Notifier]] = {
    cls.KIND: cls
    for cls in (TelegramNotifier, NtfyNotifier, PushoverNotifier, LogNotifier)
}


def build_notifier(kind: str, record: Dict[str, Any]) -> Notifier:
    """
    Build a notifier of ``kind`` from ``record``. Recognized keys are
    removed from the record; leftovers are the caller's to report.
    """
    cls = NOTIFIER_REGISTRY.get(kind)
    if cls is None:
        raise UnknownKindError(kind, known=NOTIFIER_REGISTRY)
    return cls.from_record(record)


def notifiers_from_settings(settings: NotifierSettings) -> List[Notifier]:
    """Notifiers for every channel configured through NOTIFY_* variables."""
    notifiers: List[Notifier] = []

    if settings.telegram_bot_token and settings.telegram_chat_id:
        notifiers.append(TelegramNotifier.from_record({
            "botToken": settings.telegram_bot_token.get_secret_value(),
            "chatId": settings.telegram_chat_id,
            "timeout": settings.timeout,
        }))

    if settings.ntfy_topic:
        notifiers.append(NtfyNotifier.from_record({
            "url": settings.ntfy_url,
            "topic": settings.ntfy_topic,
            "timeout": settings.timeout,
        }))

    if settings.pushover_user and settings.pushover_token:
        notifiers.append(PushoverNotifier.from_record({
            "user": settings.pushover_user,
            "token": settings.pushover_token.get_secret_value(),
            "timeout": settings.timeout,
        }))

    for notifier in notifiers:
        logger.info(f"[Notifier] ✓ Configured from settings: {notifier.describe()}")

    return notifiers
