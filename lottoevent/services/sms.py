from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from ..config import SmsSettings
from ..errors import SendFailed
from .phones import phone_last4

logger = logging.getLogger("lottoevent.sms")


class SmsSender(abc.ABC):
    """Delivers a text message to a phone number."""

    @abc.abstractmethod
    def send(self, phone_number: str, text: str) -> None:
        """Send ``text`` to ``phone_number``.

        Implementations raise `SendFailed` when the message could not be
        handed to the gateway.
        """


class LoggingSmsSender(SmsSender):
    """Development sender that writes messages to the log instead of a gateway."""

    def send(self, phone_number: str, text: str) -> None:
        logger.info("SMS to ***%s: %s", phone_last4(phone_number), text)


@dataclass(frozen=True)
class HttpSmsGatewayConfig:
    url: str
    api_key: Optional[str] = None
    sender: Optional[str] = None
    timeout_seconds: int = 10


class HttpSmsSender(SmsSender):
    """Post messages to a JSON HTTP SMS gateway."""

    def __init__(self, config: HttpSmsGatewayConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()

    def send(self, phone_number: str, text: str) -> None:
        cfg = self._config
        payload = {"to": phone_number, "from": cfg.sender, "text": text}
        headers = {"Authorization": f"Bearer {cfg.api_key}"} if cfg.api_key else {}
        try:
            resp = self._session.post(cfg.url, json=payload, headers=headers, timeout=cfg.timeout_seconds)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("SMS gateway rejected message to %s: %s", phone_number, exc)
            raise SendFailed(f"failed to send SMS: {exc}") from exc


def build_sender(settings: SmsSettings) -> SmsSender:
    if not settings.gateway_url:
        return LoggingSmsSender()
    return HttpSmsSender(
        HttpSmsGatewayConfig(
            url=settings.gateway_url,
            api_key=settings.api_key,
            sender=settings.sender,
            timeout_seconds=settings.timeout_seconds,
        )
    )
