"""Telegram notifications for connection failures."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class TelegramHandler:
    """Handles sending messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def send_message(self, text: str) -> Optional[requests.Response]:
        """Send *text* to the configured chat."""

        if not self.is_configured:
            logger.debug("Telegram credentials are not configured; skipping send.")
            return None

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        params = {"chat_id": self.chat_id, "text": text}
        try:
            response = requests.post(url, params=params, timeout=10)
        except requests.RequestException as exc:
            logger.error("Error sending Telegram message: %s", exc)
            return None

        if response.status_code == 200:
            logger.info("Telegram message sent successfully.")
        else:
            logger.error("Failed to send message: %s", response.text)
        return response


class TelegramReporter:
    """Error reporter that forwards each message to a Telegram chat.

    Sending happens on a daemon thread so the caller never waits on the
    network.
    """

    def __init__(self, handler: TelegramHandler, *, prefix: str = "adbconnect: ") -> None:
        self.handler = handler
        self.prefix = prefix

    def show(self, message: str) -> Optional[threading.Thread]:
        if not self.handler.is_configured:
            return None
        thread = threading.Thread(
            target=self.handler.send_message,
            args=(f"{self.prefix}{message}",),
            name="TelegramReporter",
            daemon=True,
        )
        thread.start()
        return thread
