"""Telegram execution-report notifier."""
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Send execution reports to a Telegram chat."""

    def __init__(self, config: TelegramConfig, timeout: int = 10) -> None:
        self.bot_token = config.bot_token
        self.chat_id = config.chat_id
        self.timeout = timeout

    async def send_report(self, message: str, silent: bool = False) -> bool:
        """Post ``message``; returns False when delivery failed."""
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": message,
            "parse_mode": "HTML",
            "disable_notification": silent,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(
                url, json=payload, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status == 200:
                    logger.info("Telegram report sent")
                    return True
                logger.error("Failed to send Telegram message: %s", response.status)
                return False
