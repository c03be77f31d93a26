import logging
from typing import Optional, Union

from aiogram import Bot

logger = logging.getLogger(__name__)

class Messenger:
    """Outbound side of the transport. Send failures propagate to the caller."""

    def __init__(self, bot: Bot):
        self.bot = bot

    @staticmethod
    def _chat_id(to: str) -> Union[int, str]:
        return int(to) if to.lstrip("-").isdigit() else to

    async def send_message(self, to: str, body: str, media_url: Optional[str] = None) -> None:
        chat_id = self._chat_id(to)
        if media_url:
            await self.bot.send_photo(chat_id=chat_id, photo=media_url, caption=body or None)
            logger.info(f"Media message sent to {to}")
        else:
            await self.bot.send_message(chat_id=chat_id, text=body)
            logger.info(f"Message sent to {to}: {body[:50]}...")
