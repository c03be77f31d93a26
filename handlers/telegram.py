
from aiogram import Router
from aiogram.types import Message

from handlers.dispatch import MessageDispatcher

router = Router()

@router.message()
async def handle_message(message: Message, coach: MessageDispatcher):
    """Catch-all: every chat message goes through the coach dispatcher."""
    media = None
    if message.photo:
        # Largest size is last; send_photo takes the file_id back as is
        media = message.photo[-1].file_id

    await coach.process_inbound(str(message.chat.id), message.text or message.caption or "", media)
