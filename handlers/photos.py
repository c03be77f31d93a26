import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import User
from database import queries

logger = logging.getLogger(__name__)

async def handle_photo(session: AsyncSession, user: User, media_url: str, today: date) -> str:
    """The first photo a user ever sends is the baseline, every later one is a daily."""
    baseline = await queries.get_baseline_photo(session, user.id)

    if baseline is None:
        await queries.save_photo(session, user.id, "baseline", media_url, today)
        logger.info(f"Baseline photo stored for user {user.id}")
        return (
            "📸 Baseline photo saved.\n\n"
            "This is where you started. I'll keep it. You'll see it again if you slip."
        )

    await queries.save_photo(session, user.id, "daily", media_url, today)
    return f"📸 Progress photo logged for {today.isoformat()}."
