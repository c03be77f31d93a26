import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import DailyLog, TokenRecord, User
from database import queries
from database.schemas import LossEvent

logger = logging.getLogger(__name__)

MINOR_LOSS = 1  # score under half of what was possible
MAJOR_LOSS = 2  # no nightly lock
LOW_TOKENS = 2

@dataclass
class TokenStatus:
    current: int
    starting: int
    loss_events: List[LossEvent]
    punishment_triggered: bool

    @classmethod
    def from_record(cls, record: TokenRecord) -> "TokenStatus":
        return cls(
            current=record.current_tokens,
            starting=record.starting_tokens,
            loss_events=[LossEvent.model_validate(e) for e in record.loss_events or []],
            punishment_triggered=record.punishment_triggered,
        )

async def get_token_status(session: AsyncSession, user: User, day: date) -> TokenStatus:
    record = await queries.get_or_create_week_tokens(session, user.id, day)
    return TokenStatus.from_record(record)

async def process_failure(session: AsyncSession, user: User, reason: str, day: date, severity: str = "minor") -> str:
    """Deducts tokens for a failure. No-op with an empty reply when loss aversion is off."""
    if not user.loss_aversion_enabled:
        return ""

    amount = MAJOR_LOSS if severity == "major" else MINOR_LOSS
    tokens = await queries.deduct_token(session, user.id, reason, amount, day)
    logger.info(f"User {user.id} lost {amount} token(s): {reason}. Left: {tokens.current_tokens}")

    if tokens.punishment_triggered:
        return (
            "🚨 ZERO TOKENS\n\n"
            f"You've lost all {tokens.starting_tokens} tokens this week.\n\n"
            "The pre-agreed punishment is now active.\n\n"
            "This is the cost of breaking your commitment.\n\n"
            "Next week starts fresh. But this week, you pay the price."
        )

    remaining = tokens.current_tokens
    emoji = "⚠️" if remaining <= LOW_TOKENS else "📉"
    message = f"{emoji} Token lost: {reason}\n\nRemaining this week: {remaining}/{tokens.starting_tokens}"
    if remaining <= LOW_TOKENS:
        message += "\n\nYou're running low. Every action counts now."
    return message

async def already_evaluated(session: AsyncSession, user: User, day: date) -> bool:
    record = await queries.get_week_tokens(session, user.id, day)
    if record is None:
        return False
    return any(e.get("date") == day.isoformat() for e in record.loss_events or [])

async def check_daily_failures(
    session: AsyncSession,
    user: User,
    log: Optional[DailyLog],
    day: date,
    total_possible: int,
) -> List[str]:
    """
    Evaluates one finished day. A missing log counts as a zero score with no
    lock. Each trigger is evaluated independently.
    """
    messages: List[str] = []
    if not user.loss_aversion_enabled:
        return messages

    score = log.total_score if log else 0
    locked = bool(log and log.tomorrow_locked)

    if score < total_possible * 0.5:
        msg = await process_failure(session, user, f"Score {score}/{total_possible}", day, "minor")
        if msg:
            messages.append(msg)

    if not locked:
        msg = await process_failure(session, user, "Missed nightly lock", day, "major")
        if msg:
            messages.append(msg)

    return messages

def token_status_message(status: TokenStatus) -> str:
    if status.punishment_triggered:
        return f"⛔ Tokens: 0/{status.starting}\nPunishment active this week."

    message = f"💰 Tokens: {status.current}/{status.starting}"
    if status.loss_events:
        message += "\n\nLosses this week:"
        for event in status.loss_events[-3:]:
            message += f"\n- {event.date}: {event.reason} (-{event.amount})"

    if status.current <= LOW_TOKENS:
        message += "\n\n⚠️ Running low. Stay sharp."
    return message
