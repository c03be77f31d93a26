"""
Persistence contract used by the flows: upsert-by-key plus simple filtered,
sorted and limited range queries. Functions flush but never commit; the
caller owns the unit of work.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select, update, desc
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    User, Contract, DailyLog, TokenRecord, Pattern, Message, Photo, utcnow
)
from database.schemas import BinaryAction, LossEvent, dump_actions

WEEKLY_TOKENS = 7
CONTRACT_DAYS = 7

# --- Clock helpers ---

def local_now(user: User) -> datetime:
    return datetime.now(ZoneInfo(user.timezone or "UTC"))

def local_today(user: User) -> date:
    return local_now(user).date()

def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())

# --- Users ---

async def get_or_create_user(session: AsyncSession, phone: str, timezone: str = "America/Los_Angeles") -> User:
    result = await session.execute(select(User).where(User.phone == phone))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            phone=phone,
            timezone=timezone,
            risk_times=[],
            shame_level=1,
            loss_aversion_enabled=True,
            onboarding_complete=False,
            onboarding_step="start",
        )
        session.add(user)
        await session.flush()
    return user

async def update_user(session: AsyncSession, user: User, **fields) -> User:
    for key, value in fields.items():
        setattr(user, key, value)
    await session.flush()
    return user

async def get_onboarded_users(session: AsyncSession) -> List[User]:
    result = await session.execute(select(User).where(User.onboarding_complete.is_(True)))
    return list(result.scalars().all())

# --- Contracts ---

async def get_active_contract(session: AsyncSession, user_id: int) -> Optional[Contract]:
    result = await session.execute(
        select(Contract)
        .where(Contract.user_id == user_id, Contract.active.is_(True))
        .order_by(desc(Contract.locked_at), desc(Contract.id))
        .limit(1)
    )
    return result.scalar_one_or_none()

async def create_contract(
    session: AsyncSession,
    user_id: int,
    goal: str,
    actions: List[BinaryAction],
    rules_text: str = None,
) -> Contract:
    """Full replacement: any previously active contract is retired."""
    await session.execute(
        update(Contract)
        .where(Contract.user_id == user_id, Contract.active.is_(True))
        .values(active=False)
    )
    locked_at = utcnow()
    contract = Contract(
        user_id=user_id,
        goal=goal,
        binary_actions=dump_actions(actions),
        rules_text=rules_text,
        locked_at=locked_at,
        expires_at=locked_at + timedelta(days=CONTRACT_DAYS),
        active=True,
    )
    session.add(contract)
    await session.flush()
    return contract

# --- Daily logs ---

async def get_daily_log(session: AsyncSession, user_id: int, day: date) -> Optional[DailyLog]:
    result = await session.execute(
        select(DailyLog).where(DailyLog.user_id == user_id, DailyLog.date == day)
    )
    return result.scalar_one_or_none()

async def upsert_daily_log(session: AsyncSession, user_id: int, day: date, **updates) -> DailyLog:
    log = await get_daily_log(session, user_id, day)
    if log is None:
        log = DailyLog(
            user_id=user_id,
            date=day,
            scores={},
            total_score=0,
            tomorrow_locked=False,
        )
        session.add(log)
    for key, value in updates.items():
        setattr(log, key, value)
    await session.flush()
    return log

async def get_recent_logs(session: AsyncSession, user_id: int, today: date, days: int = 7) -> List[DailyLog]:
    """Logs of the last `days` calendar days (today included), newest first."""
    since = today - timedelta(days=days - 1)
    result = await session.execute(
        select(DailyLog)
        .where(DailyLog.user_id == user_id, DailyLog.date >= since, DailyLog.date <= today)
        .order_by(desc(DailyLog.date))
        .limit(days)
    )
    return list(result.scalars().all())

# --- Tokens ---

async def get_week_tokens(session: AsyncSession, user_id: int, day: date) -> Optional[TokenRecord]:
    result = await session.execute(
        select(TokenRecord).where(
            TokenRecord.user_id == user_id, TokenRecord.week_start == week_start(day)
        )
    )
    return result.scalar_one_or_none()

async def get_or_create_week_tokens(session: AsyncSession, user_id: int, day: date) -> TokenRecord:
    tokens = await get_week_tokens(session, user_id, day)
    if tokens is None:
        tokens = TokenRecord(
            user_id=user_id,
            week_start=week_start(day),
            starting_tokens=WEEKLY_TOKENS,
            current_tokens=WEEKLY_TOKENS,
            loss_events=[],
            punishment_triggered=False,
        )
        session.add(tokens)
        await session.flush()
    return tokens

async def deduct_token(session: AsyncSession, user_id: int, reason: str, amount: int, day: date) -> TokenRecord:
    tokens = await get_or_create_week_tokens(session, user_id, day)
    new_amount = max(0, tokens.current_tokens - amount)
    event = LossEvent(date=day.isoformat(), reason=reason, amount=amount)

    tokens.current_tokens = new_amount
    # Reassign so the JSON column is flagged dirty
    tokens.loss_events = list(tokens.loss_events or []) + [event.model_dump()]
    tokens.punishment_triggered = new_amount == 0
    await session.flush()
    return tokens

# --- Patterns ---

async def find_pattern(session: AsyncSession, user_id: int, pattern_type: str, content: str) -> Optional[Pattern]:
    result = await session.execute(
        select(Pattern).where(
            Pattern.user_id == user_id,
            Pattern.pattern_type == pattern_type,
            Pattern.content == content,
        )
    )
    return result.scalars().first()

async def record_pattern(session: AsyncSession, user_id: int, pattern_type: str, content: str) -> Pattern:
    pattern = await find_pattern(session, user_id, pattern_type, content)
    if pattern is not None:
        pattern.frequency += 1
        pattern.last_seen = utcnow()
    else:
        pattern = Pattern(
            user_id=user_id,
            pattern_type=pattern_type,
            content=content,
            frequency=1,
            last_seen=utcnow(),
        )
        session.add(pattern)
    await session.flush()
    return pattern

async def get_user_patterns(session: AsyncSession, user_id: int, limit: int = 10, pattern_type: str = None) -> List[Pattern]:
    stmt = select(Pattern).where(Pattern.user_id == user_id)
    if pattern_type:
        stmt = stmt.where(Pattern.pattern_type == pattern_type)
    stmt = stmt.order_by(desc(Pattern.frequency), desc(Pattern.last_seen), desc(Pattern.id)).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())

# --- Messages ---

async def save_message(session: AsyncSession, user_id: int, role: str, content: str, flow: str) -> Message:
    message = Message(user_id=user_id, role=role, content=content, flow=flow, created_at=utcnow())
    session.add(message)
    await session.flush()
    return message

async def get_recent_messages(session: AsyncSession, user_id: int, limit: int = 20) -> List[Message]:
    result = await session.execute(
        select(Message)
        .where(Message.user_id == user_id)
        .order_by(desc(Message.created_at), desc(Message.id))
        .limit(limit)
    )
    return list(result.scalars().all())

# --- Photos ---

async def save_photo(session: AsyncSession, user_id: int, photo_type: str, url: str, day: date) -> Photo:
    photo = Photo(user_id=user_id, type=photo_type, url=url, date=day)
    session.add(photo)
    await session.flush()
    return photo

async def get_baseline_photo(session: AsyncSession, user_id: int) -> Optional[Photo]:
    result = await session.execute(
        select(Photo)
        .where(Photo.user_id == user_id, Photo.type == "baseline")
        .order_by(desc(Photo.created_at), desc(Photo.id))
        .limit(1)
    )
    return result.scalar_one_or_none()

async def get_recent_photos(session: AsyncSession, user_id: int, limit: int = 7) -> List[Photo]:
    result = await session.execute(
        select(Photo)
        .where(Photo.user_id == user_id, Photo.type == "daily")
        .order_by(desc(Photo.date), desc(Photo.id))
        .limit(limit)
    )
    return list(result.scalars().all())
