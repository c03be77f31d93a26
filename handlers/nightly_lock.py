import logging
from datetime import date

from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Contract, User
from database import queries
from database.schemas import TomorrowPlan, load_actions, total_possible
from services import pattern_memory, prompts
from services.parsers import find_time_mention, match_actions, parse_tomorrow_plan
from services.session_store import in_group

logger = logging.getLogger(__name__)

# --- States ---
class NightlyLock(StatesGroup):
    scoring = State()
    miss_reason = State()
    planning = State()
    confirm = State()

async def is_in_nightly_lock(state: FSMContext) -> bool:
    return in_group(await state.get_state(), NightlyLock)

async def handle_nightly_lock(session: AsyncSession, state: FSMContext, user: User, contract: Contract, text: str, today: date) -> str:
    current = await state.get_state()

    if current == NightlyLock.scoring.state:
        return await process_scoring(session, state, user, contract, text, today)
    if current == NightlyLock.miss_reason.state:
        return await process_miss_reason(session, state, user, text)
    if current == NightlyLock.planning.state:
        return await process_planning(state, text)
    if current == NightlyLock.confirm.state:
        return await process_confirm(session, state, user, contract, text, today)

    return await start_nightly_lock(state, contract, today)

async def start_nightly_lock(state: FSMContext, contract: Contract, today: date) -> str:
    await state.set_state(NightlyLock.scoring)
    # Scores and the lock belong to the day the lock started, even past midnight
    await state.set_data({"lock_day": today.isoformat()})
    names = [a.name for a in load_actions(contract.binary_actions)]
    return prompts.nightly_lock_start(names)

def lock_day(data: dict, today: date) -> date:
    started = data.get("lock_day")
    return date.fromisoformat(started) if started else today

async def process_scoring(session: AsyncSession, state: FSMContext, user: User, contract: Contract, text: str, today: date) -> str:
    actions = load_actions(contract.binary_actions)
    names = [a.name for a in actions]
    lower = text.strip().lower()

    if lower == "all":
        completed, missed = names, []
    elif lower == "none":
        completed, missed = [], names
    else:
        completed, missed = match_actions(lower, names)

    scores = {a.name: (a.points if a.name in completed else 0) for a in actions}
    total = sum(scores.values())
    day = lock_day(await state.get_data(), today)
    await queries.upsert_daily_log(session, user.id, day, scores=scores, total_score=total)

    await state.update_data(today_scores=scores, missed_items=missed)

    if missed:
        await state.set_state(NightlyLock.miss_reason)
        return prompts.nightly_lock_reason(missed)

    await state.set_state(NightlyLock.planning)
    return f"Perfect day. {total}/{total_possible(actions)}.\n\n{prompts.NIGHTLY_LOCK_PLAN}"

async def process_miss_reason(session: AsyncSession, state: FSMContext, user: User, text: str) -> str:
    reason = text.strip()
    await pattern_memory.record(session, user, "miss_reason", reason)

    failure_time = find_time_mention(reason)
    if failure_time:
        await pattern_memory.record(session, user, "failure_time", failure_time)

    lower = reason.lower()
    for word in pattern_memory.EMOTION_WORDS:
        if word in lower:
            await pattern_memory.record(session, user, "emotion", word)

    await state.update_data(miss_reason=reason)
    await state.set_state(NightlyLock.planning)
    return f'Noted: "{reason}"\n\n{prompts.NIGHTLY_LOCK_PLAN}'

def plan_summary(plan: TomorrowPlan, defaulted=None) -> str:
    summary = (
        f"📍 Eating: {plan.eating_window}\n"
        f"🍽️ First meal: {plan.first_meal}\n"
        f"🚶 Walk: {plan.walk_time}\n"
        f"💪 Strength: {'YES' if plan.strength else 'NO'}\n"
        f"⚠️ Danger: {plan.danger_moment}"
    )
    if defaulted:
        summary += f"\n\n(Not given, defaulted: {', '.join(defaulted)})"
    return summary

async def process_planning(state: FSMContext, text: str) -> str:
    parsed = parse_tomorrow_plan(text)
    await state.update_data(tomorrow_plan=parsed.value.model_dump())
    await state.set_state(NightlyLock.confirm)
    return f"Tomorrow's plan:\n\n{plan_summary(parsed.value, parsed.defaulted)}\n\nReply \"LOCKED\" to confirm."

async def process_confirm(session: AsyncSession, state: FSMContext, user: User, contract: Contract, text: str, today: date) -> str:
    if text.strip().upper() != "LOCKED":
        await state.set_state(NightlyLock.planning)
        return prompts.NIGHTLY_LOCK_REENTER

    data = await state.get_data()
    await queries.upsert_daily_log(
        session,
        user.id,
        lock_day(data, today),
        tomorrow_locked=True,
        tomorrow_plan=data.get("tomorrow_plan"),
        miss_reason=data.get("miss_reason"),
    )
    await state.clear()

    score = sum((data.get("today_scores") or {}).values())
    possible = total_possible(load_actions(contract.binary_actions))
    logger.info(f"User {user.id} locked tomorrow with today at {score}/{possible}")

    return (
        "Locked. ✓\n\n"
        f"Today: {score}/{possible}\n"
        "Tomorrow is already decided.\n\n"
        "Sleep well. I'll remind you in the morning."
    )
