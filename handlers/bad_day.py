import re
import logging
from datetime import date
from typing import Optional

from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Contract, User
from database import queries
from database.schemas import load_actions
from services import pattern_memory

logger = logging.getLogger(__name__)

BAD_DAY_TRIGGERS = [
    "bad day",
    "hard day",
    "rough day",
    "terrible day",
    "can't today",
    "struggling",
    "need a break",
    "downshift",
    "not feeling it",
    "overwhelmed",
    "exhausted",
    "burnt out",
    "burnout",
]

CALORIE_MULTIPLIER = 1.25
DEFAULT_CALORIES = 2000
DOWNSHIFT_MARK = "DOWNSHIFT"

# --- States ---
class BadDay(StatesGroup):
    awaiting_one_thing = State()

def detect_bad_day(text: str) -> bool:
    lower = text.lower().replace("’", "'")
    return any(t in lower for t in BAD_DAY_TRIGGERS)

def is_downshift_day(notes: Optional[str]) -> bool:
    return bool(notes) and DOWNSHIFT_MARK in notes

def calorie_target(contract: Contract) -> int:
    for action in load_actions(contract.binary_actions):
        if "calorie" in action.name.lower():
            match = re.search(r"(\d{3,4})", action.threshold or "")
            if match:
                return int(match.group(1))
    return DEFAULT_CALORIES

async def handle_bad_day(session: AsyncSession, state: FSMContext, user: User, contract: Contract, text: str, today: date) -> str:
    reason = text.strip() or "declared bad day"
    await pattern_memory.record(session, user, "bad_day", reason)
    await pattern_memory.extract_signals(session, user, reason)

    await queries.upsert_daily_log(session, user.id, today, notes=f"{DOWNSHIFT_MARK}: {reason}")
    await state.set_state(BadDay.awaiting_one_thing)

    base = calorie_target(contract)
    raised = round(base * CALORIE_MULTIPLIER)
    logger.info(f"Downshift active for user {user.id}: calories {base} -> {raised}")

    return (
        "Bad day acknowledged.\n\n"
        "Downshift protocol active:\n\n"
        f"✓ Calories: {raised} (up from {base})\n"
        "✓ Protein: STILL MANDATORY\n"
        "✓ Walk: Reduced to 5k minimum\n"
        "✓ Strength: Optional today\n"
        "✓ No shame escalation\n\n"
        "This is not failure. This is strategic retreat.\n\n"
        "What's the ONE thing you'll still accomplish today?"
    )

async def handle_downshift_completion(session: AsyncSession, state: FSMContext, user: User, text: str, today: date) -> str:
    one_thing = text.strip()
    await pattern_memory.record(session, user, "downshift_completion", one_thing)
    await queries.upsert_daily_log(session, user.id, today, notes=f"{DOWNSHIFT_MARK} completed: {one_thing}")
    await state.clear()

    return (
        f'Good. You did: "{one_thing}"\n\n'
        "On bad days, doing ONE thing is a win.\n\n"
        "Tomorrow we reset. Tonight, lock your plan as usual."
    )
