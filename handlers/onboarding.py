"""
Onboarding: name -> goal -> binary actions -> schedule -> shame level ->
contract confirmation. The step lives on the user row; the goal and parsed
actions collected along the way live in the flow session until the contract
is locked.
"""
import logging

from aiogram.fsm.context import FSMContext
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import User
from database import queries
from database.schemas import dump_actions, load_actions, total_possible
from services import prompts
from services.parsers import (
    DEFAULT_BINARY_ACTIONS, is_greeting, normalize_name, parse_binary_actions,
    parse_shame_level, parse_times,
)

logger = logging.getLogger(__name__)

DEFAULT_GOAL = "Fitness & Fat Loss"

def is_onboarding(user: User) -> bool:
    return not user.onboarding_complete

def default_actions() -> list:
    return [a.model_copy() for a in DEFAULT_BINARY_ACTIONS]

async def handle_onboarding(session: AsyncSession, state: FSMContext, user: User, text: str) -> str:
    step = user.onboarding_step or "start"

    if step == "start":
        await queries.update_user(session, user, onboarding_step="awaiting_name")
        return prompts.WELCOME

    handler = STEP_HANDLERS.get(step)
    if handler is None:
        logger.warning(f"User {user.id} had unknown onboarding step '{step}', restarting")
        await queries.update_user(session, user, onboarding_step="awaiting_name")
        return prompts.WELCOME

    return await handler(session, state, user, text)

async def handle_name(session: AsyncSession, state: FSMContext, user: User, text: str) -> str:
    if is_greeting(text):
        return prompts.NAME_AGAIN

    name = normalize_name(text)
    await queries.update_user(session, user, name=name, onboarding_step="awaiting_goal")
    return prompts.name_received(name)

async def handle_goal(session: AsyncSession, state: FSMContext, user: User, text: str) -> str:
    goal = text.strip()
    await state.update_data(goal=goal)
    await queries.update_user(session, user, onboarding_step="awaiting_actions")
    return prompts.goal_received(goal)

async def handle_actions(session: AsyncSession, state: FSMContext, user: User, text: str) -> str:
    actions = parse_binary_actions(text)
    if not actions:
        logger.info(f"No actions parsed for user {user.id}, using default template")
        actions = default_actions()

    await state.update_data(binary_actions=dump_actions(actions))
    await queries.update_user(session, user, onboarding_step="awaiting_times")
    return prompts.TIMES_SETUP

async def handle_times(session: AsyncSession, state: FSMContext, user: User, text: str) -> str:
    parsed = parse_times(text)
    schedule = parsed.value

    await state.update_data(schedule_defaults=parsed.defaulted)
    await queries.update_user(
        session,
        user,
        onboarding_step="awaiting_shame_level",
        wake_time=schedule.wake,
        sleep_time=schedule.sleep,
        eating_window_start=schedule.eating_start,
        eating_window_end=schedule.eating_end,
        risk_times=list(schedule.danger_times),
    )
    return prompts.SHAME_LEVEL

async def handle_shame_level(session: AsyncSession, state: FSMContext, user: User, text: str) -> str:
    level = parse_shame_level(text)
    await queries.update_user(session, user, onboarding_step="awaiting_contract_confirm", shame_level=level)

    data = await state.get_data()
    return prompts.contract_review(contract_text(user, data))

async def handle_contract_confirm(session: AsyncSession, state: FSMContext, user: User, text: str) -> str:
    if text.strip().upper() != "LOCKED":
        return prompts.CONTRACT_CHANGE

    data = await state.get_data()
    if "goal" not in data or "binary_actions" not in data:
        # Answers expired with the flow session
        logger.warning(f"User {user.id} confirmed a contract with no stored answers, back to goal")
        await queries.update_user(session, user, onboarding_step="awaiting_goal")
        return prompts.CONTRACT_EXPIRED

    actions = load_actions(data["binary_actions"])
    await queries.create_contract(
        session,
        user.id,
        data["goal"] or DEFAULT_GOAL,
        actions,
        contract_text(user, data),
    )
    await queries.update_user(session, user, onboarding_complete=True, onboarding_step="complete")
    await state.clear()

    logger.info(f"User {user.id} locked a contract with {len(actions)} actions")
    return prompts.ONBOARDING_COMPLETE

def contract_text(user: User, data: dict) -> str:
    actions = load_actions(data.get("binary_actions")) or default_actions()
    action_list = "\n".join(f"- {a.name}: {a.threshold} ({a.points} pts)" for a in actions)
    defaults = data.get("schedule_defaults") or []
    defaulted_note = f"\n(Defaults used for: {', '.join(defaults)})" if defaults else ""
    risk_times = user.risk_times or ["21:00"]

    return f"""BEHAVIORAL CONTRACT

GOAL: {data.get('goal') or DEFAULT_GOAL}

DAILY BINARY ACTIONS (Total: {total_possible(actions)} points possible):
{action_list}

SCHEDULE:
- Wake: {user.wake_time or '07:00'}
- Sleep: {user.sleep_time or '22:00'}
- Eating Window: {user.eating_window_start or '12:00'} - {user.eating_window_end or '20:00'}
- Danger Times: {', '.join(risk_times)}{defaulted_note}

ACCOUNTABILITY:
- Shame Level: {user.shame_level}/3
- Loss Aversion: {'ENABLED (7 tokens/week)' if user.loss_aversion_enabled else 'Disabled'}

RULES:
1. Nightly lock is MANDATORY
2. No renegotiation mid-week
3. Bad days allowed via downshift protocol
4. Quitting is not allowed

Duration: 7 days from confirmation"""

STEP_HANDLERS = {
    "awaiting_name": handle_name,
    "awaiting_goal": handle_goal,
    "awaiting_actions": handle_actions,
    "awaiting_times": handle_times,
    "awaiting_shame_level": handle_shame_level,
    "awaiting_contract_confirm": handle_contract_confirm,
}
