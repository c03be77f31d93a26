"""
Morning message: looks back at yesterday (locked plan, token losses, shame
escalation) and returns what to send, in order, as (text, media_url) pairs.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import User
from database import queries
from database.schemas import TomorrowPlan, load_actions, total_possible
from handlers.bad_day import is_downshift_day
from handlers.nightly_lock import plan_summary
from services import prompts, shame, token_ledger
from services.openai_service import ConversationContext, OpenAIService

logger = logging.getLogger(__name__)

Outbound = Tuple[str, Optional[str]]

async def build_morning_messages(session: AsyncSession, user: User, today: date, llm: Optional[OpenAIService] = None) -> List[Outbound]:
    contract = await queries.get_active_contract(session, user.id)
    if contract is None:
        return []

    yesterday = today - timedelta(days=1)
    log = await queries.get_daily_log(session, user.id, yesterday)
    possible = total_possible(load_actions(contract.binary_actions))
    name = user.name or "there"

    if log and log.tomorrow_locked and log.tomorrow_plan:
        plan = TomorrowPlan.model_validate(log.tomorrow_plan)
        if llm is not None:
            context = ConversationContext(user=user, contract=contract, current_flow="morning")
            greeting = await llm.generate_flow_response(context, prompts.morning_flow(plan.model_dump()))
        else:
            greeting = (
                f"Good morning, {name}.\n\n"
                f"Last night you decided:\n\n{plan_summary(plan)}\n\n"
                "You don't need to decide anything today. Just execute."
            )
    else:
        greeting = (
            f"Good morning, {name}.\n\n"
            "You didn't lock last night. No plan means you're improvising today. "
            "Send \"lock\" tonight."
        )
    outbound: List[Outbound] = [(greeting, None)]

    # Once per evaluated date
    if not await token_ledger.already_evaluated(session, user, yesterday):
        for msg in await token_ledger.check_daily_failures(session, user, log, yesterday, possible):
            outbound.append((msg, None))

    if log and is_downshift_day(log.notes):
        return outbound

    logs = await queries.get_recent_logs(session, user.id, yesterday, days=7)
    patterns = await queries.get_user_patterns(session, user.id, limit=20)
    escalation = shame.determine_escalation(user.shame_level, logs, patterns)
    if escalation is None:
        return outbound

    logger.info(f"Shame tier {escalation.level} ({escalation.trigger}) for user {user.id}")
    outbound.append((shame.escalation_message(escalation), None))
    outbound.extend(await escalation_photos(session, user, escalation))
    return outbound

async def escalation_photos(session: AsyncSession, user: User, escalation: shame.Escalation) -> List[Outbound]:
    photos: List[Outbound] = []
    if escalation.show_baseline:
        baseline = await queries.get_baseline_photo(session, user.id)
        if baseline:
            photos.append((f"Day one: {baseline.date}", baseline.url))
    if escalation.show_recent:
        recent = await queries.get_recent_photos(session, user.id, limit=7)
        if recent:
            photos.append((f"Latest: {recent[0].date}", recent[0].url))
    return photos
