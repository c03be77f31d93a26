"""
Inbound message routing.

`MessageDispatcher.process_inbound` is the request boundary: one database
session per message, one reply, and nothing ever raises past it. `route`
picks exactly one flow; the order of the checks below is the routing
priority, first match wins.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Awaitable, Callable, List, Optional, Tuple

from aiogram.fsm.context import FSMContext
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.models import Contract, User
from database import queries
from handlers.bad_day import BadDay, detect_bad_day, handle_bad_day, handle_downshift_completion
from handlers.nightly_lock import handle_nightly_lock, is_in_nightly_lock
from handlers.onboarding import handle_onboarding, is_onboarding
from handlers.photos import handle_photo
from services import pattern_memory, prompts, scoring, token_ledger
from services.messenger import Messenger
from services.openai_service import ConversationContext, OpenAIService
from services.pattern_memory import detect_rationalization, rationalization_response
from services.session_store import DEFAULT_TTL, flow_context

logger = logging.getLogger(__name__)

Reply = Tuple[str, str]  # (text, flow name)

@dataclass
class Turn:
    """Everything a route needs for one inbound message."""
    session: AsyncSession
    state: FSMContext
    state_name: Optional[str]
    user: User
    contract: Contract
    text: str
    today: date
    llm: OpenAIService

    @property
    def command(self) -> str:
        return self.text.strip().lower()

# --- Predicates ---

def is_lock_command(turn: Turn) -> bool:
    return turn.command in ("lock", "nightly") or "lock tomorrow" in turn.command

def is_status_command(turn: Turn) -> bool:
    return turn.command in ("status", "score") or "how am i" in turn.command

def is_week_command(turn: Turn) -> bool:
    return turn.command in ("week", "weekly") or "weekly report" in turn.command

def is_tokens_command(turn: Turn) -> bool:
    return "token" in turn.command

def is_awaiting_one_thing(turn: Turn) -> bool:
    return turn.state_name == BadDay.awaiting_one_thing.state

def is_bad_day(turn: Turn) -> bool:
    return detect_bad_day(turn.text)

def is_rationalization(turn: Turn) -> bool:
    return detect_rationalization(turn.text) is not None

def is_score_update(turn: Turn) -> bool:
    return scoring.parse_score_update(turn.text, turn.contract) is not None

# --- Handlers ---

async def start_lock(turn: Turn) -> Reply:
    return await handle_nightly_lock(turn.session, turn.state, turn.user, turn.contract, "", turn.today), "nightly_lock"

async def show_status(turn: Turn) -> Reply:
    return await scoring.current_scorecard(turn.session, turn.user, turn.contract, turn.today), "status"

async def show_week(turn: Turn) -> Reply:
    return await scoring.weekly_report(turn.session, turn.user, turn.contract, turn.today), "weekly"

async def show_tokens(turn: Turn) -> Reply:
    status = await token_ledger.get_token_status(turn.session, turn.user, turn.today)
    return token_ledger.token_status_message(status), "tokens"

async def finish_downshift(turn: Turn) -> Reply:
    return await handle_downshift_completion(turn.session, turn.state, turn.user, turn.text, turn.today), "bad_day"

async def start_bad_day(turn: Turn) -> Reply:
    return await handle_bad_day(turn.session, turn.state, turn.user, turn.contract, turn.text, turn.today), "bad_day"

async def confront_rationalization(turn: Turn) -> Reply:
    phrase = detect_rationalization(turn.text)
    return await rationalization_response(turn.session, turn.user, turn.text, phrase), "rationalization"

async def apply_score_update(turn: Turn) -> Reply:
    update = scoring.parse_score_update(turn.text, turn.contract)
    result = await scoring.update_score(turn.session, turn.user, turn.contract, update, turn.today)
    return result.message, "score"

async def log_score_unparsed(turn: Turn) -> Reply:
    return prompts.LOG_SCORE_UNPARSED, "score"

async def refuse_skip(turn: Turn) -> Reply:
    return prompts.NO_SKIP, "general"

async def photo_hint(turn: Turn) -> Reply:
    return prompts.PHOTO_HINT, "photo"

async def converse(turn: Turn) -> Reply:
    context = await build_context(turn.session, turn.user, turn.contract, turn.today, "general")
    return await turn.llm.generate_response(turn.text, context), "general"

RouteHandler = Callable[[Turn], Awaitable[Reply]]

ROUTES: List[Tuple[Callable[[Turn], bool], RouteHandler]] = [
    (is_lock_command, start_lock),
    (is_status_command, show_status),
    (is_week_command, show_week),
    (is_tokens_command, show_tokens),
    (is_awaiting_one_thing, finish_downshift),
    (is_bad_day, start_bad_day),
    (is_rationalization, confront_rationalization),
    (is_score_update, apply_score_update),
]

INTENT_HANDLERS = {
    "LOG_SCORE": log_score_unparsed,
    "BAD_DAY": start_bad_day,
    "QUESTION": converse,
    "GENERAL": converse,
    "LOCK_TOMORROW": start_lock,
    "CHECK_STATUS": show_status,
    "SKIP": refuse_skip,
    "PHOTO": photo_hint,
}

async def build_context(session: AsyncSession, user: User, contract: Optional[Contract], today: date, flow: str) -> ConversationContext:
    memory = await pattern_memory.build_memory_context(session, user)
    return ConversationContext(
        user=user,
        contract=contract,
        recent_logs=await queries.get_recent_logs(session, user.id, today, days=7),
        patterns=memory.patterns[:10],
        recent_messages=memory.recent_messages[:10],
        current_flow=flow,
        additional_context=pattern_memory.memory_notes(memory),
    )

class MessageDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        messenger: Messenger,
        llm: OpenAIService,
        scheduler=None,
        session_ttl: Optional[timedelta] = DEFAULT_TTL,
        default_timezone: str = "America/Los_Angeles",
    ):
        self.session_factory = session_factory
        self.messenger = messenger
        self.llm = llm
        self.scheduler = scheduler
        self.session_ttl = session_ttl
        self.default_timezone = default_timezone

    async def process_inbound(self, sender: str, text: str, media_url: Optional[str] = None) -> Optional[str]:
        """Handles one inbound message end to end. Returns the reply sent, or None on failure."""
        text = text or ""
        try:
            async with self.session_factory() as session:
                user = await queries.get_or_create_user(session, sender, self.default_timezone)
                reply, flow = await self.route(session, user, text, media_url)
                await session.commit()

                await self.messenger.send_message(sender, reply)

                # Logged only once the reply is out
                await queries.save_message(session, user.id, "user", text or "[photo]", flow)
                await queries.save_message(session, user.id, "assistant", reply, flow)
                await session.commit()
                return reply
        except Exception as e:
            logger.exception(f"Error handling message from {sender}: {e}")
            try:
                await self.messenger.send_message(sender, prompts.GENERIC_FAILURE)
            except Exception as send_error:
                logger.error(f"Could not send failure notice to {sender}: {send_error}")
            return None

    async def route(self, session: AsyncSession, user: User, text: str, media_url: Optional[str] = None) -> Reply:
        today = queries.local_today(user)

        if media_url:
            return await handle_photo(session, user, media_url, today), "photo"

        state = flow_context(session, user.id, self.session_ttl)

        if is_onboarding(user):
            reply = await handle_onboarding(session, state, user, text)
            if user.onboarding_complete and self.scheduler is not None:
                self.scheduler.schedule_user_jobs(user)
            return reply, "onboarding"

        contract = await queries.get_active_contract(session, user.id)
        if contract is None:
            return prompts.NO_CONTRACT, "none"

        # Escape hatch, works mid-flow
        if text.strip().lower() == "reset":
            await state.clear()
            return prompts.RESET_DONE, "reset"

        if await is_in_nightly_lock(state):
            return await handle_nightly_lock(session, state, user, contract, text, today), "nightly_lock"

        turn = Turn(
            session=session,
            state=state,
            state_name=await state.get_state(),
            user=user,
            contract=contract,
            text=text,
            today=today,
            llm=self.llm,
        )

        for predicate, handler in ROUTES:
            if predicate(turn):
                return await handler(turn)

        intent = await self.llm.classify_intent(text)
        logger.info(f"Intent for user {user.id}: {intent}")
        return await INTENT_HANDLERS.get(intent, converse)(turn)
