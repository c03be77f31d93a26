import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import async_sessionmaker

from database.models import User
from database import queries
from handlers.morning import build_morning_messages
from services import prompts
from services.messenger import Messenger
from services.openai_service import OpenAIService
from services.parsers import parse_hhmm

logger = logging.getLogger(__name__)

REMINDER_LEAD_HOURS = 2

def nightly_reminder_time(sleep_time: str) -> str:
    """Two hours before sleep, wrapping past midnight."""
    hours, minutes = parse_hhmm(sleep_time)
    return f"{(hours - REMINDER_LEAD_HOURS) % 24:02d}:{minutes:02d}"

def next_run(hhmm: str, tz: str, now: Optional[datetime] = None) -> datetime:
    zone = ZoneInfo(tz or "UTC")
    now = now.astimezone(zone) if now else datetime.now(zone)
    hours, minutes = parse_hhmm(hhmm)
    target = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return target

def delay_until(target: datetime, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(timezone.utc)
    # Compare in UTC so DST shifts are counted
    return max(0.0, (target.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds())

def seconds_until(hhmm: str, tz: str, now: Optional[datetime] = None) -> float:
    return delay_until(next_run(hhmm, tz, now), now)

def run_after(hhmm: str, tz: str, previous: datetime, now: Optional[datetime] = None) -> datetime:
    """The slot after `previous`, or after `now` once the clock has passed it."""
    now = now or datetime.now(timezone.utc)
    return next_run(hhmm, tz, max(previous, now))

Job = Callable[[int], Awaitable[None]]

class CoachScheduler:
    """
    Per-user daily jobs as asyncio tasks: morning message at wake time,
    nightly-lock reminder before sleep, one intercept per risk time.
    Tasks live in memory and are rebuilt from the database on start.
    """

    def __init__(self, session_factory: async_sessionmaker, messenger: Messenger, llm: Optional[OpenAIService] = None):
        self.session_factory = session_factory
        self.messenger = messenger
        self.llm = llm
        self.jobs: Dict[int, List[asyncio.Task]] = {}

    async def start(self):
        async with self.session_factory() as session:
            users = await queries.get_onboarded_users(session)
        for user in users:
            self.schedule_user_jobs(user)
        logger.info(f"Scheduler started for {len(users)} users")

    def schedule_user_jobs(self, user: User):
        self.cancel_user_jobs(user.id)

        tz = user.timezone or "UTC"
        wake = user.wake_time or "07:00"
        reminder = nightly_reminder_time(user.sleep_time or "22:00")

        tasks = [
            self._spawn(user.id, tz, wake, "morning", self.morning_job),
            self._spawn(user.id, tz, reminder, "nightly_reminder", self.nightly_reminder_job),
        ]
        for risk_time in user.risk_times or []:
            tasks.append(self._spawn(user.id, tz, risk_time, f"risk_{risk_time}", self._risk_job(risk_time)))

        self.jobs[user.id] = tasks
        logger.info(f"Scheduled {len(tasks)} jobs for user {user.id} ({tz})")

    def cancel_user_jobs(self, user_id: int):
        for task in self.jobs.pop(user_id, []):
            task.cancel()

    async def shutdown(self):
        tasks = [t for user_tasks in self.jobs.values() for t in user_tasks]
        for task in tasks:
            task.cancel()
        self.jobs.clear()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, user_id: int, tz: str, hhmm: str, label: str, job: Job) -> asyncio.Task:
        return asyncio.create_task(self._run_daily(user_id, tz, hhmm, label, job), name=f"{label}:{user_id}")

    async def _run_daily(self, user_id: int, tz: str, hhmm: str, label: str, job: Job):
        target = next_run(hhmm, tz)
        try:
            while True:
                await asyncio.sleep(delay_until(target))
                try:
                    await job(user_id)
                except Exception as e:
                    # One user's failure never stops the loop
                    logger.exception(f"Job {label} failed for user {user_id}: {e}")
                target = run_after(hhmm, tz, target)
        except asyncio.CancelledError:
            logger.info(f"Job {label} cancelled for user {user_id}")
            raise

    # --- Jobs ---

    async def morning_job(self, user_id: int):
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                return
            outbound = await build_morning_messages(session, user, queries.local_today(user), self.llm)
            await session.commit()

        for text, media_url in outbound:
            await self.messenger.send_message(user.phone, text, media_url)

    async def nightly_reminder_job(self, user_id: int):
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
        if user is not None:
            await self.messenger.send_message(user.phone, prompts.NIGHTLY_REMINDER)

    def _risk_job(self, risk_time: str) -> Job:
        async def job(user_id: int):
            async with self.session_factory() as session:
                user = await session.get(User, user_id)
            if user is not None:
                await self.messenger.send_message(user.phone, prompts.risk_intercept(risk_time))
        return job
