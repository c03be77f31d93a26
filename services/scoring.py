import re
import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Contract, DailyLog, User
from database import queries
from database.schemas import load_actions, total_possible

logger = logging.getLogger(__name__)

NEGATIVE_WORDS = re.compile(r"\b(?:missed|skip(?:ped)?|didn'?t|failed|no)\b")
STEP_GOAL = 10000

@dataclass
class ScoreUpdate:
    action: str
    completed: bool
    value: Optional[Union[int, str]] = None

@dataclass
class ScoreResult:
    new_score: int
    total_possible: int
    message: str
    applied: bool = True

def parse_score_update(text: str, contract: Contract) -> Optional[ScoreUpdate]:
    """
    Reads a single-action report like 'did my walk', 'missed protein',
    '1800 calories', '150g protein' or '12000 steps'.
    """
    lower = text.lower()
    completed = not NEGATIVE_WORDS.search(lower)

    for action in load_actions(contract.binary_actions):
        name = action.name.lower()
        words = name.split("_")
        if (
            name in lower
            or name.replace("_", " ") in lower
            or any(len(w) > 3 and w in lower for w in words)
        ):
            return ScoreUpdate(action=action.name, completed=completed)

    calories = re.search(r"\b(\d{3,4})\s*(?:cal|kcal|calories)", lower)
    if calories:
        return ScoreUpdate(action="calories", completed=True, value=int(calories.group(1)))

    protein = re.search(r"\b(\d{2,3})\s*(?:g|gram|protein)", lower)
    if protein:
        return ScoreUpdate(action="protein", completed=True, value=int(protein.group(1)))

    steps = re.search(r"\b(\d{4,5})\s*(?:steps|k)", lower)
    if steps:
        count = int(steps.group(1))
        return ScoreUpdate(action="walk", completed=count >= STEP_GOAL, value=count)

    return None

async def update_score(session: AsyncSession, user: User, contract: Contract, update: ScoreUpdate, day: date) -> ScoreResult:
    actions = load_actions(contract.binary_actions)
    action = next((a for a in actions if a.name.lower() == update.action.lower()), None)

    if action is None:
        return ScoreResult(
            new_score=0,
            total_possible=0,
            message=f"Unknown action: {update.action}. Your contract tracks: {', '.join(a.name for a in actions)}",
            applied=False,
        )

    log = await queries.get_daily_log(session, user.id, day)
    scores = dict(log.scores or {}) if log else {}
    scores[action.name] = action.points if update.completed else 0
    total = sum(scores.values())
    possible = total_possible(actions)

    await queries.upsert_daily_log(session, user.id, day, scores=scores, total_score=total)

    emoji = "✓" if update.completed else "✗"
    earned = action.points if update.completed else 0
    message = f"{emoji} {action.name}: {earned}/{action.points} pts\n\nToday: {total}/{possible}"
    return ScoreResult(new_score=total, total_possible=possible, message=message)

async def current_scorecard(session: AsyncSession, user: User, contract: Contract, day: date) -> str:
    actions = load_actions(contract.binary_actions)
    log = await queries.get_daily_log(session, user.id, day)
    scores = (log.scores or {}) if log else {}

    lines = []
    for action in actions:
        score = scores.get(action.name, 0)
        emoji = "✓" if score > 0 else "○"
        lines.append(f"{emoji} {action.name}: {score}/{action.points}")

    current = log.total_score if log else 0
    return "Today's scorecard:\n\n" + "\n".join(lines) + f"\n\nTotal: {current}/{total_possible(actions)}"

def weekly_percentage(logs: List[DailyLog], possible: int) -> int:
    max_possible = len(logs) * possible
    if max_possible == 0:
        return 0
    # Nearest integer, halves round up
    return int(sum(l.total_score for l in logs) * 100 / max_possible + 0.5)

def problem_areas(logs: List[DailyLog], contract: Contract, min_misses: int = 3) -> List[tuple]:
    missed = {}
    for log in logs:
        scores = log.scores or {}
        for action in load_actions(contract.binary_actions):
            if not scores.get(action.name):
                missed[action.name] = missed.get(action.name, 0) + 1
    return [(name, count) for name, count in missed.items() if count >= min_misses]

async def weekly_report(session: AsyncSession, user: User, contract: Contract, today: date) -> str:
    logs = await queries.get_recent_logs(session, user.id, today, days=7)
    possible = total_possible(load_actions(contract.binary_actions))

    if not logs:
        return "No data for this week yet."

    report = "Weekly Report:\n\n"
    for log in reversed(logs):
        locked = "🔒" if log.tomorrow_locked else "○"
        report += f"{log.date.isoformat()}: {log.total_score}/{possible} {locked}\n"

    scored = sum(l.total_score for l in logs)
    locked_count = sum(1 for l in logs if l.tomorrow_locked)
    report += f"\n---\nWeek: {scored}/{len(logs) * possible} ({weekly_percentage(logs, possible)}%)"
    report += f"\nLocked nights: {locked_count}/{len(logs)}"

    problems = problem_areas(logs, contract)
    if problems:
        report += "\n\n⚠️ Problem areas: " + ", ".join(f"{name} (missed {count}x)" for name, count in problems)

    return report
