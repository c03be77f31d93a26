"""
Shame escalation: picks at most one accountability tier from recent history.

Rules are evaluated in a fixed order and the first match wins. A shame level
of 0 turns the whole thing off.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from database.models import DailyLog, Pattern
from services.pattern_memory import top_excuse

FAILED_DAY_SCORE = 5

@dataclass
class Escalation:
    level: int
    trigger: str
    message: str
    action_required: str
    show_baseline: bool
    show_recent: bool

@dataclass
class EscalationSignals:
    shame_level: int
    failed_days: int
    consecutive_failures: int
    repeat_excuse: Optional[Pattern]

def count_failed_days(logs: Sequence[DailyLog]) -> int:
    return sum(1 for log in logs if (log.total_score or 0) < FAILED_DAY_SCORE)

def count_consecutive_failures(logs: Sequence[DailyLog]) -> int:
    """Failures counted from the newest log backwards, stopping at the first good day."""
    count = 0
    for log in logs:
        if (log.total_score or 0) < FAILED_DAY_SCORE:
            count += 1
        else:
            break
    return count

def _tier_three(s: EscalationSignals) -> Escalation:
    return Escalation(
        level=3,
        trigger="severe_pattern",
        message=f"{s.failed_days} days below target this week. Look at these photos. Nothing changed. "
                "The only person who can change this is you.",
        action_required="Tell me what you're going to do RIGHT NOW.",
        show_baseline=True,
        show_recent=True,
    )

def _tier_two(s: EscalationSignals) -> Escalation:
    excuse = s.repeat_excuse.content if s.repeat_excuse else "no clear reason"
    if s.repeat_excuse:
        times = f"You've used this excuse {s.repeat_excuse.frequency} times"
    else:
        times = f"{s.consecutive_failures} failed days in a row"
    return Escalation(
        level=2,
        trigger="repeat_failure",
        message=f'{times}. The excuse: "{excuse}". Same pattern, same result.',
        action_required="What will you do TODAY to break this pattern?",
        show_baseline=True,
        show_recent=True,
    )

def _tier_one(s: EscalationSignals) -> Escalation:
    return Escalation(
        level=1,
        trigger="single_slip",
        message="You slipped. Remember where you started.",
        action_required="What's the ONE thing you'll do differently today?",
        show_baseline=True,
        show_recent=False,
    )

TIERS: List[tuple] = [
    (lambda s: s.shame_level >= 3 and s.failed_days >= 4, _tier_three),
    (lambda s: s.shame_level >= 2 and (s.consecutive_failures >= 2 or s.repeat_excuse is not None), _tier_two),
    (lambda s: s.shame_level >= 1 and 1 <= s.failed_days <= 2, _tier_one),
]

def determine_escalation(
    shame_level: int,
    recent_logs: Sequence[DailyLog],
    patterns: Sequence[Pattern],
) -> Optional[Escalation]:
    """`recent_logs` must be ordered newest first."""
    if not shame_level:
        return None

    signals = EscalationSignals(
        shame_level=shame_level,
        failed_days=count_failed_days(recent_logs),
        consecutive_failures=count_consecutive_failures(recent_logs),
        repeat_excuse=top_excuse(list(patterns)),
    )

    for predicate, build in TIERS:
        if predicate(signals):
            return build(signals)
    return None

def escalation_message(escalation: Escalation) -> str:
    return f"{escalation.message}\n\n{escalation.action_required}"
