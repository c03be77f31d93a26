"""
Free-text parsers for the coach flows.

Nothing here raises on bad input. Fields the user did not give fall back to
fixed defaults, and the structured parsers report which fields were matched
and which were defaulted so the flows can show the difference.
"""
import re
from dataclasses import dataclass, field
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar

from database.schemas import BinaryAction, Schedule, TomorrowPlan

T = TypeVar("T")

# '9pm', '6:30am', '21:00', '7 am', '9 30pm'
TIME_TOKEN = r"\d{1,2}(?:[:\s]?\d{2})?\s*(?:am|pm)?"
RANGE_SEP = r"\s*(?:-|–|to)\s*"

GREETINGS = ["hi", "hello", "hey", "yo", "sup", "hola", "start", "begin"]

DEFAULT_BINARY_ACTIONS = [
    BinaryAction(name="calories", threshold="under target", points=2),
    BinaryAction(name="protein", threshold="hit target", points=2),
    BinaryAction(name="walk", threshold="10k steps", points=1),
    BinaryAction(name="strength", threshold="completed", points=1),
    BinaryAction(name="creatine", threshold="taken", points=1),
    BinaryAction(name="fasting", threshold="in window", points=1),
    BinaryAction(name="weigh_in", threshold="done", points=1),
    BinaryAction(name="photo", threshold="taken", points=1),
]

THRESHOLD_WORDS = {"under", "over", "at", "least", "min", "max", "hit", "done", "completed", "by", "before", "after"}

PLAN_KEYWORDS = r"(?:eat|eating|first|walk|strength|danger)\b"

@dataclass
class ParseResult(Generic[T]):
    value: T
    matched: List[str] = field(default_factory=list)
    defaulted: List[str] = field(default_factory=list)

# --- Times ---

def normalize_time(raw: str) -> Optional[str]:
    """'9pm' -> '21:00', '12am' -> '00:00', '6:30' -> '06:30'. None if not a clock time."""
    cleaned = re.sub(r"\s+", "", (raw or "").lower())
    match = re.fullmatch(r"(\d{1,2})(?::?(\d{2}))?(am|pm)?", cleaned)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    meridiem = match.group(3)

    if meridiem == "pm" and hours < 12:
        hours += 12
    if meridiem == "am" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"

def parse_hhmm(value: str) -> Tuple[int, int]:
    hours, minutes = value.split(":")
    return int(hours), int(minutes)

def find_time_mention(text: str) -> Optional[str]:
    """First explicit clock time (needs am/pm or a colon) as 'HH:MM'."""
    match = re.search(r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b|\b\d{1,2}:\d{2}\b", text.lower())
    if not match:
        return None
    return normalize_time(match.group(0))

def find_time_mentions(text: str) -> List[str]:
    found = re.findall(r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b|\b\d{1,2}:\d{2}\b", text.lower())
    return [t for t in (normalize_time(f) for f in found) if t]

def parse_times(text: str) -> ParseResult[Schedule]:
    schedule = Schedule()
    result = ParseResult(value=schedule)
    lower = (text or "").lower()

    wake = re.search(rf"wake[:\s]*({TIME_TOKEN})", lower)
    wake_time = normalize_time(wake.group(1)) if wake else None
    if wake_time:
        schedule.wake = wake_time
        result.matched.append("wake")
    else:
        result.defaulted.append("wake")

    sleep = re.search(rf"sleep[:\s]*({TIME_TOKEN})", lower)
    sleep_time = normalize_time(sleep.group(1)) if sleep else None
    if sleep_time:
        schedule.sleep = sleep_time
        result.matched.append("sleep")
    else:
        result.defaulted.append("sleep")

    eating = re.search(rf"eating(?:\s+window)?[:\s]*({TIME_TOKEN}){RANGE_SEP}({TIME_TOKEN})", lower)
    start = normalize_time(eating.group(1)) if eating else None
    end = normalize_time(eating.group(2)) if eating else None
    if start and end:
        schedule.eating_start = start
        schedule.eating_end = end
        result.matched.append("eating_window")
    else:
        result.defaulted.append("eating_window")

    danger = re.search(r"danger[:\s]*(.+?)(?:\n|$)", lower)
    danger_times = []
    if danger:
        danger_times = [t for t in (normalize_time(d) for d in re.findall(TIME_TOKEN, danger.group(1))) if t]
    if danger_times:
        schedule.danger_times = danger_times
        result.matched.append("danger_times")
    else:
        result.defaulted.append("danger_times")

    return result

# --- Onboarding fields ---

def is_greeting(text: str) -> bool:
    lower = text.strip().lower()
    return lower in GREETINGS or len(lower) < 4

def normalize_name(text: str) -> str:
    parts = text.strip().split()
    if not parts:
        return ""
    first = parts[0].lower()
    return first[:1].upper() + first[1:]

def parse_shame_level(text: str) -> int:
    try:
        level = int(text.strip())
    except ValueError:
        return 1
    return level if level in (1, 2, 3) else 1

def _action_name(cleaned: str) -> str:
    words = re.findall(r"[a-z0-9']+", cleaned.lower())
    leading = []
    for word in words:
        if word in THRESHOLD_WORDS or any(ch.isdigit() for ch in word):
            break
        leading.append(word)
    if not leading:
        # '10k steps' -> 'steps'
        leading = [w for w in words if not any(ch.isdigit() for ch in w) and w not in THRESHOLD_WORDS]
    return "_".join(leading)

def parse_binary_actions(text: str) -> List[BinaryAction]:
    """One action per non-empty line; the first two listed are worth 2 points."""
    actions: List[BinaryAction] = []
    seen = set()

    for line in (text or "").splitlines():
        cleaned = re.sub(r"^\s*(?:[-*•]+|\d+[.)])\s*", "", line).strip()
        if not cleaned:
            continue
        name = _action_name(cleaned)
        if not name or name in seen:
            continue
        seen.add(name)
        threshold = cleaned if cleaned.lower().replace(" ", "_") != name else "completed"
        actions.append(BinaryAction(name=name, threshold=threshold, points=1))

    for action in actions[:2]:
        action.points = 2
    return actions

# --- Nightly lock ---

def _plan_field(pattern: str, lower: str) -> Optional[str]:
    match = re.search(pattern + rf"[:\s]*(.+?)(?:[\n;]|,\s*(?={PLAN_KEYWORDS})|$)", lower)
    if not match:
        return None
    value = match.group(1).strip(" ,")
    return value or None

def parse_tomorrow_plan(text: str) -> ParseResult[TomorrowPlan]:
    plan = TomorrowPlan()
    result = ParseResult(value=plan)
    lower = (text or "").lower()

    eating = re.search(rf"eat(?:ing)?(?:\s+window)?[:\s]*({TIME_TOKEN}){RANGE_SEP}({TIME_TOKEN})", lower)
    if eating:
        plan.eating_window = f"{eating.group(1).strip()}-{eating.group(2).strip()}"
        result.matched.append("eating_window")
    else:
        result.defaulted.append("eating_window")

    first_meal = _plan_field(r"first(?:\s+meal)?", lower)
    if first_meal:
        plan.first_meal = first_meal
        result.matched.append("first_meal")
    else:
        result.defaulted.append("first_meal")

    walk = _plan_field(r"walk", lower)
    if walk:
        plan.walk_time = walk
        result.matched.append("walk_time")
    else:
        result.defaulted.append("walk_time")

    if re.search(r"strength", lower):
        plan.strength = bool(re.search(r"strength[:\s]*(?:yes|y|✓|true)(?!\w)", lower))
        result.matched.append("strength")
    else:
        result.defaulted.append("strength")

    danger = _plan_field(r"danger(?:\s+moment)?", lower)
    if danger:
        plan.danger_moment = danger
        result.matched.append("danger_moment")
    else:
        result.defaulted.append("danger_moment")

    return result

# --- Action matching ---

def match_actions(text: str, names: Sequence[str]) -> Tuple[List[str], List[str]]:
    """
    Splits contract action names into (completed, missed) from a free-text list.
    Direct substring match first; if nothing matched, a word-prefix heuristic.
    """
    lower = text.lower()
    completed = [
        n for n in names
        if n.lower() in lower or n.lower().replace("_", " ") in lower
    ]

    if not completed:
        words = [w for w in re.split(r"[,\s]+", lower) if len(w) > 2]
        for name in names:
            name_lower = name.lower()
            if any(w in name_lower or name_lower[:4] in w for w in words):
                completed.append(name)

    missed = [n for n in names if n not in completed]
    return completed, missed
