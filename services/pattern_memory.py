import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Message, Pattern, User
from database import queries
from services.parsers import find_time_mentions

logger = logging.getLogger(__name__)

EMOTION_WORDS = [
    "tired", "stressed", "anxious", "bored", "hungry",
    "frustrated", "angry", "sad", "happy", "motivated",
    "lazy", "busy", "overwhelmed",
]

RATIONALIZATION_PATTERNS = [
    re.compile(r"just\s+(this\s+)?once", re.I),
    re.compile(r"i deserve", re.I),
    re.compile(r"i earned", re.I),
    re.compile(r"special occasion", re.I),
    re.compile(r"won'?t matter", re.I),
    re.compile(r"start fresh", re.I),
    re.compile(r"tomorrow i'?ll", re.I),
    re.compile(r"one (more|little|small)", re.I),
    re.compile(r"it'?s (fine|ok|okay)", re.I),
    re.compile(r"doesn'?t count", re.I),
    re.compile(r"cheat (day|meal)", re.I),
]

@dataclass
class MemoryContext:
    patterns: List[Pattern] = field(default_factory=list)
    recent_messages: List[Message] = field(default_factory=list)
    verbatim_excuses: List[str] = field(default_factory=list)
    failure_times: List[str] = field(default_factory=list)
    repeat_triggers: List[str] = field(default_factory=list)

async def record(session: AsyncSession, user: User, pattern_type: str, content: str) -> Pattern:
    pattern = await queries.record_pattern(session, user.id, pattern_type, content)
    logger.info(f"Pattern {pattern_type} for user {user.id} now at {pattern.frequency}x")
    return pattern

async def has_seen(session: AsyncSession, user: User, pattern_type: str, content: str, times: int = 2) -> bool:
    """True if this exact observation has been recorded at least `times` times."""
    pattern = await queries.find_pattern(session, user.id, pattern_type, content)
    return pattern is not None and pattern.frequency >= times

async def extract_signals(session: AsyncSession, user: User, text: str) -> None:
    """Records clock-time mentions and emotion words found in free text."""
    for mention in find_time_mentions(text):
        await record(session, user, "time_mention", mention)

    lower = text.lower()
    for word in EMOTION_WORDS:
        if word in lower:
            await record(session, user, "emotion", word)

async def build_memory_context(session: AsyncSession, user: User) -> MemoryContext:
    patterns = await queries.get_user_patterns(session, user.id, limit=20)
    messages = await queries.get_recent_messages(session, user.id, limit=30)

    return MemoryContext(
        patterns=patterns,
        recent_messages=messages,
        verbatim_excuses=[p.content for p in patterns if p.pattern_type == "miss_reason"],
        failure_times=[p.content for p in patterns if p.pattern_type == "failure_time"],
        repeat_triggers=[p.content for p in patterns if p.pattern_type == "trigger" and p.frequency >= 2],
    )

def memory_notes(memory: MemoryContext) -> Optional[str]:
    """Memory summary for the generation context, or None when there is nothing to quote."""
    notes = []
    if memory.verbatim_excuses:
        notes.append("Excuses in their own words: " + "; ".join(f'"{e}"' for e in memory.verbatim_excuses[:5]))
    if memory.failure_times:
        notes.append("Times they slip: " + ", ".join(memory.failure_times[:5]))
    if memory.repeat_triggers:
        notes.append("Lines they keep using: " + "; ".join(f'"{t}"' for t in memory.repeat_triggers[:5]))
    return "\n".join(notes) or None

def top_excuse(patterns: List[Pattern], min_frequency: int = 2) -> Optional[Pattern]:
    excuses = [p for p in patterns if p.pattern_type == "miss_reason" and p.frequency >= min_frequency]
    if not excuses:
        return None
    return max(excuses, key=lambda p: p.frequency)

def find_similar_excuse(text: str, memory: MemoryContext) -> Optional[Pattern]:
    """A recorded miss reason sharing at least two words with the text."""
    current_words = set(text.lower().split())
    for excuse in memory.patterns:
        if excuse.pattern_type != "miss_reason":
            continue
        overlap = current_words & set(excuse.content.lower().split())
        if len(overlap) >= 2:
            return excuse
    return None

def detect_rationalization(text: str) -> Optional[str]:
    """The matched self-permission phrase, lowercased, or None."""
    for pattern in RATIONALIZATION_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0).lower()
    return None

async def rationalization_response(session: AsyncSession, user: User, text: str, phrase: str) -> str:
    memory = await build_memory_context(session, user)
    trigger = await record(session, user, "trigger", phrase)

    similar = find_similar_excuse(text, memory)
    if similar:
        return (
            f'You said something similar {similar.frequency} times before: "{similar.content}"\n\n'
            "How did that work out?"
        )

    if await has_seen(session, user, "trigger", phrase):
        return (
            f'"{phrase}" again. That\'s {trigger.frequency} times you\'ve used that line.\n\n'
            "You already decided what you're doing. What's the next right action?"
        )

    return (
        "That sounds like rationalization. Let me be clear:\n\n"
        "You already decided what you're doing. That decision was made when you were thinking clearly.\n\n"
        "This is the moment that matters. What's the next right action?"
    )
