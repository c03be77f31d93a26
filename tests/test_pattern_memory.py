from database import queries
from services import pattern_memory

class TestRecordPattern:
    async def test_exact_content_counts(self, session, user):
        await pattern_memory.record(session, user, "miss_reason", "too tired")
        await pattern_memory.record(session, user, "miss_reason", "too tired")
        await pattern_memory.record(session, user, "miss_reason", "Too tired")

        patterns = await queries.get_user_patterns(session, user.id, pattern_type="miss_reason")
        counts = {p.content: p.frequency for p in patterns}
        assert counts == {"too tired": 2, "Too tired": 1}

    async def test_ordering_by_frequency(self, session, user):
        await pattern_memory.record(session, user, "trigger", "cheat day")
        for _ in range(3):
            await pattern_memory.record(session, user, "miss_reason", "work ran late")

        patterns = await queries.get_user_patterns(session, user.id)
        assert patterns[0].content == "work ran late"
        assert patterns[0].frequency == 3

    async def test_has_seen(self, session, user):
        await pattern_memory.record(session, user, "emotion", "stressed")
        assert not await pattern_memory.has_seen(session, user, "emotion", "stressed")
        await pattern_memory.record(session, user, "emotion", "stressed")
        assert await pattern_memory.has_seen(session, user, "emotion", "stressed")

class TestSignals:
    async def test_extract_signals(self, session, user):
        await pattern_memory.extract_signals(session, user, "So stressed, binged at 9pm")

        assert await queries.find_pattern(session, user.id, "time_mention", "21:00")
        assert await queries.find_pattern(session, user.id, "emotion", "stressed")

    async def test_memory_context(self, session, user):
        await pattern_memory.record(session, user, "miss_reason", "late meeting")
        await pattern_memory.record(session, user, "failure_time", "21:00")
        await pattern_memory.record(session, user, "trigger", "just once")

        memory = await pattern_memory.build_memory_context(session, user)
        assert memory.verbatim_excuses == ["late meeting"]
        assert memory.failure_times == ["21:00"]
        assert memory.repeat_triggers == []

        notes = pattern_memory.memory_notes(memory)
        assert 'Excuses in their own words: "late meeting"' in notes
        assert "Lines they keep using" not in notes

    def test_empty_memory_has_no_notes(self):
        assert pattern_memory.memory_notes(pattern_memory.MemoryContext()) is None

class TestRationalization:
    def test_detect(self):
        assert pattern_memory.detect_rationalization("Just this once, ok?") == "just this once"
        assert pattern_memory.detect_rationalization("it's a cheat day") == "cheat day"
        assert pattern_memory.detect_rationalization("walked 10k today") is None

    async def test_first_time_canned(self, session, user):
        reply = await pattern_memory.rationalization_response(session, user, "cheat day today", "cheat day")
        assert "rationalization" in reply
        assert await queries.find_pattern(session, user.id, "trigger", "cheat day")

    async def test_repeat_trigger_counted(self, session, user):
        await pattern_memory.rationalization_response(session, user, "cheat day", "cheat day")
        reply = await pattern_memory.rationalization_response(session, user, "cheat day", "cheat day")
        assert "2 times" in reply

    async def test_quotes_similar_excuse(self, session, user):
        await pattern_memory.record(session, user, "miss_reason", "work stress made me snack")
        reply = await pattern_memory.rationalization_response(
            session, user, "work stress, I deserve a snack", "i deserve"
        )
        assert '"work stress made me snack"' in reply
