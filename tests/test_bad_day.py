from types import SimpleNamespace

from database import queries
from database.schemas import BinaryAction
from handlers.bad_day import (
    BadDay, calorie_target, detect_bad_day, handle_bad_day, handle_downshift_completion, is_downshift_day,
)
from services.session_store import flow_context
from tests.helpers import TODAY

class TestDetection:
    def test_trigger_phrases(self):
        assert detect_bad_day("Having a BAD DAY")
        assert detect_bad_day("I’m so burnt out")
        assert detect_bad_day("can't today")
        assert not detect_bad_day("great day, hit everything")

    def test_downshift_notes(self):
        assert is_downshift_day("DOWNSHIFT: rough day")
        assert is_downshift_day("DOWNSHIFT completed: walked")
        assert not is_downshift_day(None)
        assert not is_downshift_day("normal day")

class TestBadDayFlow:
    async def test_downshift_protocol(self, session, user, contract):
        state = flow_context(session, user.id)

        reply = await handle_bad_day(session, state, user, contract, "bad day, overwhelmed since 3pm", TODAY)
        assert "Calories: 2500 (up from 2000)" in reply
        assert "Protein: STILL MANDATORY" in reply
        assert await state.get_state() == BadDay.awaiting_one_thing.state

        log = await queries.get_daily_log(session, user.id, TODAY)
        assert log.notes == "DOWNSHIFT: bad day, overwhelmed since 3pm"
        assert await queries.find_pattern(session, user.id, "bad_day", "bad day, overwhelmed since 3pm")
        assert await queries.find_pattern(session, user.id, "emotion", "overwhelmed")
        assert await queries.find_pattern(session, user.id, "time_mention", "15:00")

    async def test_one_thing_completes(self, session, user, contract):
        state = flow_context(session, user.id)
        await handle_bad_day(session, state, user, contract, "rough day", TODAY)

        reply = await handle_downshift_completion(session, state, user, "a 20 minute walk", TODAY)
        assert '"a 20 minute walk"' in reply
        assert await state.get_state() is None

        log = await queries.get_daily_log(session, user.id, TODAY)
        assert log.notes == "DOWNSHIFT completed: a 20 minute walk"
        assert await queries.find_pattern(session, user.id, "downshift_completion", "a 20 minute walk")

    def test_calorie_default(self):
        contract = SimpleNamespace(binary_actions=[BinaryAction(name="walk").model_dump()])
        assert calorie_target(contract) == 2000

    def test_calorie_from_threshold(self):
        contract = SimpleNamespace(binary_actions=[BinaryAction(name="calories", threshold="under 1800").model_dump()])
        assert calorie_target(contract) == 1800
