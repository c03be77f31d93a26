from datetime import timedelta

from database import queries
from handlers.morning import build_morning_messages
from handlers.photos import handle_photo
from services import token_ledger
from tests.helpers import TODAY, FakeLLM

YESTERDAY = TODAY - timedelta(days=1)

class TestPhotos:
    async def test_first_is_baseline(self, session, user):
        first = await handle_photo(session, user, "https://files.example/1.jpg", TODAY)
        second = await handle_photo(session, user, "https://files.example/2.jpg", TODAY)

        assert "Baseline" in first
        assert "Progress photo" in second
        baseline = await queries.get_baseline_photo(session, user.id)
        assert baseline.url.endswith("1.jpg")
        recent = await queries.get_recent_photos(session, user.id)
        assert [p.url for p in recent] == ["https://files.example/2.jpg"]

class TestMorningMessages:
    async def test_locked_plan_echoed(self, session, user, contract):
        await queries.upsert_daily_log(
            session, user.id, YESTERDAY,
            total_score=6, tomorrow_locked=True,
            tomorrow_plan={"eating_window": "11am-7pm", "first_meal": "eggs", "walk_time": "7am",
                           "strength": True, "danger_moment": "late tv"},
        )

        outbound = await build_morning_messages(session, user, TODAY)
        assert len(outbound) == 1
        text, media = outbound[0]
        assert "Last night you decided" in text
        assert "Walk: 7am" in text
        assert media is None

    async def test_missed_lock_costs_tokens_once(self, session, user, contract):
        first = await build_morning_messages(session, user, TODAY)
        assert "You didn't lock last night" in first[0][0]
        status = await token_ledger.get_token_status(session, user, TODAY)
        assert status.current == 4

        await build_morning_messages(session, user, TODAY)
        status = await token_ledger.get_token_status(session, user, TODAY)
        assert status.current == 4

    async def test_escalation_with_photos(self, session, user, contract):
        await handle_photo(session, user, "https://files.example/base.jpg", TODAY - timedelta(days=10))
        await handle_photo(session, user, "https://files.example/now.jpg", YESTERDAY)
        for offset in (1, 2):
            await queries.upsert_daily_log(session, user.id, TODAY - timedelta(days=offset), total_score=1, tomorrow_locked=True)

        outbound = await build_morning_messages(session, user, TODAY)
        media = [url for _, url in outbound if url]
        assert media == ["https://files.example/base.jpg", "https://files.example/now.jpg"]
        assert any("break this pattern" in text for text, _ in outbound)

    async def test_downshift_day_skips_escalation(self, session, user, contract):
        for offset in (1, 2):
            await queries.upsert_daily_log(session, user.id, TODAY - timedelta(days=offset), total_score=1, tomorrow_locked=True)
        await queries.upsert_daily_log(session, user.id, YESTERDAY, notes="DOWNSHIFT: rough day")

        outbound = await build_morning_messages(session, user, TODAY)
        assert not any("break this pattern" in text for text, _ in outbound)

    async def test_no_contract(self, session, user):
        assert await build_morning_messages(session, user, TODAY) == []

    async def test_generated_greeting(self, session, user, contract):
        await queries.upsert_daily_log(
            session, user.id, YESTERDAY, total_score=6, tomorrow_locked=True, tomorrow_plan={"walk_time": "6am"},
        )
        llm = FakeLLM(reply="You are someone who walks at 6am.")

        outbound = await build_morning_messages(session, user, TODAY, llm)
        assert outbound[0] == ("You are someone who walks at 6am.", None)
        assert llm.contexts[0].current_flow == "morning"
