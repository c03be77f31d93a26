from types import SimpleNamespace

from sqlalchemy import select

from database.models import Message
from database import queries
from handlers.dispatch import MessageDispatcher
from handlers.telegram import handle_message
from services import pattern_memory, prompts
from tests.helpers import FakeLLM, FakeMessenger

class FakeScheduler:
    def __init__(self):
        self.scheduled = []

    def schedule_user_jobs(self, user):
        self.scheduled.append(user.id)

class BrokenLLM(FakeLLM):
    async def classify_intent(self, user_input):
        raise RuntimeError("rate limited")

def make_dispatcher(session_factory, messenger=None, llm=None, scheduler=None):
    return MessageDispatcher(
        session_factory,
        messenger or FakeMessenger(),
        llm or FakeLLM(),
        scheduler=scheduler,
        default_timezone="UTC",
    )

async def logged_messages(session_factory, phone):
    async with session_factory() as session:
        user = await queries.get_or_create_user(session, phone)
        result = await session.execute(select(Message).where(Message.user_id == user.id).order_by(Message.id))
        return list(result.scalars().all())

class TestRouting:
    async def test_new_user_starts_onboarding(self, session_factory):
        messenger = FakeMessenger()
        dispatcher = make_dispatcher(session_factory, messenger)

        reply = await dispatcher.process_inbound("3003", "hey")
        assert reply == prompts.WELCOME
        assert messenger.sent[0].to == "3003"

        messages = await logged_messages(session_factory, "3003")
        assert [(m.role, m.flow) for m in messages] == [("user", "onboarding"), ("assistant", "onboarding")]
        assert messages[0].content == "hey"

    async def test_onboarding_completion_schedules_jobs(self, session_factory):
        scheduler = FakeScheduler()
        dispatcher = make_dispatcher(session_factory, scheduler=scheduler)
        for text in ["hi", "Alex", "fat loss", "walk", "Wake: 6am", "1", "LOCKED"]:
            reply = await dispatcher.process_inbound("3003", text)

        assert reply == prompts.ONBOARDING_COMPLETE
        assert len(scheduler.scheduled) == 1

    async def test_no_contract(self, session, session_factory, user):
        await session.commit()
        dispatcher = make_dispatcher(session_factory)
        assert await dispatcher.process_inbound("1001", "status") == prompts.NO_CONTRACT

    async def test_photo_bypasses_flows(self, session_factory):
        dispatcher = make_dispatcher(session_factory)
        reply = await dispatcher.process_inbound("3003", "", media_url="https://files.example/a.jpg")
        assert "Baseline" in reply

        messages = await logged_messages(session_factory, "3003")
        assert messages[0].content == "[photo]"
        assert messages[0].flow == "photo"

    async def test_nightly_lock_takes_precedence_over_commands(self, session, session_factory, contract):
        await session.commit()
        dispatcher = make_dispatcher(session_factory)

        await dispatcher.process_inbound("1001", "lock")
        reply = await dispatcher.process_inbound("1001", "status")
        assert reply.startswith("You missed:")

    async def test_reset_clears_flow(self, session, session_factory, contract):
        await session.commit()
        dispatcher = make_dispatcher(session_factory)

        await dispatcher.process_inbound("1001", "lock")
        assert await dispatcher.process_inbound("1001", "RESET") == prompts.RESET_DONE
        assert (await dispatcher.process_inbound("1001", "status")).startswith("Today's scorecard")

    async def test_commands(self, session, session_factory, contract):
        await session.commit()
        dispatcher = make_dispatcher(session_factory)

        assert (await dispatcher.process_inbound("1001", " How am I doing?")).startswith("Today's scorecard")
        assert await dispatcher.process_inbound("1001", "week") == "No data for this week yet."
        assert (await dispatcher.process_inbound("1001", "tokens")).startswith("💰 Tokens: 7/7")

    async def test_bad_day_then_one_thing(self, session, session_factory, contract):
        await session.commit()
        dispatcher = make_dispatcher(session_factory)

        first = await dispatcher.process_inbound("1001", "rough day, I'm exhausted")
        assert "Downshift protocol active" in first
        second = await dispatcher.process_inbound("1001", "did my walk")
        assert second.startswith('Good. You did: "did my walk"')

        # Back to normal routing afterwards
        third = await dispatcher.process_inbound("1001", "did my walk")
        assert third.startswith("✓ walk: 1/1 pts")

    async def test_rationalization_before_score(self, session, session_factory, contract):
        await session.commit()
        dispatcher = make_dispatcher(session_factory)

        reply = await dispatcher.process_inbound("1001", "just this once, 2500 calories")
        assert "rationalization" in reply

    async def test_intent_dispatch(self, session, session_factory, contract):
        await session.commit()
        llm = FakeLLM(intent="SKIP")
        dispatcher = make_dispatcher(session_factory, llm=llm)

        assert await dispatcher.process_inbound("1001", "can I pass on this one") == prompts.NO_SKIP

        llm.intent = "LOCK_TOMORROW"
        assert (await dispatcher.process_inbound("1001", "let's plan")).startswith("Time to lock tomorrow.")

    async def test_general_generation_gets_context(self, session, session_factory, contract):
        await session.commit()
        llm = FakeLLM(intent="QUESTION", reply="Eat the protein first.")
        dispatcher = make_dispatcher(session_factory, llm=llm)

        await dispatcher.process_inbound("1001", "what should I eat first")
        reply = await dispatcher.process_inbound("1001", "and after that")

        assert reply == "Eat the protein first."
        context = llm.contexts[-1]
        assert context.contract.goal == "fat loss"
        assert context.recent_messages[0].content == "Eat the protein first."

    async def test_generation_context_quotes_memory(self, session, session_factory, user, contract):
        await pattern_memory.record(session, user, "miss_reason", "work ran late")
        await pattern_memory.record(session, user, "failure_time", "21:00")
        await session.commit()
        llm = FakeLLM(intent="GENERAL")
        dispatcher = make_dispatcher(session_factory, llm=llm)

        await dispatcher.process_inbound("1001", "long day")
        notes = llm.contexts[-1].additional_context
        assert '"work ran late"' in notes
        assert "Times they slip: 21:00" in notes

class TestFailures:
    async def test_generation_error_sends_apology(self, session, session_factory, contract):
        await session.commit()
        messenger = FakeMessenger()
        dispatcher = make_dispatcher(session_factory, messenger, llm=BrokenLLM())

        assert await dispatcher.process_inbound("1001", "random chatter") is None
        assert messenger.sent[-1].body == prompts.GENERIC_FAILURE
        assert await logged_messages(session_factory, "1001") == []

    async def test_transport_error_never_raises(self, session_factory):
        dispatcher = make_dispatcher(session_factory, FakeMessenger(fail=True))
        assert await dispatcher.process_inbound("3003", "hello") is None

class TestTelegramHandler:
    async def test_photo_stored_by_file_id(self, session_factory):
        messenger = FakeMessenger()
        dispatcher = make_dispatcher(session_factory, messenger)
        message = SimpleNamespace(
            chat=SimpleNamespace(id=3003),
            text=None,
            caption="day one",
            photo=[SimpleNamespace(file_id="AgAD-small"), SimpleNamespace(file_id="AgAD-large")],
        )

        await handle_message(message, dispatcher)
        assert "Baseline" in messenger.sent[0].body

        async with session_factory() as session:
            user = await queries.get_or_create_user(session, "3003")
            baseline = await queries.get_baseline_photo(session, user.id)
        assert baseline.url == "AgAD-large"
