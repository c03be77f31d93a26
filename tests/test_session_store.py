from datetime import timedelta

from sqlalchemy import select

from database.models import FlowSession
from handlers.nightly_lock import NightlyLock
from services.session_store import flow_context, in_group

class TestSqlAlchemyStorage:
    async def test_state_and_data(self, session):
        state = flow_context(session, 1)
        await state.set_state(NightlyLock.scoring)
        await state.update_data(missed_items=["walk"])

        again = flow_context(session, 1)
        assert await again.get_state() == NightlyLock.scoring.state
        assert await again.get_data() == {"missed_items": ["walk"]}

    async def test_users_are_isolated(self, session):
        await flow_context(session, 1).set_state(NightlyLock.planning)
        assert await flow_context(session, 2).get_state() is None

    async def test_clear_removes_row(self, session):
        state = flow_context(session, 1)
        await state.set_state(NightlyLock.confirm)
        await state.update_data(plan={"walk_time": "7am"})
        await state.clear()

        rows = (await session.execute(select(FlowSession))).scalars().all()
        assert rows == []

    async def test_expired_session_reads_empty(self, session):
        state = flow_context(session, 1, ttl=timedelta(seconds=-1))
        await state.set_state(NightlyLock.scoring)
        await state.update_data(a=1)

        assert await state.get_state() is None
        assert await state.get_data() == {}

    async def test_survives_commit(self, session_factory):
        async with session_factory() as session:
            await flow_context(session, 7).set_state(NightlyLock.miss_reason)
            await session.commit()

        async with session_factory() as session:
            assert await flow_context(session, 7).get_state() == NightlyLock.miss_reason.state

def test_in_group():
    assert in_group(NightlyLock.planning.state, NightlyLock)
    assert not in_group(None, NightlyLock)
    assert not in_group("BadDay:awaiting_one_thing", NightlyLock)
