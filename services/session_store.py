import logging
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional

from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State
from aiogram.fsm.storage.base import BaseStorage, StateType, StorageKey
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import FlowSession, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=12)

class SqlAlchemyStorage(BaseStorage):
    """
    FSM storage kept in the `flow_sessions` table instead of process memory,
    so an in-progress conversation survives restarts and works across
    instances. Bound to the caller's session; it flushes but never commits.
    Rows past `expires_at` read back as empty and are removed.
    """

    def __init__(self, session: AsyncSession, ttl: Optional[timedelta] = DEFAULT_TTL):
        self.session = session
        self.ttl = ttl

    @staticmethod
    def _key(key: StorageKey) -> str:
        return f"{key.bot_id}:{key.chat_id}:{key.user_id}:{key.destiny}"

    async def _load(self, key: StorageKey) -> Optional[FlowSession]:
        row = await self.session.get(FlowSession, self._key(key))
        if row is not None and row.expires_at is not None and row.expires_at <= utcnow():
            logger.info(f"Flow session {row.key} expired (state={row.state})")
            await self.session.delete(row)
            await self.session.flush()
            return None
        return row

    async def _save(self, key: StorageKey, row: Optional[FlowSession], state: Any = ..., data: Any = ...) -> None:
        if row is None:
            row = FlowSession(key=self._key(key), state=None, data={})
            self.session.add(row)
        if state is not ...:
            row.state = state
        if data is not ...:
            row.data = data
        now = utcnow()
        row.updated_at = now
        row.expires_at = now + self.ttl if self.ttl else None

        if row.state is None and not row.data:
            if row in self.session.new:
                self.session.expunge(row)
            else:
                await self.session.delete(row)
        await self.session.flush()

    async def set_state(self, key: StorageKey, state: StateType = None) -> None:
        value = state.state if isinstance(state, State) else state
        row = await self._load(key)
        if row is None and value is None:
            return
        await self._save(key, row, state=value)

    async def get_state(self, key: StorageKey) -> Optional[str]:
        row = await self._load(key)
        return row.state if row else None

    async def set_data(self, key: StorageKey, data: Mapping[str, Any]) -> None:
        row = await self._load(key)
        if row is None and not data:
            return
        await self._save(key, row, data=dict(data))

    async def get_data(self, key: StorageKey) -> Dict[str, Any]:
        row = await self._load(key)
        return dict(row.data or {}) if row else {}

    async def close(self) -> None:
        # The session belongs to the caller
        pass

def flow_context(session: AsyncSession, user_id: int, ttl: Optional[timedelta] = DEFAULT_TTL) -> FSMContext:
    """Per-user FSM context over the database-backed storage."""
    key = StorageKey(bot_id=0, chat_id=user_id, user_id=user_id)
    return FSMContext(storage=SqlAlchemyStorage(session, ttl), key=key)

def in_group(state_name: Optional[str], group) -> bool:
    if not state_name:
        return False
    return state_name in {s.state for s in group.__all_states__}
