from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from database.models import Base

def make_engine(db_url: str, **kwargs):
    return create_async_engine(db_url, echo=False, **kwargs)

def make_sessionmaker(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine, expire_on_commit=False, class_=AsyncSession
    )

async def init_db(engine):
    async with engine.begin() as conn:
        # await conn.run_sync(Base.metadata.drop_all) # Uncomment to reset
        await conn.run_sync(Base.metadata.create_all)
