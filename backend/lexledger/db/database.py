"""
LexLedger Practice Billing
Async Database Engine & Session
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from lexledger.core.config import settings

# SQLite files are opened per connection so a test can drop the file between runs
engine_options = {"poolclass": NullPool} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG, **engine_options)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    """FastAPI dependency yielding one session per request"""
    async with AsyncSessionLocal() as session:
        yield session
