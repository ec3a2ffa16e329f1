from typing import Optional
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from leaguebot.config import Config
from leaguebot.database.models import Base
from leaguebot.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url or Config.DATABASE_URL
        self.engine = None
        self.async_session = None
        
    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")
        
        # Convert sqlite URL to async if needed
        database_url = self.database_url
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        
        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )
        
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            
        self.logger.info("Database initialized successfully")
    
    @asynccontextmanager
    async def get_session(self):
        """Get a database session for reads"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()
    
    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.
        
        Every rating mutation (confirmed contest, decay scan, undo, redo, manual
        edit) runs inside one of these so a failure part-way never leaves the
        store half written.
        
        Usage:
            async with db.transaction() as session:
                await participant_ops.write_state(state, session=session)
                await contest_ops.mark_undone(contest_id, session=session)
                # All operations commit together here
        
        Exceptions must be allowed to propagate out of the context for rollback
        to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()
    
    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")
