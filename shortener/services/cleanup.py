import asyncio
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import async_sessionmaker
from ..config import settings
from ..crud import SQLAlchemyRecordStore
from ..database import AsyncSessionLocal
from .lifecycle import UrlMappingService

logger = logging.getLogger(__name__)

async def run_expire_sweep(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    now: Optional[datetime] = None,
) -> int:
    async with session_factory() as db:
        service = UrlMappingService(SQLAlchemyRecordStore(db))
        return await service.expire_sweep(now)

async def sweep_expired_links_forever(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    interval_seconds: Optional[int] = None,
):
    interval_seconds = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
    while True:
        try:
            logger.info("Running background expire sweep...")
            await run_expire_sweep(session_factory)
        except Exception as e:
            logger.error(f"Error in expire sweep: {e}")

        await asyncio.sleep(interval_seconds)
