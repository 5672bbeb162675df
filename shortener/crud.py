import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncContextManager, AsyncIterator, Optional, Protocol

from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import DuplicateCodeError, StoreError
from .models import UrlMapping

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """What the mapping lifecycle needs from durable storage.

    Writes only become visible when the enclosing ``transaction()`` exits
    without an exception; any failure inside it rolls everything back.
    """

    def transaction(self) -> AsyncContextManager["RecordStore"]: ...

    async def insert(self, record: UrlMapping) -> UrlMapping: ...

    async def update(self, record: UrlMapping) -> None: ...

    async def discard(self, record: UrlMapping) -> None: ...

    async def find_by_code(self, short_code: str) -> Optional[UrlMapping]: ...

    async def increment_click_count(self, short_code: str, now: datetime) -> bool: ...

    async def delete_expired_before(self, timestamp: datetime) -> int: ...


class SQLAlchemyRecordStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLAlchemyRecordStore"]:
        try:
            yield self
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Store transaction failed: {e}")
            raise StoreError("Record store transaction failed") from e
        except BaseException:
            await self.db.rollback()
            raise

    async def insert(self, record: UrlMapping) -> UrlMapping:
        self.db.add(record)
        await self._flush(record)
        return record

    async def update(self, record: UrlMapping) -> None:
        self.db.add(record)
        await self._flush(record)

    async def discard(self, record: UrlMapping) -> None:
        await self.db.delete(record)
        await self.db.flush()

    async def find_by_code(self, short_code: str) -> Optional[UrlMapping]:
        # Bulk click updates bypass the identity map, so always reload
        result = await self.db.execute(
            select(UrlMapping)
            .where(UrlMapping.short_code == short_code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def increment_click_count(self, short_code: str, now: datetime) -> bool:
        """Count one click on a live mapping. False if missing or expired."""
        result = await self.db.execute(
            update(UrlMapping)
            .where(UrlMapping.short_code == short_code)
            .where(or_(UrlMapping.expiration_date.is_(None), UrlMapping.expiration_date >= now))
            .values(click_count=UrlMapping.click_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete_expired_before(self, timestamp: datetime) -> int:
        result = await self.db.execute(
            delete(UrlMapping)
            .where(UrlMapping.expiration_date.is_not(None))
            .where(UrlMapping.expiration_date < timestamp)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _flush(self, record: UrlMapping) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise DuplicateCodeError(record.short_code) from e
