import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import TypeAdapter, ValidationError

from ..config import settings
from ..crud import RecordStore
from ..errors import AliasConflictError, InvalidInputError, NotFoundError, StatsNotFoundError
from ..observability import (
    ALIAS_CONFLICTS_TOTAL,
    CACHE_HITS,
    CACHE_MISSES,
    LINKS_CREATED_TOTAL,
    REDIRECT_404_TOTAL,
    REDIRECT_TOTAL,
    SWEPT_LINKS_TOTAL,
)
from ..redis import RedisClient, cache_key_for_code, cache_ttl_seconds
from ..schemas import WebUrl
from .allocator import MappingDraft, allocate_alias, allocate_generated_code, validate_alias

logger = logging.getLogger(__name__)

_web_url = TypeAdapter(WebUrl)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MappingStats:
    original_url: str
    short_code: str
    creation_date: datetime
    expiration_date: Optional[datetime]
    click_count: int


def validate_original_url(original_url: str) -> None:
    if not original_url or not original_url.strip():
        raise InvalidInputError("URL cannot be empty")
    try:
        _web_url.validate_python(original_url)
    except ValidationError:
        raise InvalidInputError("A valid URL format is required") from None


def validate_ttl_hours(ttl_hours) -> None:
    if isinstance(ttl_hours, bool) or not isinstance(ttl_hours, int) or ttl_hours < 1:
        raise InvalidInputError("Hours to expire must be a positive number")


class UrlMappingService:
    """Create, resolve, inspect and expire short URL mappings.

    Each operation runs in its own store transaction and either returns a
    value or raises one ``ShortenerError``; there is no partial success.
    Time comes from ``clock`` so expiry can be driven explicitly.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Callable[[], datetime] = utcnow,
        cache: Optional[RedisClient] = None,
        max_alias_length: int = settings.MAX_ALIAS_LENGTH,
        max_code_attempts: int = settings.MAX_CODE_ATTEMPTS,
    ):
        self.store = store
        self.clock = clock
        self.cache = cache
        self.max_alias_length = max_alias_length
        self.max_code_attempts = max_code_attempts

    async def create(
        self,
        original_url: str,
        custom_alias: Optional[str] = None,
        ttl_hours: Optional[int] = None,
    ) -> str:
        """Store a new mapping and return its short code.

        Without ``custom_alias`` the code is derived from the new record's
        identity. With it, the alias is used verbatim or the call fails with
        ``AliasConflictError`` and nothing is written. ``ttl_hours`` makes the
        mapping stop resolving that many hours after creation.
        """
        validate_original_url(original_url)
        # A blank alias counts as no alias
        if custom_alias is not None and not custom_alias.strip():
            custom_alias = None
        if custom_alias:
            validate_alias(custom_alias, self.max_alias_length)

        now = self.clock()
        expiration_date = None
        if ttl_hours is not None:
            validate_ttl_hours(ttl_hours)
            try:
                expiration_date = now + timedelta(hours=ttl_hours)
            except OverflowError:
                raise InvalidInputError("Hours to expire is too large") from None

        draft = MappingDraft(original_url, now, expiration_date)
        kind = "alias" if custom_alias else "generated"
        try:
            async with self.store.transaction():
                if custom_alias:
                    record = await allocate_alias(self.store, draft, custom_alias)
                else:
                    record = await allocate_generated_code(self.store, draft, self.max_code_attempts)
        except AliasConflictError:
            ALIAS_CONFLICTS_TOTAL.inc()
            logger.info(f"Rejected custom alias {custom_alias}: already in use")
            raise

        LINKS_CREATED_TOTAL.labels(kind=kind).inc()
        logger.info(f"Created {kind} short code {record.short_code} (id={record.id})")
        return record.short_code

    async def resolve(self, short_code: str) -> str:
        """Return the original URL for a live code and count one click.

        Missing and expired codes both raise ``NotFoundError``. The expiry
        check and the increment are a single conditional update, so
        concurrent resolves never lose a click.
        """
        now = self.clock()
        key = cache_key_for_code(short_code)

        original_url = await self.cache.get(key) if self.cache else None
        if self.cache:
            (CACHE_HITS if original_url else CACHE_MISSES).inc()

        cache_ttl = 0
        async with self.store.transaction():
            counted = await self.store.increment_click_count(short_code, now)
            if counted and original_url is None:
                record = await self.store.find_by_code(short_code)
                original_url = record.original_url
                cache_ttl = cache_ttl_seconds(record.expiration_date, now)

        # Only cache once the click is committed
        if self.cache and cache_ttl > 0:
            await self.cache.set(key, original_url, ex=cache_ttl)

        if not counted:
            REDIRECT_404_TOTAL.inc()
            if self.cache:
                await self.cache.delete(key)
            logger.debug(f"No live mapping for short code {short_code}")
            raise NotFoundError(short_code)

        REDIRECT_TOTAL.inc()
        return original_url

    async def stats(self, short_code: str) -> MappingStats:
        # Expired but unswept mappings are still reported
        async with self.store.transaction():
            record = await self.store.find_by_code(short_code)
        if record is None:
            raise StatsNotFoundError(short_code)

        return MappingStats(
            original_url=record.original_url,
            short_code=record.short_code,
            creation_date=record.creation_date,
            expiration_date=record.expiration_date,
            click_count=record.click_count,
        )

    async def expire_sweep(self, now: Optional[datetime] = None) -> int:
        """Delete every mapping whose expiration date is before ``now``."""
        now = now or self.clock()
        async with self.store.transaction():
            deleted = await self.store.delete_expired_before(now)

        SWEPT_LINKS_TOTAL.inc(deleted)
        if deleted > 0:
            logger.info(f"Expire sweep deleted {deleted} mappings expired before {now.isoformat()}")
        else:
            logger.info("Expire sweep found no expired mappings")
        return deleted
