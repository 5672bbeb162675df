import asyncio
from contextlib import asynccontextmanager

import pytest
from datetime import timedelta
from sqlalchemy import func, select

from shortener.config import settings
from shortener.crud import SQLAlchemyRecordStore
from shortener.errors import AliasConflictError, InvalidInputError, NotFoundError, StatsNotFoundError, StoreError
from shortener.models import UrlMapping
from shortener.services.lifecycle import UrlMappingService
from shortener.utils import decode_base62


class FailingCommitStore(SQLAlchemyRecordStore):
    """Runs every statement, then fails the commit."""

    @asynccontextmanager
    async def transaction(self):
        yield self
        await self.db.rollback()
        raise StoreError("Record store transaction failed")


async def count_rows(db):
    return (await db.execute(select(func.count()).select_from(UrlMapping))).scalar_one()


@pytest.mark.asyncio
async def test_create_resolve_stats_end_to_end(service, clock):
    code = await service.create("https://example.com")

    assert await service.resolve(code) == "https://example.com"

    stats = await service.stats(code)
    assert stats.original_url == "https://example.com"
    assert stats.short_code == code
    assert stats.click_count == 1
    assert stats.creation_date == clock()
    assert stats.expiration_date is None


@pytest.mark.asyncio
async def test_generated_code_decodes_to_record_id(service, store):
    code = await service.create("https://example.com/a")
    record = await store.find_by_code(code)
    assert decode_base62(code) == record.id


@pytest.mark.asyncio
async def test_distinct_creates_get_distinct_codes(service):
    codes = [await service.create(f"https://example.com/{i}") for i in range(10)]
    assert len(set(codes)) == 10
    for i, code in enumerate(codes):
        assert await service.resolve(code) == f"https://example.com/{i}"


@pytest.mark.asyncio
async def test_custom_alias_is_returned_verbatim(service):
    assert await service.create("https://example.com/sale", custom_alias="promo") == "promo"
    assert await service.resolve("promo") == "https://example.com/sale"


@pytest.mark.asyncio
async def test_empty_alias_means_generated_code(service):
    code = await service.create("https://example.com", custom_alias="")
    assert code == "1"


@pytest.mark.asyncio
async def test_blank_alias_means_generated_code(service):
    code = await service.create("https://example.com", custom_alias="   ")
    assert code == "1"
    assert await service.resolve("1") == "https://example.com"


@pytest.mark.asyncio
async def test_long_url_round_trips(service):
    long_url = "https://example.com/?q=" + "a" * 3000
    code = await service.create(long_url)

    assert await service.resolve(code) == long_url
    assert (await service.stats(code)).original_url == long_url


@pytest.mark.asyncio
async def test_taken_alias_fails_and_creates_nothing(service, db):
    await service.create("https://example.com/first", custom_alias="promo")

    with pytest.raises(AliasConflictError) as exc_info:
        await service.create("https://example.com/second", custom_alias="promo")

    assert exc_info.value.alias == "promo"
    assert await count_rows(db) == 1
    assert await service.resolve("promo") == "https://example.com/first"


@pytest.mark.asyncio
async def test_concurrent_creates_for_one_alias_have_one_winner(make_service, db):
    services = [make_service() for _ in range(5)]
    results = await asyncio.gather(
        *(s.create(f"https://example.com/{i}", custom_alias="race") for i, s in enumerate(services)),
        return_exceptions=True,
    )

    assert results.count("race") == 1
    assert all(isinstance(r, AliasConflictError) for r in results if r != "race")
    assert await count_rows(db) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["", "   ", "not-a-valid-url", "ftp://example.com/file", "https://"])
async def test_create_rejects_bad_urls(service, db, url):
    with pytest.raises(InvalidInputError):
        await service.create(url)
    assert await count_rows(db) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("ttl_hours", [0, -3, 1.5, True, "2"])
async def test_create_rejects_non_positive_ttl(service, db, ttl_hours):
    with pytest.raises(InvalidInputError):
        await service.create("https://example.com", ttl_hours=ttl_hours)
    assert await count_rows(db) == 0


@pytest.mark.asyncio
async def test_create_rejects_bad_alias(service):
    with pytest.raises(InvalidInputError):
        await service.create("https://example.com", custom_alias="no spaces please")


@pytest.mark.asyncio
async def test_ttl_sets_expiration_date(service, clock):
    code = await service.create("https://example.com", ttl_hours=24)
    stats = await service.stats(code)
    assert stats.expiration_date == clock() + timedelta(hours=24)


@pytest.mark.asyncio
async def test_ttl_past_the_calendar_is_rejected(service, db):
    with pytest.raises(InvalidInputError):
        await service.create("https://example.com", ttl_hours=10**9)
    assert await count_rows(db) == 0


@pytest.mark.asyncio
async def test_resolve_unknown_code(service):
    with pytest.raises(NotFoundError):
        await service.resolve("nope")


@pytest.mark.asyncio
async def test_stats_unknown_code(service):
    with pytest.raises(StatsNotFoundError):
        await service.stats("nope")


@pytest.mark.asyncio
async def test_expired_link_stops_resolving_but_keeps_stats(service, clock):
    code = await service.create("https://example.com", ttl_hours=1)
    assert await service.resolve(code) == "https://example.com"

    # Still live at the exact expiry instant
    clock.advance(hours=1)
    assert await service.resolve(code) == "https://example.com"

    clock.advance(seconds=1)
    with pytest.raises(NotFoundError) as exc_info:
        await service.resolve(code)
    assert not isinstance(exc_info.value, StatsNotFoundError)

    stats = await service.stats(code)
    assert stats.original_url == "https://example.com"
    assert stats.click_count == 2


@pytest.mark.asyncio
async def test_concurrent_resolves_count_every_click(service, make_service):
    code = await service.create("https://example.com/hot")

    clicks = 20
    resolvers = [make_service() for _ in range(clicks)]
    results = await asyncio.gather(*(r.resolve(code) for r in resolvers))

    assert results == ["https://example.com/hot"] * clicks
    assert (await service.stats(code)).click_count == clicks


@pytest.mark.asyncio
async def test_resolve_fills_cache_with_expiry_bounded_ttl(store, clock, fake_cache):
    service = UrlMappingService(store, clock=clock, cache=fake_cache)
    code = await service.create("https://example.com/cached", ttl_hours=1)

    assert await service.resolve(code) == "https://example.com/cached"
    assert fake_cache.data[f"short:{code}"] == "https://example.com/cached"
    assert fake_cache.ttls[f"short:{code}"] == 3600

    # A cache hit still counts the click in the store
    assert await service.resolve(code) == "https://example.com/cached"
    assert (await service.stats(code)).click_count == 2


@pytest.mark.asyncio
async def test_failed_commit_leaves_cache_empty(service, db, clock, fake_cache):
    code = await service.create("https://example.com/cached")
    failing = UrlMappingService(FailingCommitStore(db), clock=clock, cache=fake_cache)

    with pytest.raises(StoreError):
        await failing.resolve(code)

    assert fake_cache.data == {}
    assert (await service.stats(code)).click_count == 0


@pytest.mark.asyncio
async def test_cached_url_never_outlives_expiry(store, clock, fake_cache):
    service = UrlMappingService(store, clock=clock, cache=fake_cache)
    code = await service.create("https://example.com/cached", ttl_hours=1)
    await service.resolve(code)

    clock.advance(hours=2)
    with pytest.raises(NotFoundError):
        await service.resolve(code)
    assert f"short:{code}" not in fake_cache.data
    assert (await service.stats(code)).click_count == 1


@pytest.mark.asyncio
async def test_permanent_links_are_cached_for_default_ttl(store, clock, fake_cache):
    service = UrlMappingService(store, clock=clock, cache=fake_cache)
    await service.create("https://example.com", custom_alias="forever")
    await service.resolve("forever")

    assert fake_cache.ttls["short:forever"] == settings.CACHE_DEFAULT_TTL_SECONDS
