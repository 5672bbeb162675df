from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...crud import SQLAlchemyRecordStore
from ...database import get_db
from ...redis import redis_client
from ...schemas import ErrorResponse, LinkCreate, LinkResponse, LinkStats
from ...services.lifecycle import UrlMappingService

router = APIRouter(tags=["links"])


def get_mapping_service(db: AsyncSession = Depends(get_db)) -> UrlMappingService:
    cache = redis_client if redis_client.client else None
    return UrlMappingService(SQLAlchemyRecordStore(db), cache=cache)


def build_short_url(short_code: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}/{short_code}"


@router.post(
    "/links",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def shorten_link(
    link_in: LinkCreate,
    service: UrlMappingService = Depends(get_mapping_service),
):
    original_url = str(link_in.url)
    short_code = await service.create(original_url, link_in.custom_alias, link_in.ttl_hours)

    return LinkResponse(
        short_code=short_code,
        short_url=build_short_url(short_code),
        original_url=original_url,
    )

@router.get("/links/{short_code}", response_model=LinkStats, responses={404: {"model": ErrorResponse}})
async def get_link_stats(
    short_code: str,
    service: UrlMappingService = Depends(get_mapping_service),
):
    stats = await service.stats(short_code)

    return LinkStats(
        original_url=stats.original_url,
        short_code=stats.short_code,
        short_url=build_short_url(stats.short_code),
        creation_date=stats.creation_date,
        expiration_date=stats.expiration_date,
        click_count=stats.click_count,
    )
