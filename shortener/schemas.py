from pydantic import AnyUrl, BaseModel, Field, UrlConstraints
from typing import Annotated, Optional
from datetime import datetime

# HttpUrl caps length at 2083; mapped URLs are unbounded text
WebUrl = Annotated[AnyUrl, UrlConstraints(allowed_schemes=["http", "https"], host_required=True)]

class LinkCreate(BaseModel):
    url: WebUrl
    # Alias syntax is checked by the allocator so it shares the 400 error path
    custom_alias: Optional[str] = None
    ttl_hours: Optional[int] = Field(None, gt=0)

class LinkResponse(BaseModel):
    short_code: str
    short_url: str
    original_url: str

class LinkStats(BaseModel):
    original_url: str
    short_code: str
    short_url: str
    creation_date: datetime
    expiration_date: Optional[datetime]
    click_count: int

class ErrorResponse(BaseModel):
    timestamp: datetime
    status: int
    error: str
    message: str
    path: str
