from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, BigInteger, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator
from .database import Base


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite has no timezone support and hands back naive values, so bound
    values are normalised to UTC and loaded values get UTC attached.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime given for a UTC column")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class UrlMapping(Base):
    __tablename__ = "url_mappings"

    # SQLite only autoincrements a plain INTEGER primary key
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    # NULL only while a generated code is pending (see services.allocator)
    short_code: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    creation_date: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True), nullable=True)
    click_count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    __table_args__ = (
        Index("idx_url_mappings_expiration_date", "expiration_date"),
        # AUTOINCREMENT keeps SQLite from handing out the id of a swept row again
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<UrlMapping id={self.id} short_code={self.short_code!r}>"
