from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase

from sobi.config import get_settings


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # Stored without tzinfo so sqlite and postgres round-trip the same value.
    return datetime.now(timezone.utc).replace(tzinfo=None)


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    return create_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_pre_ping=True,
    )
