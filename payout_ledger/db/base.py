from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

JSONType = JSON().with_variant(JSONB(), "postgresql")


class EnumString(TypeDecorator):
    """Stores a str Enum by value and rejects unknown values on load."""

    impl = String
    cache_ok = True

    def __init__(self, enum_cls: type[Enum], length: int = 50) -> None:
        super().__init__(length)
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect) -> Optional[str]:
        if value is None:
            return None
        return self.enum_cls(value).value

    def process_result_value(self, value, dialect) -> Optional[Enum]:
        if value is None:
            return None
        try:
            return self.enum_cls(value)
        except ValueError as exc:
            raise ValueError(
                f"Unrecognized {self.enum_cls.__name__} value in storage: {value!r}"
            ) from exc


class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite drops tzinfo, so values are normalized to UTC before binding and
    re-tagged as UTC when loaded.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
