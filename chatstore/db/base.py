"""
Declarative base, shared column types and ID generators.
"""
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    """Random UUID4 string (user IDs)."""
    return str(uuid.uuid4())


def new_sortable_id() -> str:
    """
    Time sortable UUID (version 7 layout).

    The leading 48 bits hold the unix time in milliseconds, so IDs generated
    later sort after earlier ones (ordering inside one millisecond is random).
    """
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (unix_ms & 0xFFFFFFFFFFFF) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & 0x3FFFFFFFFFFFFFFF
    return str(uuid.UUID(int=value))


class UTCDateTime(TypeDecorator):
    """
    DateTime stored as naive UTC and returned timezone aware.

    SQLite has no timezone support, so every value is normalized to UTC before
    it is written; this keeps ORDER BY on the column chronological. Naive
    inputs are taken to already be UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)
