"""
Helper utilities and common functions
"""

import asyncio
import math
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

logger = structlog.get_logger("followup.helpers")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_since(moment: Optional[datetime], now: datetime) -> Optional[float]:
    """Minutes elapsed from moment to now, None if moment is unknown"""
    if moment is None:
        return None
    return (ensure_utc(now) - ensure_utc(moment)).total_seconds() / 60


def hours_since(moment: Optional[datetime], now: datetime) -> Optional[float]:
    minutes = minutes_since(moment, now)
    return None if minutes is None else minutes / 60


def local_hour(now: datetime, tz_name: Optional[str] = None) -> int:
    """
    Wall-clock hour used for quiet hours

    Naive instants are read as UTC. With tz_name the instant is converted to
    that zone, otherwise to the host's local zone.
    """
    if tz_name:
        from zoneinfo import ZoneInfo
        return ensure_utc(now).astimezone(ZoneInfo(tz_name)).hour
    return ensure_utc(now).astimezone().hour


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values"""
    return int(math.floor(value + 0.5))


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


async def retry_async(
    coro_func,
    max_retries: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,)
) -> Any:
    """Retry async function with exponential backoff"""
    last_exception = None

    for attempt in range(max_retries + 1):
        try:
            return await coro_func()
        except exceptions as e:
            last_exception = e

            if attempt == max_retries:
                break

            wait_time = delay * (backoff_factor ** attempt)
            logger.warning(
                f"Attempt {attempt + 1} failed, retrying in {wait_time}s",
                error=str(e)
            )
            await asyncio.sleep(wait_time)

    raise last_exception
