"""Rate limiting.

Public form endpoints use a fixed-window counter persisted in ``rate_limit_tracking`` so the
limit holds across workers. The global switch lives in ``security_settings`` (key
``rate_limiting``) and is read once per check. Store errors fail open: a broken limiter must
not block citizens. Each limiter statement runs inside a SAVEPOINT, so a store error rolls back
only the limiter work and the request transaction stays usable for the submission.

Admin login keeps a simple in-memory limiter (per process).
"""
import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Request
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.core.config import get_settings
from aje_api.core.metrics import record_rate_limit_fail_open
from aje_api.db.models import RateLimitTracking, SecuritySetting

logger = logging.getLogger(__name__)

RATE_LIMITING_SETTING_KEY = "rate_limiting"

# Logical endpoints protected by the tracking-table limiter
ENDPOINTS = ("avis", "consultation", "signalement", "contact", "candidature", "newsletter", "functions")


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_minutes: int
    endpoint: str


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime


def get_rate_limit_config(endpoint: str) -> RateLimitConfig:
    """Static per-endpoint policy from settings (RATE_LIMIT_<ENDPOINT>_MAX / _WINDOW_MINUTES)."""
    if endpoint not in ENDPOINTS:
        raise ValueError(f"Unknown rate-limited endpoint: {endpoint}")
    s = get_settings()
    return RateLimitConfig(
        max_requests=getattr(s, f"rate_limit_{endpoint}_max"),
        window_minutes=getattr(s, f"rate_limit_{endpoint}_window_minutes"),
        endpoint=endpoint,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    # SQLite returns naive datetimes; everything we store is UTC.
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


async def load_rate_limiting_enabled(db: AsyncSession) -> bool:
    """True only if security_settings.rate_limiting.enabled is set. Missing row or read error -> False."""
    try:
        async with db.begin_nested():
            result = await db.execute(
                select(SecuritySetting.setting_value).where(SecuritySetting.setting_key == RATE_LIMITING_SETTING_KEY)
            )
            value = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.exception("Failed to read rate_limiting setting; limiter disabled for this check")
        return False
    return bool(isinstance(value, dict) and value.get("enabled"))


async def check_rate_limit(
    db: AsyncSession,
    identifier: str,
    config: RateLimitConfig,
    *,
    enabled: bool | None = None,
    now: datetime | None = None,
) -> RateLimitResult:
    """Count one request for (identifier, config.endpoint) and decide whether it may proceed.

    ``enabled`` overrides the security_settings lookup (tests, callers that already loaded it).
    The increment is a single conditional UPDATE (request_count < max_requests), so two
    concurrent requests cannot both take the last slot of an existing window. Two first
    requests of a brand-new window may still both insert; the lookup then uses the newest row.
    """
    now = now or _utcnow()
    window = timedelta(minutes=config.window_minutes)
    if enabled is None:
        enabled = await load_rate_limiting_enabled(db)
    if not enabled:
        return RateLimitResult(allowed=True, remaining=config.max_requests, reset_at=now)

    window_floor = now - window
    try:
        async with db.begin_nested():
            result = await db.execute(
                select(RateLimitTracking)
                .where(
                    RateLimitTracking.identifier == identifier,
                    RateLimitTracking.endpoint == config.endpoint,
                    RateLimitTracking.window_start >= window_floor,
                )
                .order_by(RateLimitTracking.window_start.desc())
                .limit(1)
                .execution_options(populate_existing=True)
            )
            existing = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.exception("Rate limit lookup failed for endpoint=%s; failing open", config.endpoint)
        record_rate_limit_fail_open(config.endpoint)
        return RateLimitResult(allowed=True, remaining=config.max_requests, reset_at=now)

    if existing is None:
        try:
            async with db.begin_nested():
                db.add(
                    RateLimitTracking(
                        identifier=identifier,
                        endpoint=config.endpoint,
                        request_count=1,
                        window_start=now,
                    )
                )
                await db.flush()
        except SQLAlchemyError:
            logger.exception("Failed to record rate limit window for endpoint=%s", config.endpoint)
            record_rate_limit_fail_open(config.endpoint)
        return RateLimitResult(allowed=True, remaining=config.max_requests - 1, reset_at=now + window)

    observed = existing.request_count
    reset_at = _as_utc(existing.window_start) + window
    if observed >= config.max_requests:
        return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

    try:
        async with db.begin_nested():
            upd = await db.execute(
                update(RateLimitTracking)
                .where(
                    RateLimitTracking.id == existing.id,
                    RateLimitTracking.request_count < config.max_requests,
                )
                .values(request_count=RateLimitTracking.request_count + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
    except SQLAlchemyError:
        # Decision already made on the observed count; not retracted.
        logger.exception("Failed to increment rate limit counter for endpoint=%s", config.endpoint)
        record_rate_limit_fail_open(config.endpoint)
        return RateLimitResult(allowed=True, remaining=max(config.max_requests - observed - 1, 0), reset_at=reset_at)
    if upd.rowcount == 0:
        # A concurrent request took the last slot between our read and write.
        return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)
    return RateLimitResult(allowed=True, remaining=max(config.max_requests - observed - 1, 0), reset_at=reset_at)


def get_rate_limit_headers(result: RateLimitResult, now: datetime | None = None) -> dict[str, str]:
    """Advisory headers: remaining count, reset time (ISO-8601) and whole seconds until reset."""
    now = now or _utcnow()
    seconds = (_as_utc(result.reset_at) - now).total_seconds()
    retry_after = max(math.ceil(seconds), 0)
    return {
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": _as_utc(result.reset_at).isoformat(),
        "Retry-After": str(retry_after),
    }


async def purge_expired_windows(db: AsyncSession, older_than_minutes: int, now: datetime | None = None) -> int:
    """Delete tracking rows whose window started more than older_than_minutes ago. Returns row count."""
    cutoff = (now or _utcnow()) - timedelta(minutes=older_than_minutes)
    result = await db.execute(
        delete(RateLimitTracking)
        .where(RateLimitTracking.window_start < cutoff)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def get_client_ip(request: Request) -> str:
    """Client IP for rate limiting: first X-Forwarded-For hop when behind a trusted proxy, else the peer."""
    if get_settings().trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return request.client.host if request.client else "unknown"


# ----- In-memory limiter (admin login) -----

_buckets: dict[str, list[float]] = defaultdict(list)
_window = 60.0


def _check_limit(identifier: str, limit_per_minute: int) -> bool:
    now = time.monotonic()
    bucket = _buckets[identifier]
    bucket[:] = [t for t in bucket if now - t < _window]
    if len(bucket) >= limit_per_minute:
        return True
    bucket.append(now)
    return False


def is_login_rate_limited(identifier: str) -> bool:
    return _check_limit(identifier, get_settings().login_rate_limit_per_minute)
