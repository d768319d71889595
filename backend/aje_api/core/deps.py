"""FastAPI dependencies: DB, current admin, CSRF, roles, rate limits, reference generator, mailer."""
import logging
from uuid import UUID

from fastapi import Cookie, Header, Request, Response, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.core.security import decode_access_token, verify_csrf_token
from aje_api.db import get_db, AdminUser
from aje_api.core.config import get_settings
from aje_api.core.metrics import record_rate_limit_denied
from aje_api.core.rate_limit import (
    RateLimitResult,
    check_rate_limit,
    get_client_ip,
    get_rate_limit_config,
    get_rate_limit_headers,
)
from aje_api.services.mailer import ConfirmationMailer, ResendMailer
from aje_api.services.reference import (
    CounterReferenceGenerator,
    ReferenceGenerator,
    RemoteReferenceGenerator,
)

logger = logging.getLogger(__name__)
settings = get_settings()

NOT_FOUND = "Not found"


async def get_current_admin_optional(
    request: Request,
    db: AsyncSession = Depends(get_db),
    cookie: str | None = Cookie(None, alias=settings.cookie_name),
) -> AdminUser | None:
    """Return current admin if valid JWT in cookie; else None (no 401)."""
    token = cookie
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload or "sub" not in payload:
        return None
    try:
        admin_id = UUID(payload["sub"])
    except (ValueError, TypeError):
        return None
    result = await db.execute(
        select(AdminUser).where(
            AdminUser.id == admin_id,
            AdminUser.is_active == True,
        )
    )
    admin = result.scalar_one_or_none()
    if admin is not None:
        request.state.user_id = admin.id
    return admin


async def get_current_admin(
    admin: AdminUser | None = Depends(get_current_admin_optional),
) -> AdminUser:
    """Require authenticated back-office user; 401 if not."""
    if admin is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return admin


def require_csrf(
    csrf_cookie: str | None = Cookie(None, alias=settings.csrf_cookie_name),
    csrf_header: str | None = Header(None, alias=settings.csrf_header_name),
) -> None:
    """Validate CSRF for state-changing methods. Raise 403 if invalid."""
    if not verify_csrf_token(csrf_cookie, csrf_header):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing CSRF token",
        )


def require_staff(admin: AdminUser = Depends(get_current_admin)) -> AdminUser:
    """Admin or agent: submissions triage, newsletter."""
    if admin.role not in ("admin", "agent"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Back-office role required",
        )
    return admin


def require_admin(admin: AdminUser = Depends(get_current_admin)) -> AdminUser:
    """Require admin role (security settings, audit viewer, maintenance, metrics)."""
    if admin.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return admin


def require_metrics_access(
    admin: AdminUser | None = Depends(get_current_admin_optional),
    x_metrics_secret: str | None = Header(None, alias="X-Metrics-Secret"),
) -> None:
    """Allow /metrics if: admin (when metrics_require_admin), or valid X-Metrics-Secret, or no guard (local)."""
    s = get_settings()
    if s.metrics_require_admin:
        if admin is None or admin.role != "admin":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Metrics require admin authentication",
            )
        return
    if s.metrics_secret:
        if x_metrics_secret != s.metrics_secret:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing X-Metrics-Secret",
            )
        return
    return


def get_reference_generator(db: AsyncSession = Depends(get_db)) -> ReferenceGenerator:
    """Remote generate-reference function when configured, else the local counter table."""
    s = get_settings()
    if s.reference_service_url:
        return RemoteReferenceGenerator(
            s.reference_service_url,
            api_key=s.reference_service_key,
            timeout=s.http_timeout_seconds,
        )
    return CounterReferenceGenerator(db)


def get_mailer() -> ConfirmationMailer:
    s = get_settings()
    return ResendMailer(
        api_key=s.resend_api_key,
        api_url=s.resend_api_url,
        sender=s.mail_from,
        timeout=s.http_timeout_seconds,
    )


async def enforce_rate_limit(request: Request, response: Response, db: AsyncSession, endpoint: str) -> RateLimitResult:
    """Count this request against endpoint's window; 429 with Retry-After when over the limit.

    Called from the route body, after request validation, so rejected payloads do not use quota.
    """
    result = await check_rate_limit(db, get_client_ip(request), get_rate_limit_config(endpoint))
    headers = get_rate_limit_headers(result)
    request.state.ratelimit_remaining = result.remaining
    if not result.allowed:
        record_rate_limit_denied(endpoint)
        logger.info("Rate limit exceeded endpoint=%s", endpoint)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Trop de requêtes. Veuillez réessayer plus tard.",
            headers=headers,
        )
    response.headers["X-RateLimit-Remaining"] = headers["X-RateLimit-Remaining"]
    response.headers["X-RateLimit-Reset"] = headers["X-RateLimit-Reset"]
    return result
