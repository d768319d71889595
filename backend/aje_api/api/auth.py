"""Back-office auth: login, logout, me. Cookie-based JWT + CSRF."""
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.core.config import get_settings
from aje_api.core.deps import get_current_admin, require_csrf
from aje_api.core.rate_limit import get_client_ip, is_login_rate_limited
from aje_api.core.security import create_access_token, create_csrf_token, verify_password
from aje_api.db import get_db, AdminUser
from aje_api.api.schemas import AdminProfile, LoginRequest
from aje_api.services.audit import log_audit

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def _cookie_params(secure: bool | None = None, samesite: str | None = None) -> dict:
    secure = secure if secure is not None else settings.cookie_secure
    samesite = samesite or settings.cookie_samesite
    return {
        "httponly": True,
        "samesite": samesite,
        "path": "/",
        "max_age": settings.access_token_expire_minutes * 60,
        "secure": secure,
    }


def _profile(admin: AdminUser) -> AdminProfile:
    return AdminProfile(id=admin.id, email=admin.email, full_name=admin.full_name, role=admin.role)


@router.post("/login")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    email = str(body.email).lower()
    if is_login_rate_limited(email):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many login attempts")
    result = await db.execute(
        select(AdminUser).where(AdminUser.email == email, AdminUser.is_active == True)
    )
    admin = result.scalar_one_or_none()
    ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent")
    if not admin or not verify_password(body.password, admin.password_hash):
        await log_audit(
            db,
            "login",
            "auth",
            user_id=admin.id if admin else None,
            user_email=email,
            status="failure",
            error_message="invalid credentials",
            ip=ip,
            user_agent=user_agent,
        )
        # Persist the failure entry before raising.
        await db.commit()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    access_token = create_access_token(str(admin.id), admin.role)
    csrf_token = create_csrf_token()
    response.set_cookie(key=settings.cookie_name, value=access_token, **_cookie_params())
    response.set_cookie(
        key=settings.csrf_cookie_name,
        value=csrf_token,
        httponly=False,
        samesite=settings.cookie_samesite,
        path="/",
        max_age=3600 * 24,
        secure=settings.cookie_secure,
    )
    await log_audit(
        db,
        "login",
        "auth",
        user_id=admin.id,
        user_email=admin.email,
        ip=ip,
        user_agent=user_agent,
    )
    return {"user": _profile(admin), "csrf_token": csrf_token}


@router.post("/logout", dependencies=[Depends(require_csrf)])
async def logout(
    request: Request,
    response: Response,
    admin: AdminUser = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    await log_audit(
        db,
        "logout",
        "auth",
        user_id=admin.id,
        user_email=admin.email,
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    response.delete_cookie(settings.cookie_name, path="/")
    response.delete_cookie(settings.csrf_cookie_name, path="/")
    return {"ok": True}


@router.get("/me", response_model=AdminProfile)
async def me(admin: AdminUser = Depends(get_current_admin)):
    return _profile(admin)
