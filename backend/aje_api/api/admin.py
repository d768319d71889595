"""Back-office: submissions triage, newsletter, security settings, audit viewer, maintenance.

Admin or agent for submissions and newsletter; admin only for settings, audit and maintenance.
"""
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.core.deps import NOT_FOUND, require_admin, require_csrf, require_staff
from aje_api.core.rate_limit import get_client_ip, purge_expired_windows
from aje_api.db import get_db, AdminUser
from aje_api.db.models import AuditLog, NewsletterSubscription, SecuritySetting
from aje_api.api.schemas import (
    AuditLogEntry,
    AuditLogListResponse,
    NewsletterEntry,
    NewsletterUpdate,
    PurgeRateLimitsRequest,
    PurgeRateLimitsResponse,
    SecuritySettingEntry,
    SecuritySettingUpdate,
    StatusCounts,
    SubmissionListResponse,
    SubmissionUpdate,
)
from aje_api.services.audit import log_audit
from aje_api.services.submission_registry import (
    InvalidUpdate,
    SubmissionKind,
    get_kind,
    serialize_record,
    snapshot,
    validate_update,
)

router = APIRouter(prefix="/admin", tags=["admin"])


def _kind_or_404(kind: str) -> SubmissionKind:
    k = get_kind(kind)
    if k is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return k


def _client(request: Request) -> dict:
    return {"ip": get_client_ip(request), "user_agent": request.headers.get("user-agent")}


async def _get_record(db: AsyncSession, kind: SubmissionKind, submission_id: UUID):
    result = await db.execute(select(kind.model).where(kind.model.id == submission_id))
    record = result.scalar_one_or_none()
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return record


# ----- Submissions -----
@router.get("/submissions/{kind}", response_model=SubmissionListResponse)
async def list_submissions(
    kind: str,
    admin: AdminUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    statut: str | None = Query(None, description="Filter by status"),
    q: str | None = Query(None, max_length=200, description="Name, e-mail or reference substring"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Newest first, offset-paginated."""
    k = _kind_or_404(kind)
    model = k.model
    stmt = select(model).order_by(model.created_at.desc(), model.id.desc())
    if statut is not None:
        stmt = stmt.where(model.statut == statut)
    if q:
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(or_(*(getattr(model, f).ilike(pattern) for f in k.search_fields)))
    stmt = stmt.offset(offset).limit(limit + 1)
    result = await db.execute(stmt)
    rows = result.scalars().all()
    has_more = len(rows) > limit
    if has_more:
        rows = rows[:limit]
    return SubmissionListResponse(
        items=[serialize_record(r) for r in rows],
        next_offset=(offset + limit) if has_more else None,
    )


@router.get("/submissions/{kind}/stats", response_model=StatusCounts)
async def submission_stats(
    kind: str,
    admin: AdminUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Count per status; every status of the kind is present, zero included."""
    k = _kind_or_404(kind)
    result = await db.execute(select(k.model.statut, func.count()).group_by(k.model.statut))
    counts = {s: 0 for s in k.statuses}
    for statut, n in result.all():
        counts[statut] = n
    return StatusCounts(counts=counts, total=sum(counts.values()))


@router.get("/submissions/{kind}/{submission_id}")
async def get_submission(
    kind: str,
    submission_id: UUID,
    admin: AdminUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    k = _kind_or_404(kind)
    record = await _get_record(db, k, submission_id)
    return serialize_record(record)


@router.patch("/submissions/{kind}/{submission_id}", dependencies=[Depends(require_csrf)])
async def update_submission(
    kind: str,
    submission_id: UUID,
    body: SubmissionUpdate,
    request: Request,
    admin: AdminUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Update the kind's editable fields (status workflow, internal notes, answer). Audited."""
    k = _kind_or_404(kind)
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="No fields to update")
    try:
        changes = validate_update(k, changes)
    except InvalidUpdate as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    record = await _get_record(db, k, submission_id)
    touched = set(changes)
    if k.slug == "consultations":
        touched.add("conseiller_assigne")
    old = snapshot(record, touched)
    for field, value in changes.items():
        setattr(record, field, value)
    if k.slug == "consultations":
        record.conseiller_assigne = admin.id
    await db.flush()
    await log_audit(
        db,
        "update",
        k.model.__tablename__,
        record.id,
        user_id=admin.id,
        user_email=admin.email,
        old_data=old,
        new_data=snapshot(record, touched),
        **_client(request),
    )
    return serialize_record(record)


# ----- Newsletter -----
@router.get("/newsletter", response_model=list[NewsletterEntry])
async def list_newsletter(
    admin: AdminUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    active: bool | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    stmt = select(NewsletterSubscription).order_by(NewsletterSubscription.subscribed_at.desc())
    if active is not None:
        stmt = stmt.where(NewsletterSubscription.is_active == active)
    result = await db.execute(stmt.offset(offset).limit(limit))
    return [
        NewsletterEntry(id=s.id, email=s.email, subscribed_at=s.subscribed_at, is_active=s.is_active)
        for s in result.scalars().all()
    ]


async def _get_subscription(db: AsyncSession, subscription_id: UUID) -> NewsletterSubscription:
    result = await db.execute(select(NewsletterSubscription).where(NewsletterSubscription.id == subscription_id))
    sub = result.scalar_one_or_none()
    if sub is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return sub


@router.patch("/newsletter/{subscription_id}", response_model=NewsletterEntry, dependencies=[Depends(require_csrf)])
async def update_newsletter(
    subscription_id: UUID,
    body: NewsletterUpdate,
    request: Request,
    admin: AdminUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    sub = await _get_subscription(db, subscription_id)
    old = {"is_active": sub.is_active}
    sub.is_active = body.is_active
    await db.flush()
    await log_audit(
        db, "update", "newsletter_subscriptions", sub.id,
        user_id=admin.id, user_email=admin.email,
        old_data=old, new_data={"is_active": sub.is_active},
        **_client(request),
    )
    return NewsletterEntry(id=sub.id, email=sub.email, subscribed_at=sub.subscribed_at, is_active=sub.is_active)


@router.delete("/newsletter/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_csrf)])
async def delete_newsletter(
    subscription_id: UUID,
    request: Request,
    admin: AdminUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    sub = await _get_subscription(db, subscription_id)
    await db.delete(sub)
    await db.flush()
    await log_audit(
        db, "delete", "newsletter_subscriptions", subscription_id,
        user_id=admin.id, user_email=admin.email,
        **_client(request),
    )


# ----- Security settings (admin only) -----
def _setting_entry(s: SecuritySetting) -> SecuritySettingEntry:
    return SecuritySettingEntry(
        setting_key=s.setting_key,
        setting_value=s.setting_value,
        updated_by=s.updated_by,
        updated_at=s.updated_at,
    )


@router.get("/security-settings", response_model=list[SecuritySettingEntry])
async def list_security_settings(
    admin: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(SecuritySetting).order_by(SecuritySetting.setting_key))
    return [_setting_entry(s) for s in result.scalars().all()]


@router.put("/security-settings/{key}", response_model=SecuritySettingEntry, dependencies=[Depends(require_csrf)])
async def put_security_setting(
    key: str,
    body: SecuritySettingUpdate,
    request: Request,
    admin: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace one setting (e.g. rate_limiting {enabled, ...}). Takes effect on the next request."""
    result = await db.execute(select(SecuritySetting).where(SecuritySetting.setting_key == key))
    setting = result.scalar_one_or_none()
    old = setting.setting_value if setting is not None else None
    if setting is None:
        setting = SecuritySetting(setting_key=key, setting_value=body.setting_value, updated_by=admin.id)
        db.add(setting)
    else:
        setting.setting_value = body.setting_value
        setting.updated_by = admin.id
        setting.updated_at = datetime.now(timezone.utc)
    await db.flush()
    await log_audit(
        db, "update", "security_settings", key,
        user_id=admin.id, user_email=admin.email,
        old_data=old, new_data=body.setting_value,
        **_client(request),
    )
    return _setting_entry(setting)


# ----- Audit viewer (admin only) -----
@router.get("/audit", response_model=AuditLogListResponse)
async def list_audit_logs(
    admin: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    action: str | None = Query(None, description="Filter by action"),
    status_: str | None = Query(None, alias="status", description="success | failure"),
    resource_type: str | None = Query(None, description="Filter by resource_type"),
    user_id: UUID | None = Query(None, description="Filter by user_id"),
    from_time: datetime | None = Query(None, description="Events on or after (ISO datetime)"),
    to_time: datetime | None = Query(None, description="Events on or before (ISO datetime)"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List audit entries with optional filters and pagination. Admin only."""
    q = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if action is not None:
        q = q.where(AuditLog.action == action)
    if status_ is not None:
        q = q.where(AuditLog.status == status_)
    if resource_type is not None:
        q = q.where(AuditLog.resource_type == resource_type)
    if user_id is not None:
        q = q.where(AuditLog.user_id == user_id)
    if from_time is not None:
        q = q.where(AuditLog.created_at >= from_time.astimezone(timezone.utc))
    if to_time is not None:
        q = q.where(AuditLog.created_at <= to_time.astimezone(timezone.utc))
    q = q.offset(offset).limit(limit + 1)
    result = await db.execute(q)
    rows = result.scalars().all()
    has_more = len(rows) > limit
    if has_more:
        rows = rows[:limit]
    events = [
        AuditLogEntry(
            id=r.id,
            user_id=r.user_id,
            user_email=r.user_email,
            action=r.action,
            resource_type=r.resource_type,
            resource_id=r.resource_id,
            status=r.status,
            error_message=r.error_message,
            old_data=r.old_data,
            new_data=r.new_data,
            ip=r.ip,
            user_agent=r.user_agent,
            created_at=r.created_at,
        )
        for r in rows
    ]
    next_offset = (offset + limit) if has_more else None
    return AuditLogListResponse(events=events, next_offset=next_offset)


# ----- Maintenance (admin only) -----
@router.post("/rate-limits/purge", response_model=PurgeRateLimitsResponse, dependencies=[Depends(require_csrf)])
async def purge_rate_limits(
    body: PurgeRateLimitsRequest,
    request: Request,
    admin: AdminUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete tracking rows whose window started more than older_than_minutes ago."""
    deleted = await purge_expired_windows(db, body.older_than_minutes)
    await log_audit(
        db, "purge", "rate_limit_tracking", None,
        user_id=admin.id, user_email=admin.email,
        new_data={"older_than_minutes": body.older_than_minutes, "deleted": deleted},
        **_client(request),
    )
    return PurgeRateLimitsResponse(deleted=deleted)
