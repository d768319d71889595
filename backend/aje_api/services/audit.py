"""Audit logging: login, submission updates, newsletter changes, settings updates. Never log secrets."""
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.db.models import AuditLog
from aje_api.core.logging_redaction import redact_for_log


async def log_audit(
    db: AsyncSession,
    action: str,
    resource_type: str,
    resource_id: str | UUID | None = None,
    *,
    user_id: UUID | None = None,
    user_email: str | None = None,
    old_data: dict | None = None,
    new_data: dict | None = None,
    status: str = "success",
    error_message: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        user_email=user_email,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        status=status,
        error_message=error_message,
        old_data=redact_for_log(old_data) if old_data else None,
        new_data=redact_for_log(new_data) if new_data else None,
        ip=ip,
        user_agent=user_agent,
    )
    db.add(entry)
    await db.flush()
    return entry
