"""SQLAlchemy models: public submissions, newsletter, security settings, rate-limit tracking, audit."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def gen_uuid() -> uuid.UUID:
    return uuid.uuid4()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class AdminUser(Base):
    """Back-office account. role: admin (everything) or agent (submissions, newsletter)."""
    __tablename__ = "admin_users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="agent")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class DemandeAvis(Base):
    """Legal opinion request from an administration."""
    __tablename__ = "demandes_avis"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    numero_reference: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    nom_complet: Mapped[str] = mapped_column(Text, nullable=False)
    fonction: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    telephone: Mapped[str | None] = mapped_column(Text, nullable=True)
    organisme: Mapped[str] = mapped_column(Text, nullable=False)
    objet: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    urgence: Mapped[str] = mapped_column(Text, nullable=False, default="normal")  # normal, urgent, tres_urgent
    delai_souhaite: Mapped[str | None] = mapped_column(Text, nullable=True)
    documents_fournis: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    statut: Mapped[str] = mapped_column(Text, nullable=False, default="en_attente")
    reponse: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (Index("ix_demandes_avis_statut_created", "statut", "created_at"),)


class ConsultationJuridique(Base):
    """Preventive legal consultation request."""
    __tablename__ = "consultations_juridiques"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    numero_reference: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    organisme: Mapped[str] = mapped_column(Text, nullable=False)
    nom_demandeur: Mapped[str] = mapped_column(Text, nullable=False)
    fonction: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    telephone: Mapped[str | None] = mapped_column(Text, nullable=True)
    objet: Mapped[str] = mapped_column(Text, nullable=False)
    contexte: Mapped[str] = mapped_column(Text, nullable=False)
    statut: Mapped[str] = mapped_column(Text, nullable=False, default="nouveau")
    date_consultation: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes_internes: Mapped[str | None] = mapped_column(Text, nullable=True)
    conseiller_assigne: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("admin_users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (Index("ix_consultations_statut_created", "statut", "created_at"),)


class SignalementContentieux(Base):
    """Urgent litigation report."""
    __tablename__ = "signalements_contentieux"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    numero_dossier: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    organisme: Mapped[str] = mapped_column(Text, nullable=False)
    nom_demandeur: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    telephone: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priorite: Mapped[str] = mapped_column(Text, nullable=False, default="urgent")
    statut: Mapped[str] = mapped_column(Text, nullable=False, default="nouveau")
    notes_internes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (Index("ix_signalements_statut_created", "statut", "created_at"),)


class Contact(Base):
    """Contact message or appointment request."""
    __tablename__ = "contacts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    numero_reference: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    nom: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    telephone: Mapped[str | None] = mapped_column(Text, nullable=True)
    sujet: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    statut: Mapped[str] = mapped_column(Text, nullable=False, default="nouveau")  # nouveau, lu, traite
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (Index("ix_contacts_statut_created", "statut", "created_at"),)


class JobApplication(Base):
    """Job application (for a published offer or spontaneous)."""
    __tablename__ = "job_applications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    numero_reference: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    job_offer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    is_spontaneous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    nom: Mapped[str] = mapped_column(Text, nullable=False)
    prenom: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    telephone: Mapped[str | None] = mapped_column(Text, nullable=True)
    lettre_motivation: Mapped[str] = mapped_column(Text, nullable=False)
    statut: Mapped[str] = mapped_column(Text, nullable=False, default="nouveau")
    notes_internes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (Index("ix_job_applications_statut_created", "statut", "created_at"),)


class NewsletterSubscription(Base):
    __tablename__ = "newsletter_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    subscribed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    unsubscribe_token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class SecuritySetting(Base):
    """Key/JSON settings edited from the back-office (rate_limiting, password_policy, ...)."""
    __tablename__ = "security_settings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    setting_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    setting_value: Mapped[dict] = mapped_column(JSONType, nullable=False)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("admin_users.id"), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class RateLimitTracking(Base):
    """One counter per (identifier, endpoint, window). Written only by core.rate_limit."""
    __tablename__ = "rate_limit_tracking"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    identifier: Mapped[str] = mapped_column(Text, nullable=False)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_rate_limit_tracking_identifier_endpoint_window", "identifier", "endpoint", "window_start"),
    )


class ReferenceCounter(Base):
    """Last issued sequence number per form code (DA, CJ, SC, ...)."""
    __tablename__ = "reference_counters"

    form_code: Mapped[str] = mapped_column(Text, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=gen_uuid)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("admin_users.id"), nullable=True)
    user_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    resource_type: Mapped[str] = mapped_column(Text, nullable=False)
    resource_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="success")  # success | failure
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    old_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    new_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    ip: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("ix_audit_logs_action_created", "action", "created_at"),)
