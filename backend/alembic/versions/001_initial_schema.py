"""Initial schema (admin_users, submissions, newsletter, security_settings, rate_limit_tracking, reference_counters, audit_logs).

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "admin_users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "demandes_avis",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("numero_reference", sa.Text(), nullable=True),
        sa.Column("nom_complet", sa.Text(), nullable=False),
        sa.Column("fonction", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("telephone", sa.Text(), nullable=True),
        sa.Column("organisme", sa.Text(), nullable=False),
        sa.Column("objet", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("urgence", sa.Text(), nullable=False),
        sa.Column("delai_souhaite", sa.Text(), nullable=True),
        sa.Column("documents_fournis", postgresql.JSONB(), nullable=True),
        sa.Column("statut", sa.Text(), nullable=False),
        sa.Column("reponse", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_demandes_avis_numero_reference", "demandes_avis", ["numero_reference"])
    op.create_index("ix_demandes_avis_statut_created", "demandes_avis", ["statut", "created_at"])
    op.create_table(
        "consultations_juridiques",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("numero_reference", sa.Text(), nullable=True),
        sa.Column("organisme", sa.Text(), nullable=False),
        sa.Column("nom_demandeur", sa.Text(), nullable=False),
        sa.Column("fonction", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("telephone", sa.Text(), nullable=True),
        sa.Column("objet", sa.Text(), nullable=False),
        sa.Column("contexte", sa.Text(), nullable=False),
        sa.Column("statut", sa.Text(), nullable=False),
        sa.Column("date_consultation", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes_internes", sa.Text(), nullable=True),
        sa.Column("conseiller_assigne", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["conseiller_assigne"], ["admin_users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_consultations_juridiques_numero_reference", "consultations_juridiques", ["numero_reference"])
    op.create_index("ix_consultations_statut_created", "consultations_juridiques", ["statut", "created_at"])
    op.create_table(
        "signalements_contentieux",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("numero_dossier", sa.Text(), nullable=True),
        sa.Column("organisme", sa.Text(), nullable=False),
        sa.Column("nom_demandeur", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("telephone", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("priorite", sa.Text(), nullable=False),
        sa.Column("statut", sa.Text(), nullable=False),
        sa.Column("notes_internes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_signalements_contentieux_numero_dossier", "signalements_contentieux", ["numero_dossier"])
    op.create_index("ix_signalements_statut_created", "signalements_contentieux", ["statut", "created_at"])
    op.create_table(
        "contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("numero_reference", sa.Text(), nullable=True),
        sa.Column("nom", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("telephone", sa.Text(), nullable=True),
        sa.Column("sujet", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("statut", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contacts_numero_reference", "contacts", ["numero_reference"])
    op.create_index("ix_contacts_statut_created", "contacts", ["statut", "created_at"])
    op.create_table(
        "job_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("numero_reference", sa.Text(), nullable=True),
        sa.Column("job_offer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_spontaneous", sa.Boolean(), nullable=False),
        sa.Column("nom", sa.Text(), nullable=False),
        sa.Column("prenom", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("telephone", sa.Text(), nullable=True),
        sa.Column("lettre_motivation", sa.Text(), nullable=False),
        sa.Column("statut", sa.Text(), nullable=False),
        sa.Column("notes_internes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_job_applications_numero_reference", "job_applications", ["numero_reference"])
    op.create_index("ix_job_applications_statut_created", "job_applications", ["statut", "created_at"])
    op.create_table(
        "newsletter_subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("subscribed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("unsubscribe_token", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("unsubscribe_token"),
    )
    op.create_table(
        "security_settings",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("setting_key", sa.Text(), nullable=False),
        sa.Column("setting_value", postgresql.JSONB(), nullable=False),
        sa.Column("updated_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["updated_by"], ["admin_users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("setting_key"),
    )
    op.create_table(
        "rate_limit_tracking",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("identifier", sa.Text(), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_rate_limit_tracking_identifier_endpoint_window",
        "rate_limit_tracking",
        ["identifier", "endpoint", "window_start"],
    )
    op.create_table(
        "reference_counters",
        sa.Column("form_code", sa.Text(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("form_code"),
    )
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_email", sa.Text(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("resource_type", sa.Text(), nullable=False),
        sa.Column("resource_id", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("old_data", postgresql.JSONB(), nullable=True),
        sa.Column("new_data", postgresql.JSONB(), nullable=True),
        sa.Column("ip", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["admin_users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_action_created", "audit_logs", ["action", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_action_created", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("reference_counters")
    op.drop_index("ix_rate_limit_tracking_identifier_endpoint_window", table_name="rate_limit_tracking")
    op.drop_table("rate_limit_tracking")
    op.drop_table("security_settings")
    op.drop_table("newsletter_subscriptions")
    for table, ref_col in (
        ("job_applications", "numero_reference"),
        ("contacts", "numero_reference"),
        ("signalements_contentieux", "numero_dossier"),
        ("consultations_juridiques", "numero_reference"),
        ("demandes_avis", "numero_reference"),
    ):
        op.drop_index(f"ix_{table}_{ref_col}", table_name=table)
    op.drop_index("ix_job_applications_statut_created", table_name="job_applications")
    op.drop_index("ix_contacts_statut_created", table_name="contacts")
    op.drop_index("ix_signalements_statut_created", table_name="signalements_contentieux")
    op.drop_index("ix_consultations_statut_created", table_name="consultations_juridiques")
    op.drop_index("ix_demandes_avis_statut_created", table_name="demandes_avis")
    for table in (
        "job_applications",
        "contacts",
        "signalements_contentieux",
        "consultations_juridiques",
        "demandes_avis",
        "admin_users",
    ):
        op.drop_table(table)
