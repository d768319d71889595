"""
Seed script for local dev: one admin and one agent account, default security settings
(rate limiting enabled), and a few sample submissions for the back-office.
Run from backend/: python scripts/seed_dev.py
"""
import asyncio
import os

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Add parent to path so aje_api is importable
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from aje_api.core.config import get_settings
from aje_api.core.security import hash_password
from aje_api.db.models import (
    AdminUser,
    Base,
    ConsultationJuridique,
    Contact,
    DemandeAvis,
    ReferenceCounter,
    SecuritySetting,
)

settings = get_settings()
engine = create_async_engine(settings.database_url, echo=False)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

DEFAULT_SECURITY_SETTINGS = {
    "password_policy": {
        "min_length": 12,
        "require_uppercase": True,
        "require_lowercase": True,
        "require_numbers": True,
        "require_special_chars": True,
        "password_expiry_days": 90,
        "prevent_reuse_count": 5,
    },
    "two_factor_auth": {
        "enabled": False,
        "required_for_admins": False,
        "methods": ["totp"],
    },
    "rate_limiting": {
        "enabled": True,
        "contact_form_limit": 5,
        "avis_form_limit": 3,
        "window_minutes": 60,
        "global_limit": 100,
    },
    "backup_settings": {
        "auto_backup_enabled": True,
        "backup_frequency_hours": 24,
        "retention_days": 30,
        "last_backup_check": None,
        "last_restore_test": None,
    },
}


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        r = await db.execute(select(AdminUser).limit(1))
        if r.scalar_one_or_none():
            print("Already seeded. Skip.")
            return

        pw = hash_password("admin123")
        admin = AdminUser(email="admin@aje.td", password_hash=pw, full_name="Administrateur AJE", role="admin")
        agent = AdminUser(email="agent@aje.td", password_hash=pw, full_name="Agent AJE", role="agent")
        db.add_all([admin, agent])
        await db.flush()

        for key, value in DEFAULT_SECURITY_SETTINGS.items():
            db.add(SecuritySetting(setting_key=key, setting_value=value, updated_by=admin.id))

        db.add_all([
            DemandeAvis(
                numero_reference="DA-000001", nom_complet="Mahamat Abakar", fonction="Directeur juridique",
                email="m.abakar@example.td", organisme="Ministère des Finances", objet="Interprétation d'un contrat",
                description="Contexte de démonstration.\n\nQuestion juridique :\nLe contrat est-il résiliable ?",
                urgence="urgent", statut="en_attente",
            ),
            ConsultationJuridique(
                numero_reference="CJ-000001", organisme="Mairie de N'Djamena", nom_demandeur="Achta Ousmane",
                email="a.ousmane@example.td", objet="Marché public", contexte="Consultation préventive de démonstration.",
                statut="nouveau",
            ),
            Contact(
                numero_reference="CT-000001", nom="Idriss Moussa", email="i.moussa@example.td",
                sujet="Horaires d'ouverture", message="Message de démonstration pour le back-office.", statut="nouveau",
            ),
        ])
        db.add_all([
            ReferenceCounter(form_code="DA", last_value=1),
            ReferenceCounter(form_code="CJ", last_value=1),
            ReferenceCounter(form_code="CT", last_value=1),
        ])
        await db.commit()
    print("Seed done. Users: admin@aje.td (admin) / agent@aje.td (agent), password: admin123")


if __name__ == "__main__":
    asyncio.run(seed())
