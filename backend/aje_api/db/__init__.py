from .models import (
    AdminUser,
    DemandeAvis,
    ConsultationJuridique,
    SignalementContentieux,
    Contact,
    JobApplication,
    NewsletterSubscription,
    SecuritySetting,
    RateLimitTracking,
    ReferenceCounter,
    AuditLog,
)
from .session import get_db, async_session_factory, engine, init_db

__all__ = [
    "AdminUser",
    "DemandeAvis",
    "ConsultationJuridique",
    "SignalementContentieux",
    "Contact",
    "JobApplication",
    "NewsletterSubscription",
    "SecuritySetting",
    "RateLimitTracking",
    "ReferenceCounter",
    "AuditLog",
    "get_db",
    "async_session_factory",
    "engine",
    "init_db",
]
