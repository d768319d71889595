"""Pydantic schemas: public forms, function endpoints, back-office."""
from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

PHONE_PATTERN = r"^[+0-9 ().-]{6,30}$"


def _config_forbid(**kwargs):
    return ConfigDict(extra="forbid", **kwargs)


def _form_config(**kwargs):
    return ConfigDict(extra="forbid", str_strip_whitespace=True, **kwargs)


# ----- Public forms -----
class DemandeAvisCreate(BaseModel):
    model_config = _form_config()
    nom_complet: str = Field(..., min_length=2, max_length=100)
    fonction: str | None = Field(None, max_length=100)
    email: EmailStr
    telephone: str | None = Field(None, pattern=PHONE_PATTERN)
    organisme: str = Field(..., min_length=2, max_length=200)
    objet: str = Field(..., min_length=5, max_length=200)
    contexte: str = Field(..., min_length=10, max_length=5000)
    question_juridique: str = Field(..., min_length=10, max_length=5000)
    urgence: Literal["normal", "urgent", "tres_urgent"] = "normal"
    delai_souhaite: str | None = Field(None, max_length=100)
    documents_fournis: list[str] | None = Field(None, max_length=20)


class ConsultationCreate(BaseModel):
    model_config = _form_config()
    organisme: str = Field(..., min_length=2, max_length=200)
    nom_demandeur: str = Field(..., min_length=2, max_length=100)
    fonction: str | None = Field(None, max_length=100)
    email: EmailStr
    telephone: str | None = Field(None, pattern=PHONE_PATTERN)
    objet: str = Field(..., min_length=5, max_length=200)
    contexte: str = Field(..., min_length=10, max_length=5000)


class SignalementCreate(BaseModel):
    model_config = _form_config()
    organisme: str = Field(..., min_length=2, max_length=200)
    nom_demandeur: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    telephone: str | None = Field(None, pattern=PHONE_PATTERN)
    description: str = Field(..., min_length=10, max_length=5000)


class ContactCreate(BaseModel):
    model_config = _form_config()
    nom: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    telephone: str | None = Field(None, pattern=PHONE_PATTERN)
    sujet: str = Field(..., min_length=2, max_length=200)
    message: str = Field(..., min_length=10, max_length=5000)


class RendezVousCreate(BaseModel):
    model_config = _form_config()
    nom: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    telephone: str | None = Field(None, pattern=PHONE_PATTERN)
    organisme: str | None = Field(None, max_length=200)
    motif: str = Field(..., min_length=2, max_length=200)
    date_souhaitee: date
    heure_souhaitee: str | None = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    message: str | None = Field(None, max_length=5000)


class CandidatureCreate(BaseModel):
    model_config = _form_config()
    job_offer_id: UUID | None = None  # None: spontaneous application
    nom: str = Field(..., min_length=2, max_length=100)
    prenom: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    telephone: str | None = Field(None, pattern=PHONE_PATTERN)
    lettre_motivation: str = Field(..., min_length=10, max_length=5000)


class SubmissionCreated(BaseModel):
    model_config = _config_forbid()
    id: UUID
    reference: str
    reference_source: Literal["generator", "fallback"]


class NewsletterSubscribeRequest(BaseModel):
    model_config = _form_config()
    email: EmailStr


class NewsletterUnsubscribeRequest(BaseModel):
    model_config = _form_config()
    token: str = Field(..., min_length=8, max_length=128)


class NewsletterStatus(BaseModel):
    model_config = _config_forbid()
    subscribed: bool
    status: Literal["created", "reactivated", "unchanged", "unsubscribed"]


# ----- Function endpoints -----
class GenerateReferenceRequest(BaseModel):
    model_config = _config_forbid(populate_by_name=True)
    form_type: str = Field(..., alias="formType", min_length=1, max_length=50)
    form_code: str = Field(..., alias="formCode", pattern=r"^[A-Z]{2,4}$")


class GenerateReferenceResponse(BaseModel):
    model_config = _config_forbid()
    reference: str


class SendConfirmationRequest(BaseModel):
    model_config = _form_config()
    type: Literal["contact", "avis", "consultation", "signalement"]
    email: EmailStr
    nom: str = Field(..., min_length=1, max_length=100)
    reference: str = Field(..., min_length=1, max_length=50)
    data: dict[str, Any] | None = None


class SendConfirmationResponse(BaseModel):
    model_config = _config_forbid()
    id: str


# ----- Auth -----
class LoginRequest(BaseModel):
    model_config = _config_forbid()
    email: EmailStr
    password: str


class AdminProfile(BaseModel):
    model_config = _config_forbid()
    id: UUID
    email: str
    full_name: str | None
    role: str


# ----- Back-office: submissions -----
class SubmissionListResponse(BaseModel):
    model_config = _config_forbid()
    items: list[dict[str, Any]]
    next_offset: int | None


class SubmissionUpdate(BaseModel):
    """Union of editable fields; each kind accepts only its own subset."""
    model_config = _form_config()
    statut: str | None = None
    reponse: str | None = Field(None, max_length=5000)
    notes_internes: str | None = Field(None, max_length=5000)
    date_consultation: datetime | None = None


class StatusCounts(BaseModel):
    model_config = _config_forbid()
    counts: dict[str, int]
    total: int


# ----- Back-office: newsletter -----
class NewsletterEntry(BaseModel):
    model_config = _config_forbid()
    id: UUID
    email: str
    subscribed_at: datetime
    is_active: bool


class NewsletterUpdate(BaseModel):
    model_config = _config_forbid()
    is_active: bool


# ----- Back-office: security settings -----
class SecuritySettingEntry(BaseModel):
    model_config = _config_forbid()
    setting_key: str
    setting_value: dict[str, Any]
    updated_by: UUID | None
    updated_at: datetime | None


class SecuritySettingUpdate(BaseModel):
    model_config = _config_forbid()
    setting_value: dict[str, Any]


# ----- Audit -----
class AuditLogEntry(BaseModel):
    model_config = _config_forbid()
    id: UUID
    user_id: UUID | None
    user_email: str | None
    action: str
    resource_type: str
    resource_id: str | None
    status: str
    error_message: str | None
    old_data: dict | None
    new_data: dict | None
    ip: str | None
    user_agent: str | None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    model_config = _config_forbid()
    events: list[AuditLogEntry]
    next_offset: int | None


# ----- Maintenance -----
class PurgeRateLimitsRequest(BaseModel):
    model_config = _config_forbid()
    older_than_minutes: int = Field(1440, ge=1)


class PurgeRateLimitsResponse(BaseModel):
    model_config = _config_forbid()
    deleted: int
