"""Public forms: demandes d'avis, consultations, signalements, contact, rendez-vous, candidatures, newsletter.

Each submission: validate -> rate limit (per client IP) -> reference -> insert -> confirmation mail
scheduled after the response. Citizen-facing errors never carry internal detail.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.core.config import get_settings
from aje_api.core.deps import enforce_rate_limit, get_mailer, get_reference_generator
from aje_api.core.logging_redaction import reference_suffix
from aje_api.core.metrics import record_submission
from aje_api.core.security import create_unsubscribe_token
from aje_api.db import get_db
from aje_api.db.models import (
    ConsultationJuridique,
    Contact,
    DemandeAvis,
    JobApplication,
    NewsletterSubscription,
    SignalementContentieux,
)
from aje_api.api.schemas import (
    CandidatureCreate,
    ConsultationCreate,
    ContactCreate,
    DemandeAvisCreate,
    NewsletterStatus,
    NewsletterSubscribeRequest,
    NewsletterUnsubscribeRequest,
    RendezVousCreate,
    SignalementCreate,
    SubmissionCreated,
)
from aje_api.services.mailer import ConfirmationMailer, ConfirmationRequest, notify_submission
from aje_api.services.reference import FORM_CODES, ReferenceGenerator, ReferenceOutcome, issue_reference
from aje_api.services.submission_registry import KINDS

logger = logging.getLogger(__name__)
router = APIRouter(tags=["public"])


async def _reference_for(generator: ReferenceGenerator, form_type: str) -> ReferenceOutcome:
    return await issue_reference(
        generator,
        form_type,
        FORM_CODES[form_type],
        fallback_digits=get_settings().reference_fallback_digits,
    )


async def _store(db: AsyncSession, form_type: str, record, outcome: ReferenceOutcome) -> SubmissionCreated:
    db.add(record)
    await db.flush()
    record_submission(form_type)
    logger.info("Submission stored form_type=%s reference=%s", form_type, reference_suffix(outcome.reference))
    return SubmissionCreated(id=record.id, reference=outcome.reference, reference_source=outcome.source)


def _schedule_confirmation(
    background_tasks: BackgroundTasks,
    mailer: ConfirmationMailer,
    mail_type: str,
    email: str,
    nom: str,
    reference: str,
    data: dict | None = None,
) -> None:
    background_tasks.add_task(
        notify_submission,
        mailer,
        ConfirmationRequest(type=mail_type, email=email, nom=nom, reference=reference, data=data or {}),
    )


@router.post("/demandes-avis", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
async def create_demande_avis(
    body: DemandeAvisCreate,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    generator: ReferenceGenerator = Depends(get_reference_generator),
    mailer: ConfirmationMailer = Depends(get_mailer),
):
    await enforce_rate_limit(request, response, db, "avis")
    outcome = await _reference_for(generator, "avis")
    record = DemandeAvis(
        numero_reference=outcome.reference,
        nom_complet=body.nom_complet,
        fonction=body.fonction,
        email=str(body.email),
        telephone=body.telephone,
        organisme=body.organisme,
        objet=body.objet,
        description=f"{body.contexte}\n\nQuestion juridique :\n{body.question_juridique}",
        urgence=body.urgence,
        delai_souhaite=body.delai_souhaite,
        documents_fournis=body.documents_fournis,
        statut=KINDS["demandes-avis"].initial_status,
    )
    created = await _store(db, "avis", record, outcome)
    _schedule_confirmation(
        background_tasks, mailer, "avis", str(body.email), body.nom_complet, outcome.reference,
        {"organisme": body.organisme},
    )
    return created


@router.post("/consultations", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
async def create_consultation(
    body: ConsultationCreate,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    generator: ReferenceGenerator = Depends(get_reference_generator),
    mailer: ConfirmationMailer = Depends(get_mailer),
):
    await enforce_rate_limit(request, response, db, "consultation")
    outcome = await _reference_for(generator, "consultation")
    record = ConsultationJuridique(
        numero_reference=outcome.reference,
        organisme=body.organisme,
        nom_demandeur=body.nom_demandeur,
        fonction=body.fonction,
        email=str(body.email),
        telephone=body.telephone,
        objet=body.objet,
        contexte=body.contexte,
        statut=KINDS["consultations"].initial_status,
    )
    created = await _store(db, "consultation", record, outcome)
    _schedule_confirmation(
        background_tasks, mailer, "consultation", str(body.email), body.nom_demandeur, outcome.reference
    )
    return created


@router.post("/signalements", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
async def create_signalement(
    body: SignalementCreate,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    generator: ReferenceGenerator = Depends(get_reference_generator),
    mailer: ConfirmationMailer = Depends(get_mailer),
):
    await enforce_rate_limit(request, response, db, "signalement")
    outcome = await _reference_for(generator, "signalement")
    record = SignalementContentieux(
        numero_dossier=outcome.reference,
        organisme=body.organisme,
        nom_demandeur=body.nom_demandeur,
        email=str(body.email),
        telephone=body.telephone,
        description=body.description,
        priorite="urgent",
        statut=KINDS["signalements"].initial_status,
    )
    created = await _store(db, "signalement", record, outcome)
    _schedule_confirmation(
        background_tasks, mailer, "signalement", str(body.email), body.nom_demandeur, outcome.reference
    )
    return created


@router.post("/contact", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
async def create_contact(
    body: ContactCreate,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    generator: ReferenceGenerator = Depends(get_reference_generator),
    mailer: ConfirmationMailer = Depends(get_mailer),
):
    await enforce_rate_limit(request, response, db, "contact")
    outcome = await _reference_for(generator, "contact")
    record = Contact(
        numero_reference=outcome.reference,
        nom=body.nom,
        email=str(body.email),
        telephone=body.telephone,
        sujet=body.sujet,
        message=body.message,
        statut=KINDS["contacts"].initial_status,
    )
    created = await _store(db, "contact", record, outcome)
    _schedule_confirmation(background_tasks, mailer, "contact", str(body.email), body.nom, outcome.reference)
    return created


@router.post("/rendez-vous", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
async def create_rendez_vous(
    body: RendezVousCreate,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    generator: ReferenceGenerator = Depends(get_reference_generator),
    mailer: ConfirmationMailer = Depends(get_mailer),
):
    """Appointment request, stored and triaged as a contact message."""
    await enforce_rate_limit(request, response, db, "contact")
    outcome = await _reference_for(generator, "contact")
    lines = [
        f"Organisme : {body.organisme or 'Non spécifié'}",
        f"Date souhaitée : {body.date_souhaitee.isoformat()}",
        f"Heure souhaitée : {body.heure_souhaitee or 'Non spécifiée'}",
    ]
    if body.message:
        lines.extend(["", body.message])
    record = Contact(
        numero_reference=outcome.reference,
        nom=body.nom,
        email=str(body.email),
        telephone=body.telephone,
        sujet=f"Demande de rendez-vous - {body.motif}",
        message="\n".join(lines),
        statut=KINDS["contacts"].initial_status,
    )
    created = await _store(db, "contact", record, outcome)
    _schedule_confirmation(background_tasks, mailer, "contact", str(body.email), body.nom, outcome.reference)
    return created


@router.post("/candidatures", response_model=SubmissionCreated, status_code=status.HTTP_201_CREATED)
async def create_candidature(
    body: CandidatureCreate,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    generator: ReferenceGenerator = Depends(get_reference_generator),
):
    """Job application. No confirmation mail."""
    await enforce_rate_limit(request, response, db, "candidature")
    outcome = await _reference_for(generator, "candidature")
    record = JobApplication(
        numero_reference=outcome.reference,
        job_offer_id=body.job_offer_id,
        is_spontaneous=body.job_offer_id is None,
        nom=body.nom,
        prenom=body.prenom,
        email=str(body.email),
        telephone=body.telephone,
        lettre_motivation=body.lettre_motivation,
        statut=KINDS["candidatures"].initial_status,
    )
    return await _store(db, "candidature", record, outcome)


@router.post("/newsletter", response_model=NewsletterStatus)
async def subscribe_newsletter(
    body: NewsletterSubscribeRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Idempotent: 201 for a new address, 200 when already subscribed or re-activated."""
    await enforce_rate_limit(request, response, db, "newsletter")
    email = str(body.email).lower()
    result = await db.execute(select(NewsletterSubscription).where(NewsletterSubscription.email == email))
    sub = result.scalar_one_or_none()
    if sub is not None:
        if sub.is_active:
            return NewsletterStatus(subscribed=True, status="unchanged")
        sub.is_active = True
        await db.flush()
        return NewsletterStatus(subscribed=True, status="reactivated")
    db.add(NewsletterSubscription(email=email, is_active=True, unsubscribe_token=create_unsubscribe_token()))
    await db.flush()
    record_submission("newsletter")
    response.status_code = status.HTTP_201_CREATED
    return NewsletterStatus(subscribed=True, status="created")


@router.post("/newsletter/unsubscribe", response_model=NewsletterStatus)
async def unsubscribe_newsletter(
    body: NewsletterUnsubscribeRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    await enforce_rate_limit(request, response, db, "newsletter")
    result = await db.execute(
        select(NewsletterSubscription).where(NewsletterSubscription.unsubscribe_token == body.token)
    )
    sub = result.scalar_one_or_none()
    if sub is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Abonnement introuvable")
    sub.is_active = False
    await db.flush()
    return NewsletterStatus(subscribed=False, status="unsubscribed")
