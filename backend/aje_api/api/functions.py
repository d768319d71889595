"""Function endpoints used by the public site: generate-reference, send-confirmation-email."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.core.deps import enforce_rate_limit, get_mailer, get_reference_generator
from aje_api.core.logging_redaction import reference_suffix
from aje_api.core.metrics import record_confirmation_email
from aje_api.db import get_db
from aje_api.api.schemas import (
    GenerateReferenceRequest,
    GenerateReferenceResponse,
    SendConfirmationRequest,
    SendConfirmationResponse,
)
from aje_api.services.mailer import ConfirmationMailer, ConfirmationRequest, MailerError, send_confirmation_email
from aje_api.services.reference import ReferenceGenerationError, ReferenceGenerator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/functions", tags=["functions"])


@router.post("/generate-reference", response_model=GenerateReferenceResponse)
async def generate_reference(
    body: GenerateReferenceRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    generator: ReferenceGenerator = Depends(get_reference_generator),
):
    """Issue the next reference for formCode. Not idempotent: every call consumes a number."""
    await enforce_rate_limit(request, response, db, "functions")
    try:
        reference = await generator.generate(body.form_type, body.form_code)
    except ReferenceGenerationError as e:
        logger.warning("generate-reference failed form_type=%s: %s", body.form_type, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Impossible de générer la référence",
        ) from e
    if not reference:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Impossible de générer la référence",
        )
    return GenerateReferenceResponse(reference=reference)


@router.post("/send-confirmation-email", response_model=SendConfirmationResponse)
async def send_confirmation(
    body: SendConfirmationRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    mailer: ConfirmationMailer = Depends(get_mailer),
):
    """Send one confirmation mail synchronously; 500 with a generic message on any provider failure."""
    await enforce_rate_limit(request, response, db, "functions")
    req = ConfirmationRequest(
        type=body.type,
        email=str(body.email),
        nom=body.nom,
        reference=body.reference,
        data=body.data or {},
    )
    try:
        message_id = await send_confirmation_email(mailer, req)
    except MailerError as e:
        record_confirmation_email("failed")
        logger.warning(
            "send-confirmation-email failed type=%s reference=%s: %s",
            body.type, reference_suffix(body.reference), e,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Échec de l'envoi de l'e-mail de confirmation",
        ) from e
    record_confirmation_email("sent")
    return SendConfirmationResponse(id=message_id)
