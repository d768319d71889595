"""Confirmation e-mails for citizen submissions (contact, avis, consultation, signalement).

Four fixed templates; dispatch through the Resend HTTP API. Callers send after the record is
persisted and never let a mail failure reach the citizen. Logs carry only the submission type
and the reference suffix.
"""
import html
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from aje_api.core.logging_redaction import reference_suffix
from aje_api.core.metrics import record_confirmation_email

logger = logging.getLogger(__name__)

AGENCY_NAME = "Agence Judiciaire de l'État"
_FOOTER_TEXT = (
    "Ceci est un message automatique, merci de ne pas y répondre.\n"
    "Agence Judiciaire de l'État - N'Djamena, Tchad"
)


class MailerError(Exception):
    """Dispatch failed (provider error, network, bad response)."""


class MailerNotConfigured(MailerError):
    """No provider API key: mails are skipped."""


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class ConfirmationRequest:
    type: str
    email: str
    nom: str
    reference: str
    data: dict[str, Any] = field(default_factory=dict)


def _wrap_html(nom: str, paragraphs: list[str]) -> str:
    body = "\n".join(f"    {p}" for p in paragraphs)
    return f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h1 style="color: #1a5490;">{AGENCY_NAME}</h1>
    <p>Bonjour {nom},</p>
{body}
    <hr style="border: 1px solid #e0e0e0; margin: 20px 0;">
    <p style="color: #666; font-size: 12px;">
      Ceci est un message automatique, merci de ne pas y répondre.<br>
      Agence Judiciaire de l'État - N'Djamena, Tchad
    </p>
</div>"""


def render_confirmation(mail_type: str, nom: str, reference: str, data: dict[str, Any] | None = None) -> EmailContent:
    """Fill the fixed template for mail_type. Raises ValueError for an unknown type."""
    data = data or {}
    n = html.escape(nom)
    ref = html.escape(reference)

    if mail_type == "contact":
        subject = f"Confirmation de réception - {reference}"
        paragraphs = [
            "<p>Nous avons bien reçu votre message de contact.</p>",
            f"<p><strong>Numéro de référence :</strong> {ref}</p>",
            "<p>Notre équipe traitera votre demande dans les plus brefs délais.</p>",
        ]
        text = (
            "Nous avons bien reçu votre message de contact.\n"
            f"Numéro de référence : {reference}\n"
            "Notre équipe traitera votre demande dans les plus brefs délais."
        )
    elif mail_type == "avis":
        organisme = data.get("organisme") or "Non spécifié"
        subject = f"Demande d'avis juridique enregistrée - {reference}"
        paragraphs = [
            "<p>Votre demande d'avis juridique a été enregistrée avec succès.</p>",
            f"<p><strong>Numéro de référence :</strong> {ref}</p>",
            f"<p><strong>Organisme :</strong> {html.escape(str(organisme))}</p>",
            "<p>Vous pouvez utiliser ce numéro de référence pour suivre l'état de votre demande.</p>",
            "<p>Notre service juridique étudiera votre dossier et vous répondra selon les délais suivants :</p>",
            "<ul>\n      <li>Urgence absolue : 24h</li>\n      <li>Urgence normale : 7 jours</li>\n"
            "      <li>Standard : 15 jours</li>\n    </ul>",
        ]
        text = (
            "Votre demande d'avis juridique a été enregistrée avec succès.\n"
            f"Numéro de référence : {reference}\n"
            f"Organisme : {organisme}\n"
            "Délais de réponse : urgence absolue 24h, urgence normale 7 jours, standard 15 jours."
        )
    elif mail_type == "consultation":
        subject = f"Demande de consultation enregistrée - {reference}"
        paragraphs = [
            "<p>Votre demande de consultation juridique a été enregistrée.</p>",
            f"<p><strong>Numéro de référence :</strong> {ref}</p>",
            "<p>Un conseiller juridique vous contactera prochainement pour analyser votre situation.</p>",
        ]
        text = (
            "Votre demande de consultation juridique a été enregistrée.\n"
            f"Numéro de référence : {reference}\n"
            "Un conseiller juridique vous contactera prochainement pour analyser votre situation."
        )
    elif mail_type == "signalement":
        subject = f"Signalement contentieux enregistré - {reference}"
        paragraphs = [
            "<p>Votre signalement de contentieux a été enregistré avec priorité <strong>URGENTE</strong>.</p>",
            f"<p><strong>Numéro de dossier :</strong> {ref}</p>",
            "<p>Notre service contentieux traitera votre dossier en priorité.</p>",
            "<p>Vous serez contacté dans les 24 heures.</p>",
        ]
        text = (
            "Votre signalement de contentieux a été enregistré avec priorité URGENTE.\n"
            f"Numéro de dossier : {reference}\n"
            "Vous serez contacté dans les 24 heures."
        )
    else:
        raise ValueError(f"Unknown confirmation type: {mail_type}")

    return EmailContent(
        subject=subject,
        html=_wrap_html(n, paragraphs),
        text=f"Bonjour {nom},\n\n{text}\n\n{_FOOTER_TEXT}\n",
    )


class ConfirmationMailer(ABC):
    """Transactional e-mail provider. send() returns the provider message id."""

    @abstractmethod
    async def send(self, to: str, content: EmailContent) -> str:
        ...


class ResendMailer(ConfirmationMailer):
    """Resend REST API: POST /emails with bearer API key."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str = "https://api.resend.com/emails",
        sender: str = "AJE Tchad <onboarding@resend.dev>",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._sender = sender
        self._timeout = timeout
        self._transport = transport

    async def send(self, to: str, content: EmailContent) -> str:
        if not self._api_key:
            raise MailerNotConfigured("RESEND_API_KEY not set")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.post(
                    self._api_url,
                    json={
                        "from": self._sender,
                        "to": [to],
                        "subject": content.subject,
                        "html": content.html,
                        "text": content.text,
                    },
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            raise MailerError(f"provider returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise MailerError(f"provider call failed: {type(e).__name__}") from e
        message_id = data.get("id") if isinstance(data, dict) else None
        if not message_id:
            raise MailerError("provider response without message id")
        return message_id


async def send_confirmation_email(mailer: ConfirmationMailer, request: ConfirmationRequest) -> str:
    """Render and dispatch; returns the message id. Raises ValueError (unknown type) or MailerError."""
    content = render_confirmation(request.type, request.nom, request.reference, request.data)
    logger.info("Sending confirmation email type=%s reference=%s", request.type, reference_suffix(request.reference))
    message_id = await mailer.send(request.email, content)
    logger.info("Confirmation email sent type=%s message_id=%s", request.type, message_id)
    return message_id


async def notify_submission(mailer: ConfirmationMailer, request: ConfirmationRequest) -> None:
    """Best-effort send for background tasks: every failure is logged (no PII) and dropped."""
    suffix = reference_suffix(request.reference)
    try:
        await send_confirmation_email(mailer, request)
    except MailerNotConfigured:
        record_confirmation_email("skipped")
        logger.info("Confirmation email skipped (mailer not configured) type=%s reference=%s", request.type, suffix)
        return
    except MailerError as e:
        record_confirmation_email("failed")
        logger.warning("Confirmation email failed type=%s reference=%s: %s", request.type, suffix, e)
        return
    except Exception as e:
        record_confirmation_email("failed")
        logger.error("Confirmation email error type=%s reference=%s: %s", request.type, suffix, type(e).__name__)
        return
    record_confirmation_email("sent")
