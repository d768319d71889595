"""Confirmation mailer: fixed templates, Resend dispatch, best-effort sending without PII in logs."""
import json
import logging

import httpx
import pytest

from aje_api.services.mailer import (
    ConfirmationRequest,
    MailerError,
    MailerNotConfigured,
    ResendMailer,
    notify_submission,
    render_confirmation,
    send_confirmation_email,
)


def test_contact_template():
    content = render_confirmation("contact", "Fatimé Hassan", "CT-000012")
    assert content.subject == "Confirmation de réception - CT-000012"
    assert "Bonjour Fatimé Hassan" in content.html
    assert "CT-000012" in content.html
    assert "message de contact" in content.text


def test_avis_template_uses_organisme_or_default():
    with_org = render_confirmation("avis", "A", "DA-000001", {"organisme": "Ministère de la Justice"})
    assert "Ministère de la Justice" in with_org.html
    assert "Urgence absolue : 24h" in with_org.html
    without_org = render_confirmation("avis", "A", "DA-000002")
    assert "Non spécifié" in without_org.html


def test_signalement_template_is_urgent():
    content = render_confirmation("signalement", "B", "SC-000003")
    assert content.subject == "Signalement contentieux enregistré - SC-000003"
    assert "URGENTE" in content.html
    assert "24 heures" in content.text


def test_consultation_template():
    content = render_confirmation("consultation", "C", "CJ-000004")
    assert content.subject.startswith("Demande de consultation enregistrée")


def test_template_escapes_html():
    content = render_confirmation("contact", "<script>alert(1)</script>", "CT-1")
    assert "<script>" not in content.html
    assert "&lt;script&gt;" in content.html


def test_unknown_type_rejected():
    with pytest.raises(ValueError):
        render_confirmation("newsletter", "D", "NL-1")


@pytest.mark.asyncio
async def test_resend_mailer_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "re_123"})

    mailer = ResendMailer(
        "re_test_key",
        api_url="https://api.resend.test/emails",
        sender="AJE <noreply@aje.td>",
        transport=httpx.MockTransport(handler),
    )
    req = ConfirmationRequest(type="consultation", email="citoyen@example.td", nom="Nom", reference="CJ-000004")
    assert await send_confirmation_email(mailer, req) == "re_123"
    assert seen["auth"] == "Bearer re_test_key"
    assert seen["body"]["to"] == ["citoyen@example.td"]
    assert seen["body"]["from"] == "AJE <noreply@aje.td>"
    assert seen["body"]["subject"] == "Demande de consultation enregistrée - CJ-000004"


@pytest.mark.asyncio
async def test_resend_mailer_provider_error():
    mailer = ResendMailer(
        "re_test_key",
        transport=httpx.MockTransport(lambda request: httpx.Response(422, json={"message": "invalid"})),
    )
    with pytest.raises(MailerError):
        await mailer.send("x@example.td", render_confirmation("contact", "X", "CT-1"))


@pytest.mark.asyncio
async def test_resend_mailer_without_key():
    with pytest.raises(MailerNotConfigured):
        await ResendMailer(None).send("x@example.td", render_confirmation("contact", "X", "CT-1"))


@pytest.mark.asyncio
async def test_notify_submission_swallows_failures_and_logs_no_pii(caplog):
    caplog.set_level(logging.DEBUG, logger="aje_api")
    mailer = ResendMailer(
        "re_test_key",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable")),
    )
    req = ConfirmationRequest(
        type="signalement", email="plaignant@example.td", nom="Moussa Mahamat", reference="SC-000777"
    )
    await notify_submission(mailer, req)
    assert "000777" in caplog.text
    assert "signalement" in caplog.text
    assert "plaignant@example.td" not in caplog.text
    assert "Moussa" not in caplog.text
    assert "SC-000777" not in caplog.text


@pytest.mark.asyncio
async def test_notify_submission_skips_when_unconfigured(caplog):
    caplog.set_level(logging.INFO, logger="aje_api")
    req = ConfirmationRequest(type="contact", email="a@example.td", nom="A", reference="CT-000001")
    await notify_submission(ResendMailer(""), req)
    assert "skipped" in caplog.text
