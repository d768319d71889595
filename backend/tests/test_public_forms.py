"""Public forms over HTTP: storage, references, confirmation mails, rate limiting, validation, newsletter."""
import logging
import re

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.main import app
from aje_api.core.deps import get_reference_generator
from aje_api.db.models import (
    ConsultationJuridique,
    Contact,
    DemandeAvis,
    JobApplication,
    NewsletterSubscription,
    SignalementContentieux,
)
from aje_api.services.reference import ReferenceGenerationError, ReferenceGenerator

AVIS = {
    "nom_complet": "Mahamat Abakar",
    "email": "m.abakar@example.td",
    "telephone": "+235 66 00 00 00",
    "organisme": "Ministère des Finances",
    "objet": "Interprétation d'un contrat",
    "contexte": "Contrat de fourniture signé en 2024 avec un prestataire.",
    "question_juridique": "Le contrat peut-il être résilié unilatéralement ?",
    "urgence": "urgent",
}
CONSULTATION = {
    "organisme": "Mairie de N'Djamena",
    "nom_demandeur": "Achta Ousmane",
    "email": "a.ousmane@example.td",
    "objet": "Passation de marché",
    "contexte": "Nous préparons un appel d'offres et souhaitons un avis préventif.",
}
SIGNALEMENT = {
    "organisme": "Société nationale",
    "nom_demandeur": "Hassan Djibrine",
    "email": "h.djibrine@example.td",
    "description": "Assignation reçue ce matin, audience fixée dans 8 jours.",
}
CONTACT = {
    "nom": "Idriss Moussa",
    "email": "i.moussa@example.td",
    "sujet": "Horaires",
    "message": "Quels sont vos horaires d'ouverture au public ?",
}


class DownGenerator(ReferenceGenerator):
    async def generate(self, form_type: str, form_code: str) -> str | None:
        raise ReferenceGenerationError("unreachable")


@pytest.mark.asyncio
async def test_demande_avis_created_with_reference_and_mail(client: AsyncClient, db: AsyncSession, mailer):
    r = await client.post("/api/demandes-avis", json=AVIS)
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["reference"] == "DA-000001"
    assert data["reference_source"] == "generator"
    row = (await db.execute(select(DemandeAvis))).scalar_one()
    assert row.numero_reference == "DA-000001"
    assert row.statut == "en_attente"
    assert AVIS["contexte"] in row.description and AVIS["question_juridique"] in row.description
    assert len(mailer.sent) == 1
    to, content = mailer.sent[0]
    assert to == AVIS["email"]
    assert "DA-000001" in content.subject
    assert "Ministère des Finances" in content.html


@pytest.mark.asyncio
async def test_each_form_uses_its_code(client: AsyncClient, db: AsyncSession, mailer):
    r1 = await client.post("/api/consultations", json=CONSULTATION)
    r2 = await client.post("/api/signalements", json=SIGNALEMENT)
    r3 = await client.post("/api/contact", json=CONTACT)
    assert [r.status_code for r in (r1, r2, r3)] == [201, 201, 201]
    assert r1.json()["reference"] == "CJ-000001"
    assert r2.json()["reference"] == "SC-000001"
    assert r3.json()["reference"] == "CT-000001"
    sig = (await db.execute(select(SignalementContentieux))).scalar_one()
    assert sig.numero_dossier == "SC-000001"
    assert sig.priorite == "urgent"
    assert (await db.execute(select(ConsultationJuridique))).scalar_one().statut == "nouveau"
    assert [c.subject.split(" - ")[0] for _, c in mailer.sent] == [
        "Demande de consultation enregistrée",
        "Signalement contentieux enregistré",
        "Confirmation de réception",
    ]


@pytest.mark.asyncio
async def test_rendez_vous_stored_as_contact(client: AsyncClient, db: AsyncSession):
    r = await client.post(
        "/api/rendez-vous",
        json={
            "nom": "Khadija Ali",
            "email": "k.ali@example.td",
            "motif": "Litige foncier",
            "organisme": "Préfecture",
            "date_souhaitee": "2026-11-03",
            "heure_souhaitee": "09:30",
        },
    )
    assert r.status_code == 201, r.text
    row = (await db.execute(select(Contact))).scalar_one()
    assert row.sujet == "Demande de rendez-vous - Litige foncier"
    assert "2026-11-03" in row.message and "09:30" in row.message


@pytest.mark.asyncio
async def test_candidature_without_mail(client: AsyncClient, db: AsyncSession, mailer):
    r = await client.post(
        "/api/candidatures",
        json={
            "nom": "Ousmane",
            "prenom": "Zara",
            "email": "z.ousmane@example.td",
            "lettre_motivation": "Juriste de formation, je souhaite rejoindre l'Agence.",
        },
    )
    assert r.status_code == 201, r.text
    assert r.json()["reference"].startswith("CA-")
    row = (await db.execute(select(JobApplication))).scalar_one()
    assert row.is_spontaneous is True
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_generator_down_uses_fallback(client: AsyncClient, db: AsyncSession):
    app.dependency_overrides[get_reference_generator] = lambda: DownGenerator()
    r = await client.post("/api/consultations", json=CONSULTATION)
    assert r.status_code == 201
    data = r.json()
    assert data["reference_source"] == "fallback"
    assert re.fullmatch(r"CJ-\d{6,8}", data["reference"])
    row = (await db.execute(select(ConsultationJuridique))).scalar_one()
    assert row.numero_reference == data["reference"]


@pytest.mark.asyncio
async def test_mail_failure_does_not_fail_submission(client: AsyncClient, db: AsyncSession, mailer):
    mailer.fail = True
    r = await client.post("/api/signalements", json=SIGNALEMENT)
    assert r.status_code == 201
    assert (await db.execute(select(SignalementContentieux))).scalar_one() is not None


@pytest.mark.asyncio
async def test_rate_limit_blocks_fourth_avis(client: AsyncClient, rate_limiting_on):
    headers = {"X-Forwarded-For": "203.0.113.5, 10.0.0.1"}
    remaining = []
    for _ in range(3):
        r = await client.post("/api/demandes-avis", json=AVIS, headers=headers)
        assert r.status_code == 201, r.text
        remaining.append(r.headers["X-RateLimit-Remaining"])
        assert "X-RateLimit-Reset" in r.headers
    assert remaining == ["2", "1", "0"]
    r = await client.post("/api/demandes-avis", json=AVIS, headers=headers)
    assert r.status_code == 429
    assert r.headers["X-RateLimit-Remaining"] == "0"
    assert int(r.headers["Retry-After"]) > 0
    # Another client is unaffected.
    r = await client.post("/api/demandes-avis", json=AVIS, headers={"X-Forwarded-For": "198.51.100.9"})
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_no_rate_limit_when_setting_absent(client: AsyncClient):
    for _ in range(5):
        r = await client.post("/api/consultations", json=CONSULTATION)
        assert r.status_code == 201


@pytest.mark.asyncio
async def test_invalid_payload_does_not_consume_quota(client: AsyncClient, rate_limiting_on):
    bad = {**AVIS, "email": "not-an-email"}
    for _ in range(5):
        r = await client.post("/api/demandes-avis", json=bad)
        assert r.status_code == 422
    r = await client.post("/api/demandes-avis", json=AVIS)
    assert r.status_code == 201
    assert r.headers["X-RateLimit-Remaining"] == "2"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override",
    [
        {"nom_complet": "A"},
        {"objet": "abc"},
        {"contexte": "court"},
        {"telephone": "call me"},
        {"urgence": "demain"},
        {"unexpected": "field"},
    ],
)
async def test_avis_validation(client: AsyncClient, override):
    r = await client.post("/api/demandes-avis", json={**AVIS, **override})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_submission_logs_carry_no_pii(client: AsyncClient, caplog):
    caplog.set_level(logging.INFO, logger="aje_api")
    r = await client.post("/api/contact", json=CONTACT)
    assert r.status_code == 201
    assert CONTACT["email"] not in caplog.text
    assert CONTACT["nom"] not in caplog.text
    assert "000001" in caplog.text


@pytest.mark.asyncio
async def test_newsletter_subscribe_is_idempotent(client: AsyncClient, db: AsyncSession):
    r = await client.post("/api/newsletter", json={"email": "Lecteur@Example.td"})
    assert r.status_code == 201
    assert r.json() == {"subscribed": True, "status": "created"}
    r = await client.post("/api/newsletter", json={"email": "lecteur@example.td"})
    assert r.status_code == 200
    assert r.json()["status"] == "unchanged"
    subs = (await db.execute(select(NewsletterSubscription))).scalars().all()
    assert len(subs) == 1
    assert subs[0].email == "lecteur@example.td"


@pytest.mark.asyncio
async def test_newsletter_unsubscribe_and_reactivate(client: AsyncClient, db: AsyncSession):
    await client.post("/api/newsletter", json={"email": "lecteur@example.td"})
    sub = (await db.execute(select(NewsletterSubscription))).scalar_one()
    r = await client.post("/api/newsletter/unsubscribe", json={"token": sub.unsubscribe_token})
    assert r.status_code == 200
    assert r.json() == {"subscribed": False, "status": "unsubscribed"}
    await db.refresh(sub)
    assert sub.is_active is False
    r = await client.post("/api/newsletter", json={"email": "lecteur@example.td"})
    assert r.json()["status"] == "reactivated"


@pytest.mark.asyncio
async def test_newsletter_unknown_token(client: AsyncClient):
    r = await client.post("/api/newsletter/unsubscribe", json={"token": "does-not-exist"})
    assert r.status_code == 404
