"""
Submission kind registry: which table backs each back-office kind, its status workflow,
the fields staff may edit, and how records are searched and serialized.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from aje_api.db.models import (
    Base,
    ConsultationJuridique,
    Contact,
    DemandeAvis,
    JobApplication,
    SignalementContentieux,
)


@dataclass(frozen=True)
class SubmissionKind:
    slug: str  # URL segment in /admin/submissions/{slug}
    model: type[Base]
    statuses: tuple[str, ...]  # first one is the initial status
    editable_fields: frozenset[str]
    search_fields: tuple[str, ...]

    @property
    def initial_status(self) -> str:
        return self.statuses[0]


KINDS: dict[str, SubmissionKind] = {
    k.slug: k
    for k in (
        SubmissionKind(
            slug="demandes-avis",
            model=DemandeAvis,
            statuses=("en_attente", "en_cours", "traite", "rejete"),
            editable_fields=frozenset({"statut", "reponse"}),
            search_fields=("nom_complet", "email", "organisme", "numero_reference"),
        ),
        SubmissionKind(
            slug="consultations",
            model=ConsultationJuridique,
            statuses=("nouveau", "planifie", "en_cours", "termine"),
            editable_fields=frozenset({"statut", "notes_internes", "date_consultation"}),
            search_fields=("nom_demandeur", "email", "organisme", "numero_reference"),
        ),
        SubmissionKind(
            slug="signalements",
            model=SignalementContentieux,
            statuses=("nouveau", "en_cours", "traite", "clos"),
            editable_fields=frozenset({"statut", "notes_internes"}),
            search_fields=("nom_demandeur", "email", "organisme", "numero_dossier"),
        ),
        SubmissionKind(
            slug="contacts",
            model=Contact,
            statuses=("nouveau", "lu", "traite"),
            editable_fields=frozenset({"statut"}),
            search_fields=("nom", "email", "sujet", "numero_reference"),
        ),
        SubmissionKind(
            slug="candidatures",
            model=JobApplication,
            statuses=("nouveau", "en_cours", "accepte", "refuse"),
            editable_fields=frozenset({"statut", "notes_internes"}),
            search_fields=("nom", "prenom", "email", "numero_reference"),
        ),
    )
}


def get_kind(slug: str) -> SubmissionKind | None:
    return KINDS.get(slug)


class InvalidUpdate(ValueError):
    """Patch touches a non-editable field or sets an unknown status."""


def validate_update(kind: SubmissionKind, changes: dict[str, Any]) -> dict[str, Any]:
    """Return changes restricted to the kind's editable fields; raise InvalidUpdate otherwise."""
    unknown = set(changes) - kind.editable_fields
    if unknown:
        raise InvalidUpdate(f"Fields not editable for {kind.slug}: {', '.join(sorted(unknown))}")
    if "statut" in changes and changes["statut"] not in kind.statuses:
        raise InvalidUpdate(f"Invalid statut for {kind.slug}; expected one of {', '.join(kind.statuses)}")
    return changes


def _json_value(v: Any) -> Any:
    if isinstance(v, datetime):
        return v.isoformat()
    if isinstance(v, UUID):
        return str(v)
    return v


def serialize_record(record: Any) -> dict[str, Any]:
    """All mapped columns as JSON-safe values."""
    return {c.key: _json_value(getattr(record, c.key)) for c in record.__mapper__.column_attrs}


def snapshot(record: Any, fields: set[str] | frozenset[str]) -> dict[str, Any]:
    return {f: _json_value(getattr(record, f)) for f in sorted(fields)}
