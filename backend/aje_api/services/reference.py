"""Reference codes for citizen submissions (CJ-000123, SC-000045, ...).

Two tiers: a generator (local counter table or the remote generate-reference function) and,
when it fails or returns nothing, a locally synthesized ``<CODE>-<last digits of epoch ms>``.
The fallback is not guaranteed unique; ReferenceOutcome.source says which tier produced it.
"""
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aje_api.core.logging_redaction import reference_suffix
from aje_api.core.metrics import record_reference_fallback
from aje_api.db.models import ReferenceCounter

logger = logging.getLogger(__name__)

# form_type -> form_code
FORM_CODES = {
    "avis": "DA",
    "consultation": "CJ",
    "signalement": "SC",
    "contact": "CT",
    "candidature": "CA",
}

_FORM_CODE_RE = re.compile(r"^[A-Z]{2,4}$")
SEQUENCE_WIDTH = 6


class ReferenceGenerationError(Exception):
    """The generator could not issue a code (store or remote call failure)."""


@dataclass(frozen=True)
class ReferenceOutcome:
    reference: str
    source: str  # generator | fallback

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


def validate_form_code(form_code: str) -> str:
    if not _FORM_CODE_RE.match(form_code or ""):
        raise ValueError(f"Invalid form code: {form_code!r}")
    return form_code


def format_reference(form_code: str, sequence: int) -> str:
    return f"{form_code}-{sequence:0{SEQUENCE_WIDTH}d}"


def fallback_reference(form_code: str, now_ms: int | None = None, digits: int = 6) -> str:
    """<form_code>-<last `digits` (6..8) digits of epoch milliseconds>."""
    digits = min(max(digits, 6), 8)
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return f"{form_code}-{str(now_ms)[-digits:]}"


class ReferenceGenerator(ABC):
    """Issues a reference for (form_type, form_code). Raises ReferenceGenerationError on failure."""

    @abstractmethod
    async def generate(self, form_type: str, form_code: str) -> str | None:
        ...


class CounterReferenceGenerator(ReferenceGenerator):
    """Sequential codes from the reference_counters table (one row per form code).

    The bump is a single UPDATE, so concurrent transactions serialize on the row lock. Each step
    runs in a SAVEPOINT: a failed counter write rolls back alone and the caller's transaction
    can still store the submission under a fallback code.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _bump(self, form_code: str) -> int | None:
        """Increment an existing counter row; None when the row does not exist yet."""
        async with self._db.begin_nested():
            bumped = await self._db.execute(
                update(ReferenceCounter)
                .where(ReferenceCounter.form_code == form_code)
                .values(last_value=ReferenceCounter.last_value + 1)
                .execution_options(synchronize_session=False)
            )
            if bumped.rowcount == 0:
                return None
            result = await self._db.execute(
                select(ReferenceCounter.last_value).where(ReferenceCounter.form_code == form_code)
            )
            return result.scalar_one()

    async def _create(self, form_code: str) -> None:
        async with self._db.begin_nested():
            self._db.add(ReferenceCounter(form_code=form_code, last_value=1))
            await self._db.flush()

    async def generate(self, form_type: str, form_code: str) -> str | None:
        validate_form_code(form_code)
        try:
            sequence = await self._bump(form_code)
            if sequence is None:
                try:
                    await self._create(form_code)
                    sequence = 1
                except IntegrityError:
                    # A concurrent first submission created the row; take the next value instead.
                    sequence = await self._bump(form_code)
        except SQLAlchemyError as e:
            raise ReferenceGenerationError(f"counter update failed for {form_code}") from e
        if sequence is None:
            raise ReferenceGenerationError(f"counter row missing for {form_code}")
        return format_reference(form_code, sequence)


class RemoteReferenceGenerator(ReferenceGenerator):
    """POST {base_url}/generate-reference {formType, formCode} -> {reference}."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        h = {"Content-Type": "application/json"}
        if self._api_key:
            h["Authorization"] = f"Bearer {self._api_key}"
            h["apikey"] = self._api_key
        return h

    async def generate(self, form_type: str, form_code: str) -> str | None:
        validate_form_code(form_code)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.post(
                    f"{self.base_url}/generate-reference",
                    json={"formType": form_type, "formCode": form_code},
                    headers=self._headers(),
                )
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ReferenceGenerationError(f"generate-reference call failed: {type(e).__name__}") from e
        reference = data.get("reference") if isinstance(data, dict) else None
        return reference if isinstance(reference, str) and reference.strip() else None


async def issue_reference(
    generator: ReferenceGenerator,
    form_type: str,
    form_code: str,
    *,
    fallback_digits: int = 6,
    now_ms: int | None = None,
) -> ReferenceOutcome:
    """Ask the generator; on failure or empty answer synthesize a fallback code. Never raises for generator errors."""
    try:
        reference = await generator.generate(form_type, form_code)
    except ReferenceGenerationError as e:
        logger.warning("Reference generator unavailable for form_type=%s: %s", form_type, e)
        reference = None
    if reference:
        logger.info("Reference issued form_type=%s suffix=%s", form_type, reference_suffix(reference))
        return ReferenceOutcome(reference=reference, source="generator")
    record_reference_fallback(form_code)
    reference = fallback_reference(form_code, now_ms=now_ms, digits=fallback_digits)
    logger.warning("Using fallback reference form_type=%s suffix=%s", form_type, reference_suffix(reference))
    return ReferenceOutcome(reference=reference, source="fallback")
