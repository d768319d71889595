"""Redact sensitive data from structured logs. Never log JWTs, cookies, passwords, or citizen contact details."""
import re
from typing import Any

# Keys (case-insensitive substring match) that must be redacted in dicts
REDACT_KEYS = frozenset({
    "password", "token", "secret", "authorization", "cookie", "csrf_token",
    "access_token", "refresh_token", "jwt", "api_key",
})

# Contact fields submitted by citizens. Exact key match: "nom" must not hit "nombre".
PII_KEYS = frozenset({
    "email", "nom", "prenom", "nom_complet", "nom_demandeur", "telephone",
    "phone", "message", "lettre_motivation", "description", "contexte",
})


def _redact_key(key: str) -> bool:
    k = key.lower()
    return k in PII_KEYS or any(r in k for r in REDACT_KEYS)


def redact_for_log(obj: Any) -> Any:
    """Return a copy of obj safe for logging: sensitive keys replaced with '[REDACTED]'."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return {
            k: "[REDACTED]" if _redact_key(str(k)) else redact_for_log(v)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return type(obj)(redact_for_log(x) for x in obj)
    if isinstance(obj, str) and (_looks_like_secret(obj) or _looks_like_email(obj)):
        return "[REDACTED]"
    return obj


def reference_suffix(reference: str | None) -> str:
    """Last segment of a reference code ('CJ-000042' -> '000042'); the only part of it we log."""
    if not reference:
        return ""
    return re.split(r"[-/]", reference)[-1]


def _looks_like_secret(s: str) -> bool:
    """Heuristic: long base64-like or bearer token."""
    if len(s) > 64 and re.match(r"^[A-Za-z0-9_-]+\.([A-Za-z0-9_-]+)\.", s):
        return True  # JWT-like
    if s.lower().startswith("bearer "):
        return True
    return False


def _looks_like_email(s: str) -> bool:
    return bool(re.fullmatch(r"[^@\s]+@[^@\s]+\.[^@\s]+", s.strip()))
