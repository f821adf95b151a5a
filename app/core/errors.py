"""
Error taxonomy for founder provisioning and profile access.

Services raise these; app.main maps them to HTTP responses. "No rows" is not
an error and never appears here: reads return None or a FetchResult instead.
"""
import re
from typing import Optional

import httpx
from postgrest.exceptions import APIError


class HiveError(Exception):
    """Base class for domain errors."""

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(HiveError):
    """Malformed input, raised before any network round trip."""


class PolicyDeniedError(HiveError):
    """The access policy rejected the operation. Never retried."""

    def __init__(self, message: str, *, operation: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.operation = operation


class ConflictError(HiveError):
    """A provisioning merge was impossible (e.g. email held by a live identity)."""

    def __init__(self, message: str, *, constraint: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.constraint = constraint


class TransientUnavailable(HiveError):
    """Network failure or timeout. Safe to repeat through the idempotent path."""


class StoreError(HiveError):
    """Store error that fits none of the categories above."""


class StorageConfigurationError(HiveError):
    """The avatar bucket is missing or misnamed."""


# PostgREST / Postgres codes
_DENIED_CODES = {"42501", "PGRST301", "PGRST302"}
_CONFLICT_CODES = {"23505"}
_INVALID_CODES = {"22P02", "23502", "23514", "PGRST102"}
_TRANSIENT_CODES = {"57014", "PGRST000", "PGRST001", "PGRST002", "PGRST003"}

_CONSTRAINT_RE = re.compile(r'unique constraint "([^"]+)"')


def _constraint_name(message: str) -> Optional[str]:
    match = _CONSTRAINT_RE.search(message or "")
    return match.group(1) if match else None


def translate_store_error(exc: Exception) -> HiveError:
    """Map a PostgREST or transport exception onto the domain taxonomy."""
    if isinstance(exc, HiveError):
        return exc
    if isinstance(exc, httpx.TransportError):
        return TransientUnavailable(f"Store unreachable: {exc}")
    if isinstance(exc, APIError):
        code = str(exc.code) if exc.code is not None else None
        message = exc.message or str(exc)
        if code in _DENIED_CODES:
            return PolicyDeniedError(message, code=code)
        if code in _CONFLICT_CODES:
            return ConflictError(message, constraint=_constraint_name(message), code=code)
        if code in _INVALID_CODES:
            return ValidationError(message, code=code)
        if code in _TRANSIENT_CODES:
            return TransientUnavailable(message, code=code)
        return StoreError(message, code=code)
    return StoreError(str(exc))
