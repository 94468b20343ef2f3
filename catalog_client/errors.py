"""Exceptions raised by the catalog client.

Every failure coming back from the backend is translated into one of the
classes below by :func:`error_from_response`, so callers never have to look
at raw ``httpx`` objects.
"""

from typing import Any, Optional

import httpx


class CatalogClientError(Exception):
    """Base class for all client-side failures."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        # Message sent by the server itself, None when it gave none
        self.detail = detail


class AuthError(CatalogClientError):
    """Bad credentials, rejected signup, or a missing/expired session."""


class NotFoundError(CatalogClientError):
    """A book or reservation id did not resolve."""


class ConflictError(CatalogClientError):
    """The backend refused a mutation (e.g. no copies left)."""


class TransientError(CatalogClientError):
    """Backend unreachable or failing on its side."""


class MalformedResponseError(CatalogClientError):
    """The backend answered, but with a record the client cannot read."""


def extract_message(response: httpx.Response) -> Optional[str]:
    """Pull a human readable message out of an error body.

    The backend answers either with a plain string or with a JSON object;
    both shapes are accepted.
    """
    try:
        payload: Any = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None

    if isinstance(payload, str):
        return payload.strip() or None
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def error_from_response(response: httpx.Response) -> CatalogClientError:
    status = response.status_code
    detail = extract_message(response)
    message = detail or f"Request failed with status {status}"

    if status in (401, 403):
        return AuthError(message, status, detail)
    if status == 404:
        return NotFoundError(message, status, detail)
    if status >= 500:
        return TransientError(message, status, detail)
    return ConflictError(message, status, detail)
