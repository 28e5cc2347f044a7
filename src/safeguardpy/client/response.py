"""Response helpers -- turn :class:`httpx.Response` objects into SDK results.

The appliance answers business calls with JSON, plain strings, or nothing
at all. The SDK hands the raw body back to callers, and on failure wraps a
readable excerpt of it into :class:`~safeguardpy.exceptions.TransportError`.
"""

from __future__ import annotations

from typing import Any

import httpx

from safeguardpy.exceptions import ProtocolError


def extract_error_detail(response: httpx.Response) -> str:
    """Return a human-readable description of an error response.

    Prefers the appliance's ``Message`` field (or the common ``message`` /
    ``error`` / ``detail`` variants), falls back to the raw text, and finally
    to the HTTP reason phrase when the body is empty.
    """
    try:
        detail = response.json()
    except ValueError:
        detail = None

    if isinstance(detail, dict):
        for field in ("Message", "message", "error_description", "error", "detail"):
            value = detail.get(field)
            if value:
                return str(value)

    if response.text:
        return response.text[:500]
    return response.reason_phrase or ""


def parse_json_body(response: httpx.Response, what: str) -> Any:
    """Decode a JSON body, raising :class:`ProtocolError` if it is not JSON.

    Args:
        response: The successful response to decode.
        what: Short description of the payload for the error message.
    """
    try:
        return response.json()
    except ValueError as exc:
        raise ProtocolError(f"Malformed {what} response: {exc}") from exc
