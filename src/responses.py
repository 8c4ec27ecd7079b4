"""Uniform success/failure handling for store responses."""

import json
from typing import Any, Callable

import httpx

from errors import HttpStatusError

# CouchDB answers missing documents and views with 404 and a JSON reason.
NOT_FOUND = 404


def _not_found_reason(body: bytes) -> str | None:
    try:
        reason = json.loads(body).get("reason")
    except (ValueError, AttributeError):
        return None
    return reason if isinstance(reason, str) else None


def interpret(response: httpx.Response, decoder: Callable[[bytes], Any], error_msg: str = "") -> Any:
    if response.status_code < 400:
        return decoder(response.content)

    message = f"{error_msg}{response.status_code} - {response.reason_phrase}"
    reason = None
    if response.status_code == NOT_FOUND:
        reason = _not_found_reason(response.content)
        if reason is not None:
            message = f"{message}, {reason}"
    raise HttpStatusError(message, response.status_code, reason)
