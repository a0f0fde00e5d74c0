"""Extraction of human readable error messages from failed responses."""

from __future__ import annotations

from typing import Callable, List, Mapping, Optional, Sequence

MessageSource = Callable[[Mapping[str, object]], Optional[str]]


def _text(value: object) -> Optional[str]:
    if isinstance(value, Mapping):
        value = value.get("message")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _field(key: str) -> MessageSource:
    def extract(body: Mapping[str, object]) -> Optional[str]:
        return _text(body.get(key))

    return extract


def _first_error(body: Mapping[str, object]) -> Optional[str]:
    errors = body.get("errors")
    if isinstance(errors, Sequence) and not isinstance(errors, (str, bytes)) and errors:
        return _text(errors[0])
    return None


ERROR_MESSAGE_SOURCES: List[MessageSource] = [
    _field("message"),
    _field("error"),
    _first_error,
]


def extract_error_message(payload: object, status_code: int) -> str:
    """Return the best message for a failed response, falling back to ``HTTP <status>``."""

    if isinstance(payload, Mapping):
        for source in ERROR_MESSAGE_SOURCES:
            message = source(payload)
            if message:
                return message
    return f"HTTP {status_code}"
