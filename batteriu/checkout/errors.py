"""Exceptions raised by the Batteriu checkout core."""

from __future__ import annotations

from typing import Mapping, Optional


class CheckoutError(Exception):
    """Base class for every checkout failure."""


class ValidationError(CheckoutError):
    """A required input is missing or unusable."""


class PreconditionError(ValidationError):
    """An operation was attempted before its inputs were available."""


class NetworkError(CheckoutError):
    """The request never produced an HTTP response (transport failure or timeout)."""


class ApiError(CheckoutError):
    """The backend answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        payload: Optional[Mapping[str, object]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ParseError(CheckoutError):
    """A response could not be turned into the expected shape."""


class ConcurrentOperationError(CheckoutError):
    """An order submission is already in flight."""


class ConfigurationError(CheckoutError):
    """Settings loaded from the environment are invalid."""
