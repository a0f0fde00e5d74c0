"""Base classes and helpers for backend response parsers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Generic, Iterable, List, Mapping, Optional, TypeVar

from ..errors import ParseError
from ..models import ZERO

T = TypeVar("T")


class BaseResponseParser(ABC, Generic[T]):
    """Turn a decoded JSON body into a typed model."""

    name: str

    def parse(self, payload: object) -> T:
        """Validate that ``payload`` is a JSON object and parse it."""

        if not isinstance(payload, Mapping):
            raise ParseError(f"Expected a JSON object for {self.name}, got {type(payload).__name__}")
        return self.parse_mapping(payload)

    def parse_many(self, payloads: Iterable[object]) -> List[T]:
        """Parse every mapping in ``payloads``, skipping anything else."""

        return [self.parse_mapping(item) for item in payloads if isinstance(item, Mapping)]

    @abstractmethod
    def parse_mapping(self, payload: Mapping[str, object]) -> T:
        """Convert a JSON object into the parser's model."""

    def __repr__(self) -> str:  # pragma: no cover - simple helper
        return f"{self.__class__.__name__}(name={self.name!r})"


def unwrap(payload: Mapping[str, object], *keys: str) -> Mapping[str, object]:
    """Return the first nested object found under ``keys``, else ``payload`` itself."""

    for key in keys:
        value = payload.get(key)
        if isinstance(value, Mapping):
            return value
    return payload


def as_int(value: object) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                return int(float(text))
            except ValueError:
                return None
    return None


def as_bool(value: object, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        key = value.strip().lower()
        if key in {"true", "1", "yes"}:
            return True
        if key in {"false", "0", "no"}:
            return False
    return default


def as_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def as_money(value: Decimal, field: str) -> Decimal:
    """Round ``value`` to cents, rejecting amounts too large to represent."""

    try:
        return value.quantize(ZERO, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ParseError(f"{field} {value} is out of range") from exc
