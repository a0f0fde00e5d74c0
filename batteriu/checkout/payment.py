"""Parsing of the parameters the app is re-entered with after payment."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional, Sequence, Union
from urllib.parse import parse_qs, urlparse

from .errors import ParseError
from .pricing import to_decimal

ParamValue = Union[str, Sequence[str], None]


class PaymentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PaymentOutcome:
    """Terminal payment result reported by the payment redirect."""

    status: PaymentStatus
    order_id: Optional[str] = None
    amount: Optional[Decimal] = None
    payment_method: Optional[str] = None
    service_type: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is PaymentStatus.SUCCESS


_STATUS_VALUES = {"success": PaymentStatus.SUCCESS, "failed": PaymentStatus.FAILED}
_PAID_VALUES = {"true": PaymentStatus.SUCCESS, "false": PaymentStatus.FAILED}


def _single(value: ParamValue) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        # parse_qs yields lists
        value = value[0] if value else ""
    text = value.strip()
    return text or None


def _status(params: Mapping[str, ParamValue]) -> PaymentStatus:
    status = _single(params.get("status"))
    if status and status.lower() in _STATUS_VALUES:
        return _STATUS_VALUES[status.lower()]
    paid = _single(params.get("paid"))
    if paid and paid.lower() in _PAID_VALUES:
        return _PAID_VALUES[paid.lower()]
    raise ParseError(f"Unrecognized payment status (status={status!r}, paid={paid!r})")


def parse_payment_return(params: Mapping[str, ParamValue]) -> PaymentOutcome:
    """Map ``status=success|failed`` or legacy ``paid=true|false`` to an outcome."""

    amount_raw = _single(params.get("amount"))
    return PaymentOutcome(
        status=_status(params),
        order_id=_single(params.get("orderId") or params.get("order_id")),
        amount=to_decimal(amount_raw) if amount_raw else None,
        payment_method=_single(params.get("paymentMethod") or params.get("payment_method")),
        service_type=_single(params.get("serviceType") or params.get("service_type")),
    )


def parse_payment_url(url: str) -> PaymentOutcome:
    """Parse a full payment deep link such as ``batteriu://payment?status=success``."""

    return parse_payment_return(parse_qs(urlparse(url).query))
