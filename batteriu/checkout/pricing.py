"""Pure pricing rules: local estimates and discount extraction.

Nothing in this module performs I/O or raises on malformed input. The
discount extractor walks an ordered list of strategies and takes the
first one that yields a value, so a new response shape is supported by
adding an entry to :data:`DISCOUNT_AMOUNT_SOURCES` or
:data:`DISCOUNT_TYPE_SOURCES`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, List, Mapping, Optional, Tuple, Union

from .models import ZERO, DiscountType

logger = logging.getLogger(__name__)

FIXED_TRADE_IN_DISCOUNT = Decimal("20.00")
DEFAULT_CURRENCY = "RM"

Number = Union[Decimal, int, float, str]

_NON_NUMERIC = re.compile(r"[^0-9.]")


def to_decimal(value: object) -> Optional[Decimal]:
    """Convert a JSON scalar into a :class:`Decimal`, or ``None`` if it is not numeric."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def quantize_money(value: Number) -> Decimal:
    amount = to_decimal(value)
    if amount is None:
        return ZERO
    try:
        return amount.quantize(ZERO, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        logger.warning("Amount %s is out of range; treating it as zero", amount)
        return ZERO


def compute_local_estimate(
    subtotal: Number,
    delivery_fee: Number,
    trade_in_active: bool,
    promo_discount: Number = ZERO,
    *,
    trade_in_discount: Number = FIXED_TRADE_IN_DISCOUNT,
) -> Decimal:
    """Estimate an order total before (or without) a server calculation.

    The result is floored at zero. Once the server answers, its total
    replaces this estimate.
    """

    total = quantize_money(subtotal) + quantize_money(delivery_fee)
    if trade_in_active:
        total -= quantize_money(trade_in_discount)
    total -= quantize_money(promo_discount)
    return max(total, ZERO)


def resolve_promo_discount(
    subtotal: Number, amount: Number, discount_type: Union[DiscountType, str]
) -> Decimal:
    """Turn a promo amount into money off ``subtotal``, capped at the subtotal."""

    base = quantize_money(subtotal)
    value = quantize_money(amount)
    if DiscountType.parse(discount_type) is DiscountType.PERCENTAGE:
        value = quantize_money(base * value / 100)
    return max(min(value, base), ZERO)


@dataclass(frozen=True, slots=True)
class DiscountInfo:
    amount: Decimal = Decimal("0.0")
    type: DiscountType = DiscountType.FIXED


Extractor = Callable[[Mapping[str, object]], Optional[object]]


def _nested(body: Mapping[str, object], parent: str, key: str) -> object:
    container = body.get(parent)
    if isinstance(container, Mapping):
        return container.get(key)
    return None


def _promo_code_value(body: Mapping[str, object]) -> Optional[Decimal]:
    # "RM50" and "10" are both seen here
    raw = _nested(body, "promo_code", "value")
    if raw is None or isinstance(raw, bool):
        return None
    digits = _NON_NUMERIC.sub("", str(raw))
    if not digits:
        return None
    return to_decimal(digits)


def _numeric_field(key: str) -> Extractor:
    def extract(body: Mapping[str, object]) -> Optional[Decimal]:
        return to_decimal(body.get(key))

    return extract


def _type_field(parent: str, key: str) -> Extractor:
    def extract(body: Mapping[str, object]) -> Optional[DiscountType]:
        return DiscountType.parse(_nested(body, parent, key))

    return extract


DISCOUNT_AMOUNT_SOURCES: List[Tuple[str, Extractor]] = [
    ("promo_code.value", _promo_code_value),
    ("promo_discount", _numeric_field("promo_discount")),
    ("discount", _numeric_field("discount")),
    ("discount_amount", _numeric_field("discount_amount")),
    ("amount", _numeric_field("amount")),
]

DISCOUNT_TYPE_SOURCES: List[Tuple[str, Extractor]] = [
    ("promo_code.value_type", _type_field("promo_code", "value_type")),
    ("promo_details.discount_type", _type_field("promo_details", "discount_type")),
]


def first_match(
    sources: List[Tuple[str, Extractor]], body: Mapping[str, object]
) -> Optional[object]:
    """Return the first non-``None`` value produced by ``sources``."""

    for name, extractor in sources:
        try:
            value = extractor(body)
        except Exception as exc:  # noqa: BLE001 - every source is allowed to fail
            logger.debug("Discount source %s failed: %s", name, exc)
            continue
        if value is not None:
            logger.debug("Discount source %s matched: %s", name, value)
            return value
    return None


def extract_discount_info(body: object) -> DiscountInfo:
    """Resolve discount amount and type from any known response shape."""

    if not isinstance(body, Mapping):
        return DiscountInfo()
    amount = first_match(DISCOUNT_AMOUNT_SOURCES, body)
    discount_type = first_match(DISCOUNT_TYPE_SOURCES, body)
    return DiscountInfo(
        amount=amount if isinstance(amount, Decimal) else Decimal("0.0"),
        type=discount_type if isinstance(discount_type, DiscountType) else DiscountType.FIXED,
    )


def format_discount_message(
    amount: Number,
    discount_type: Union[DiscountType, str],
    currency: str = DEFAULT_CURRENCY,
) -> str:
    """Render the "... OFF" label shown next to an applied promo."""

    value = quantize_money(amount)
    if DiscountType.parse(discount_type) is DiscountType.PERCENTAGE:
        return f"{value:.2f}% OFF"
    return f"{currency}{value:.2f} OFF"
