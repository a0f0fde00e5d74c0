"""Parser for ``POST /orders/calculate`` responses."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping, Optional

from ..models import ZERO, OrderCalculation, PromoDetails
from ..pricing import (
    FIXED_TRADE_IN_DISCOUNT,
    compute_local_estimate,
    quantize_money,
    to_decimal,
)
from .base import BaseResponseParser, as_bool, as_money, as_str, unwrap
from .promo import PromoDetailsParser

logger = logging.getLogger(__name__)


class CalculationParser(BaseResponseParser[OrderCalculation]):
    """Normalize price calculations, defaulting any missing figure.

    ``trade_in`` and ``promo_code`` describe the request that produced
    the response so that absent fields can be filled consistently.
    """

    name = "order calculation"

    def __init__(
        self,
        *,
        trade_in: bool = False,
        promo_code: Optional[str] = None,
        trade_in_discount: Decimal = FIXED_TRADE_IN_DISCOUNT,
    ) -> None:
        self.trade_in = trade_in
        self.promo_code = promo_code
        self.trade_in_discount = trade_in_discount

    def parse_mapping(self, payload: Mapping[str, object]) -> OrderCalculation:
        body = unwrap(payload, "calculation", "data")

        subtotal = self._money(body, "subtotal")
        delivery_fee = self._money(body, "delivery_fee")
        promo_discount = self._money(body, "promo_discount")

        server_trade_in = to_decimal(body.get("trade_in_discount"))
        if server_trade_in is not None:
            trade_in_discount = as_money(server_trade_in, "trade_in_discount")
        elif self.trade_in:
            trade_in_discount = quantize_money(self.trade_in_discount)
        else:
            trade_in_discount = ZERO

        server_total = to_decimal(body.get("total"))
        if server_total is not None:
            total = as_money(server_total, "total")
        else:
            logger.warning("Calculation response has no total; using local estimate")
            total = compute_local_estimate(
                subtotal,
                delivery_fee,
                trade_in_discount > 0,
                promo_discount,
                trade_in_discount=trade_in_discount,
            )

        return OrderCalculation(
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            promo_discount=promo_discount,
            trade_in_discount=trade_in_discount,
            total=total,
            promo_code=self._promo_code(body),
            is_promo_valid=as_bool(body.get("is_promo_valid"), default=promo_discount > 0),
            promo_details=self._promo_details(body),
        )

    def _promo_code(self, body: Mapping[str, object]) -> Optional[str]:
        value = body.get("promo_code")
        if isinstance(value, Mapping):
            return as_str(value.get("code")) or self.promo_code
        return as_str(value) or self.promo_code

    @staticmethod
    def _promo_details(body: Mapping[str, object]) -> Optional[PromoDetails]:
        if not any(isinstance(body.get(key), Mapping) for key in ("promo_details", "promo_code")):
            return None
        return PromoDetailsParser().parse_mapping(body)

    @staticmethod
    def _money(body: Mapping[str, object], key: str) -> Decimal:
        value = to_decimal(body.get(key))
        if value is None:
            return ZERO
        return as_money(value, key)
