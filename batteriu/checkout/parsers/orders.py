"""Parser for ``POST /orders`` responses.

Unlike the other parsers this one refuses to guess: a success response
without an order id or a usable total is a :class:`ParseError`.
"""

from __future__ import annotations

from typing import Mapping

from ..errors import ParseError
from ..models import OrderCreationResult
from ..pricing import to_decimal
from .base import BaseResponseParser, as_money, as_str, unwrap

DEFAULT_ORDER_STATUS = "pending_payment"


class OrderResultParser(BaseResponseParser[OrderCreationResult]):
    name = "order creation result"

    def parse_mapping(self, payload: Mapping[str, object]) -> OrderCreationResult:
        body = unwrap(payload, "order", "data")

        order_id = as_str(body.get("order_id") or body.get("id"))
        if not order_id:
            raise ParseError("Order response is missing order_id")

        total_amount = to_decimal(body.get("total_amount"))
        if total_amount is None:
            raise ParseError(f"Order {order_id} response has no valid total_amount")

        return OrderCreationResult(
            order_id=order_id,
            status=as_str(body.get("status")) or DEFAULT_ORDER_STATUS,
            total_amount=as_money(total_amount, "total_amount"),
            payment_url=as_str(body.get("payment_url")),
            payment_id=as_str(body.get("payment_id")),
        )
