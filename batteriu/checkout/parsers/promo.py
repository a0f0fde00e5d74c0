"""Parser for promo metadata returned by validate and calculate responses."""

from __future__ import annotations

from typing import Mapping

from ..models import PromoDetails
from ..pricing import extract_discount_info, to_decimal
from .base import BaseResponseParser, as_money


class PromoDetailsParser(BaseResponseParser[PromoDetails]):
    name = "promo details"

    def parse_mapping(self, payload: Mapping[str, object]) -> PromoDetails:
        info = extract_discount_info(payload)
        details = payload.get("promo_details")

        value = info.amount
        if isinstance(details, Mapping):
            explicit = to_decimal(details.get("discount_value"))
            if explicit is not None:
                value = explicit

        minimum = None
        for container in (details, payload.get("promo_code")):
            if isinstance(container, Mapping):
                minimum = to_decimal(container.get("minimum_order_amount"))
                if minimum is not None:
                    break

        return PromoDetails(
            discount_type=info.type,
            discount_value=as_money(value, "discount_value"),
            minimum_order_amount=as_money(minimum, "minimum_order_amount")
            if minimum is not None
            else None,
        )
