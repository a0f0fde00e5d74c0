"""Parser for ``/orders/products`` responses."""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from ..models import ProductId, ProductItem, ProductList
from ..pricing import DEFAULT_CURRENCY
from .base import BaseResponseParser, as_bool, as_int, as_str

logger = logging.getLogger(__name__)

DEFAULT_WARRANTY_MONTHS = 12


class ProductParser(BaseResponseParser[ProductItem]):
    """Normalize a single battery listing."""

    name = "product"

    def __init__(self, currency: str = DEFAULT_CURRENCY) -> None:
        self.currency = currency

    def parse_mapping(self, payload: Mapping[str, object]) -> ProductItem:
        raw_id = payload.get("id")
        if raw_id is None:
            raw_id = payload.get("product_id")
        product_id = ProductId.from_wire(raw_id)
        if not product_id.is_valid:
            logger.warning("Product %r has no usable id", payload.get("name"))

        price_cents = as_int(payload.get("price_cents")) or 0
        price = as_str(payload.get("price")) or f"{self.currency}{price_cents / 100:.2f}"
        warranty_period = as_int(payload.get("warranty_period"))

        return ProductItem(
            id=str(product_id),
            product_id=product_id,
            name=str(payload.get("name") or ""),
            brand=as_str(payload.get("brand")),
            manufacturer_name=as_str(payload.get("manufacturer_name")),
            category=str(payload.get("category") or ""),
            consumable=as_bool(payload.get("consumable")),
            price_cents=price_cents,
            price=price,
            warranty_period=DEFAULT_WARRANTY_MONTHS if warranty_period is None else warranty_period,
            warranty_mileage=as_int(payload.get("warranty_mileage")),
            image_url=as_str(payload.get("image_url")),
            is_available=as_bool(payload.get("is_available"), default=True),
            is_recommended=as_bool(payload.get("is_recommended"))
            or as_bool(payload.get("recommended")),
        )


class ProductListParser(BaseResponseParser[ProductList]):
    """Parse the product listing, which arrives under ``products`` or ``data``."""

    name = "product list"

    def __init__(self, product_parser: ProductParser | None = None) -> None:
        self.product_parser = product_parser or ProductParser()

    def parse_mapping(self, payload: Mapping[str, object]) -> ProductList:
        raw_products = payload.get("products")
        if raw_products is None:
            raw_products = payload.get("data")
        if isinstance(raw_products, Mapping):
            # {"data": {"brand_id": ..., "products": [...]}}
            return self.parse_mapping(raw_products)
        if not isinstance(raw_products, Sequence) or isinstance(raw_products, (str, bytes)):
            raw_products = []

        return ProductList(
            products=self.product_parser.parse_many(raw_products),
            brand_id=as_int(payload.get("brand_id")),
        )
