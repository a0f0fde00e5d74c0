"""Utilities for organizing the battery catalog shown during product selection."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, MutableMapping, Optional, Sequence, Union

from .models import ProductId, ProductItem


@dataclass(slots=True)
class CatalogSummary:
    """Aggregated statistics about a product listing."""

    total_products: int
    available_products: int
    recommended_products: int
    cheapest_price_cents: Optional[int]


class ProductCatalog:
    """Helper utilities for filtering, grouping and looking up products."""

    def selectable(self, products: Iterable[ProductItem]) -> List[ProductItem]:
        """Return products that can actually be ordered."""

        return [product for product in products if product.is_usable and product.is_available]

    def recommended(self, products: Iterable[ProductItem]) -> List[ProductItem]:
        return [product for product in self.selectable(products) if product.is_recommended]

    def sort_products(self, products: Sequence[ProductItem]) -> List[ProductItem]:
        """Return products with recommended ones first, then cheapest first."""

        return sorted(
            products,
            key=lambda product: (not product.is_recommended, product.price_cents, product.name),
        )

    def group_by_brand(self, products: Iterable[ProductItem]) -> Dict[str, List[ProductItem]]:
        grouped: MutableMapping[str, List[ProductItem]] = defaultdict(list)
        for product in products:
            grouped[(product.brand or "other").lower()].append(product)
        return dict(grouped)

    def find(
        self, products: Iterable[ProductItem], product_id: Union[str, int, ProductId]
    ) -> Optional[ProductItem]:
        """Look a product up by id, comparing ids in their string form."""

        key = str(product_id).strip()
        if not key:
            return None
        for product in products:
            if product.id == key:
                return product
        return None

    def summary(self, products: Iterable[ProductItem]) -> CatalogSummary:
        """Produce a :class:`CatalogSummary` for the supplied products."""

        total_products = 0
        available_products = 0
        recommended_products = 0
        cheapest: Optional[int] = None

        for product in products:
            total_products += 1
            if product.is_recommended:
                recommended_products += 1
            if not (product.is_available and product.is_usable):
                continue
            available_products += 1
            if cheapest is None or product.price_cents < cheapest:
                cheapest = product.price_cents

        return CatalogSummary(
            total_products=total_products,
            available_products=available_products,
            recommended_products=recommended_products,
            cheapest_price_cents=cheapest,
        )
