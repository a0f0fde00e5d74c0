"""Async HTTP client for the Batteriu commerce backend."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Mapping, Optional

import httpx

from ..config import Settings
from .errors import ApiError, NetworkError, ParseError, PreconditionError
from .models import (
    CustomerInfo,
    Location,
    OrderCalculation,
    OrderCreationResult,
    ProductId,
    ProductList,
    PromoDetails,
    VehicleInfo,
)
from .parsers import (
    CalculationParser,
    OrderResultParser,
    ProductListParser,
    ProductParser,
    PromoDetailsParser,
    extract_error_message,
)
from .pricing import DEFAULT_CURRENCY, FIXED_TRADE_IN_DISCOUNT

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class OrderApiClient:
    """Typed access to the calculate, products, orders and promo endpoints.

    The client holds no session state. The bearer token is passed to each
    call by the caller, which owns token acquisition and refresh.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        currency: str = DEFAULT_CURRENCY,
        trade_in_discount: Decimal = FIXED_TRADE_IN_DISCOUNT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.currency = currency
        self.trade_in_discount = trade_in_discount
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: object) -> "OrderApiClient":
        return cls(
            settings.api_base_url,
            timeout=settings.request_timeout,
            currency=settings.currency,
            trade_in_discount=settings.trade_in_discount,
            **kwargs,  # type: ignore[arg-type]
        )

    async def __aenter__(self) -> "OrderApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def calculate_order(
        self,
        token: str,
        location: Location,
        product_id: ProductId,
        promo_code: Optional[str] = None,
        trade_in: bool = False,
    ) -> OrderCalculation:
        """Price an order without committing it."""

        location.require_coordinates()
        order: Dict[str, object] = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "product_id": product_id.raw,
            "trade_in": trade_in,
        }
        if promo_code:
            order["promo_code"] = promo_code

        body = await self._request("POST", "/orders/calculate", token, {"order": order})
        parser = CalculationParser(
            trade_in=trade_in,
            promo_code=promo_code,
            trade_in_discount=self.trade_in_discount,
        )
        return parser.parse(body)

    async def load_products(
        self,
        token: str,
        customer: CustomerInfo,
        location: Location,
        vehicle_plate_number: str,
    ) -> ProductList:
        location.require_coordinates()
        payload = {
            "user": customer.as_dict(),
            "order": {
                "latitude": location.latitude,
                "longitude": location.longitude,
                "vehicle_plate_number": vehicle_plate_number,
            },
        }
        body = await self._request("POST", "/orders/products", token, payload)
        return ProductListParser(ProductParser(self.currency)).parse(body)

    async def create_order(
        self,
        token: str,
        *,
        customer: CustomerInfo,
        location: Location,
        vehicle: VehicleInfo,
        product_id: ProductId,
        brand_id: Optional[int] = None,
        payment_type: str = "online",
        trade_in: bool = False,
        promo_code: Optional[str] = None,
        notes: Optional[str] = None,
        redirect_url: Optional[str] = None,
        lead_reason: Optional[str] = None,
        order_type: Optional[str] = None,
    ) -> OrderCreationResult:
        """Submit the order; the response must carry an id and a total."""

        location.require_coordinates()
        if not product_id.is_valid:
            raise PreconditionError("A product must be selected before creating an order")

        order: Dict[str, object] = {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "product_id": product_id.raw,
            "trade_in": trade_in,
            "payment_type": payment_type,
            "customer": customer.as_dict(),
            "vehicle": vehicle.as_dict(),
            "address": location.address,
        }
        optional = {
            "brand_id": brand_id,
            "promo_code": promo_code,
            "notes": notes,
            "redirect_url": redirect_url,
            "lead_reason": lead_reason,
            "order_type": order_type,
        }
        order.update({key: value for key, value in optional.items() if value is not None})

        body = await self._request("POST", "/orders", token, {"order": order})
        result = OrderResultParser().parse(body)
        logger.info("Order %s created with status %s", result.order_id, result.status)
        return result

    async def validate_promo(self, token: str, code: str) -> PromoDetails:
        body = await self._request("POST", "/promo_codes/validate", token, {"code": code})
        return PromoDetailsParser().parse(body)

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        payload: Mapping[str, object],
    ) -> object:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        logger.debug("%s %s", method, path)
        try:
            response = await self._http.request(method, path, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {path} timed out after {self.timeout:g}s") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            message = extract_error_message(body, response.status_code)
            logger.warning("%s %s returned %s: %s", method, path, response.status_code, message)
            raise ApiError(
                message,
                response.status_code,
                body if isinstance(body, Mapping) else None,
            )

        if body is None:
            raise ParseError(f"{method} {path} returned a non-JSON body")
        logger.info("%s %s -> %s", method, path, response.status_code)
        return body
