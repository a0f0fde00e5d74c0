"""Order session state machine driving the checkout screens.

Each kind of remote operation (calculation, promo validation, product
load, order creation) has its own status and its own monotonically
increasing request token. A response is applied only if its token is
still the latest issued for that kind, so responses land in issue
order rather than arrival order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from .catalog import ProductCatalog
from .client import OrderApiClient
from .errors import CheckoutError, ConcurrentOperationError, PreconditionError
from .models import (
    ZERO,
    AppliedPromo,
    CustomerInfo,
    DiscountType,
    Location,
    OperationKind,
    OperationStatus,
    OrderCalculation,
    OrderCreationResult,
    ProductId,
    ProductItem,
    ProductList,
    VehicleInfo,
)
from .payment import PaymentOutcome, parse_payment_return, parse_payment_url
from .pricing import (
    DEFAULT_CURRENCY,
    FIXED_TRADE_IN_DISCOUNT,
    Number,
    compute_local_estimate,
    quantize_money,
    resolve_promo_discount,
)

logger = logging.getLogger(__name__)

Listener = Callable[["OrderSession"], None]


@dataclass
class OrderSession:
    """Mutable aggregate owned by a single checkout.

    Failures of remote calls are recorded in :attr:`statuses` and never
    raised; the only exceptions leaving this class are
    :class:`PreconditionError` (``set_product``/``create_order``) and
    :class:`ConcurrentOperationError` (``create_order``).
    """

    api: OrderApiClient
    token: str = ""
    catalog: ProductCatalog = field(default_factory=ProductCatalog)
    currency: str = DEFAULT_CURRENCY
    trade_in_discount: Decimal = FIXED_TRADE_IN_DISCOUNT
    location: Optional[Location] = None
    customer: Optional[CustomerInfo] = None
    vehicle: Optional[VehicleInfo] = None
    trade_in: bool = False
    product_id: Optional[ProductId] = None
    products: List[ProductItem] = field(default_factory=list)
    brand_id: Optional[int] = None
    promo: Optional[AppliedPromo] = None
    latest_calculation: Optional[OrderCalculation] = None
    order_result: Optional[OrderCreationResult] = None
    payment_outcome: Optional[PaymentOutcome] = None
    statuses: Dict[OperationKind, OperationStatus] = field(init=False, default_factory=dict)
    _tokens: Dict[OperationKind, int] = field(init=False, default_factory=dict, repr=False)
    _listeners: List[Listener] = field(init=False, default_factory=list, repr=False)

    def __post_init__(self) -> None:
        for kind in OperationKind:
            self.statuses[kind] = OperationStatus.idle()
            self._tokens[kind] = 0

    # -- observation -----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every state change; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def status(self, kind: OperationKind) -> OperationStatus:
        return self.statuses[kind]

    @property
    def selected_product(self) -> Optional[ProductItem]:
        if self.product_id is None:
            return None
        return self.catalog.find(self.products, self.product_id)

    @property
    def is_complete(self) -> bool:
        return self.order_result is not None

    def estimated_total(self) -> Decimal:
        """Local estimate from the selected product and the last known delivery fee."""

        product = self.selected_product
        if product is None:
            return ZERO
        subtotal = product.unit_price
        delivery_fee = self.latest_calculation.delivery_fee if self.latest_calculation else ZERO
        promo_discount = ZERO
        if self.promo is not None:
            promo_discount = resolve_promo_discount(
                subtotal, self.promo.discount_amount, self.promo.discount_type
            )
        return compute_local_estimate(
            subtotal,
            delivery_fee,
            self.trade_in,
            promo_discount,
            trade_in_discount=self.trade_in_discount,
        )

    @property
    def display_total(self) -> Decimal:
        """Server total once available; the local estimate otherwise."""

        calculation = self.latest_calculation
        if calculation is None:
            return self.estimated_total()
        if self.status(OperationKind.CALCULATION).is_failed and self.selected_product is not None:
            return self.estimated_total()
        return calculation.total

    # -- selection -------------------------------------------------------

    def set_customer(self, customer: CustomerInfo) -> None:
        self.customer = customer
        self._emit()

    def set_vehicle(self, vehicle: VehicleInfo) -> None:
        self.vehicle = vehicle
        self._emit()

    async def update_location(self, location: Location) -> Optional[OrderCalculation]:
        self.location = location
        self._emit()
        if self.product_id is None:
            return None
        return await self.recalculate()

    async def set_product(
        self, product_id: Union[str, int, ProductId]
    ) -> Optional[OrderCalculation]:
        self.product_id = self._resolve_product_id(product_id)
        self._emit()
        return await self.recalculate()

    async def set_trade_in(self, active: bool) -> Optional[OrderCalculation]:
        self.trade_in = active
        self._emit()
        if self.product_id is None:
            return None
        return await self.recalculate()

    # -- pricing ---------------------------------------------------------

    async def recalculate(self) -> Optional[OrderCalculation]:
        """Price the current selection; a failure keeps the previous calculation."""

        kind = OperationKind.CALCULATION
        request_token = self._issue(kind)
        try:
            product_id, location = self._require_selection()
        except PreconditionError as exc:
            self._set_status(kind, OperationStatus.failed(str(exc)))
            return None

        promo_code = self.promo.code if self.promo else None
        self._set_status(kind, OperationStatus.in_flight())
        try:
            calculation = await self.api.calculate_order(
                self.token,
                location=location,
                product_id=product_id,
                promo_code=promo_code,
                trade_in=self.trade_in,
            )
        except CheckoutError as exc:
            if self._is_latest(kind, request_token):
                self._set_status(kind, OperationStatus.failed(str(exc)))
            else:
                self._log_stale(kind, request_token)
            return None

        if not self._is_latest(kind, request_token):
            self._log_stale(kind, request_token)
            return None
        self.latest_calculation = calculation
        self._set_status(kind, OperationStatus.succeeded())
        return calculation

    async def apply_promo(
        self,
        code: str,
        hinted_amount: Optional[Number] = None,
        hinted_type: Optional[Union[DiscountType, str]] = None,
    ) -> bool:
        """Validate ``code`` through the calculate endpoint and apply it.

        A rejected code leaves any previously applied promo and its
        calculation untouched.
        """

        promo_kind = OperationKind.PROMO_VALIDATION
        calc_kind = OperationKind.CALCULATION
        promo_token = self._issue(promo_kind)
        code = (code or "").strip()
        if not code:
            self._set_status(promo_kind, OperationStatus.failed("Promo code is required"))
            return False
        try:
            product_id, location = self._require_selection()
        except PreconditionError as exc:
            self._set_status(promo_kind, OperationStatus.failed(str(exc)))
            return False

        calc_token = self._issue(calc_kind)
        previous_calc_status = self.status(calc_kind)
        self.statuses[promo_kind] = OperationStatus.in_flight()
        self.statuses[calc_kind] = OperationStatus.in_flight()
        self._emit()

        try:
            calculation = await self.api.calculate_order(
                self.token,
                location=location,
                product_id=product_id,
                promo_code=code,
                trade_in=self.trade_in,
            )
        except CheckoutError as exc:
            await self._reject_promo(promo_token, calc_token, previous_calc_status, str(exc))
            return False

        if not calculation.is_promo_valid:
            reason = f"Promo code {code} is not valid"
            await self._reject_promo(promo_token, calc_token, previous_calc_status, reason)
            return False

        if not self._is_latest(promo_kind, promo_token):
            self._log_stale(promo_kind, promo_token)
            await self._restore_calculation(calc_token, previous_calc_status)
            return False

        applied = self._applied_promo(code, calculation, hinted_amount, hinted_type)
        self.promo = applied
        self.statuses[promo_kind] = OperationStatus.succeeded()
        logger.info(
            "Promo %s applied (%s %s)", code, applied.discount_type.value, applied.discount_amount
        )
        if self._is_latest(calc_kind, calc_token):
            self.latest_calculation = calculation
            self.statuses[calc_kind] = OperationStatus.succeeded()
            self._emit()
        else:
            # a newer calculation went out without this promo
            self._log_stale(calc_kind, calc_token)
            self._emit()
            await self.recalculate()
        return True

    async def remove_promo(self) -> Optional[OrderCalculation]:
        self.promo = None
        self._issue(OperationKind.PROMO_VALIDATION)
        self.statuses[OperationKind.PROMO_VALIDATION] = OperationStatus.idle()
        self._emit()
        if self.product_id is None:
            return None
        return await self.recalculate()

    # -- products --------------------------------------------------------

    async def load_products(
        self,
        customer: Optional[CustomerInfo] = None,
        vehicle: Optional[VehicleInfo] = None,
        location: Optional[Location] = None,
    ) -> Optional[ProductList]:
        kind = OperationKind.PRODUCT_LOAD
        self._update_contact(customer, vehicle, location)
        request_token = self._issue(kind)
        try:
            customer, vehicle, location = self._require_contact()
        except PreconditionError as exc:
            self._set_status(kind, OperationStatus.failed(str(exc)))
            return None

        self._set_status(kind, OperationStatus.in_flight())
        try:
            listing = await self.api.load_products(
                self.token,
                customer=customer,
                location=location,
                vehicle_plate_number=vehicle.plate_number,
            )
        except CheckoutError as exc:
            if self._is_latest(kind, request_token):
                self._set_status(kind, OperationStatus.failed(str(exc)))
            else:
                self._log_stale(kind, request_token)
            return None

        if not self._is_latest(kind, request_token):
            self._log_stale(kind, request_token)
            return None
        self.products = listing.products
        self.brand_id = listing.brand_id
        self._set_status(kind, OperationStatus.succeeded())
        return listing

    # -- order -----------------------------------------------------------

    async def create_order(
        self,
        customer: Optional[CustomerInfo] = None,
        vehicle: Optional[VehicleInfo] = None,
        location: Optional[Location] = None,
        trade_in: Optional[bool] = None,
        promo_code: Optional[str] = None,
        notes: Optional[str] = None,
        redirect_url: Optional[str] = None,
        *,
        payment_type: str = "online",
        lead_reason: Optional[str] = None,
        order_type: Optional[str] = None,
    ) -> Optional[OrderCreationResult]:
        """Submit the order once; a second call while one is in flight is rejected."""

        kind = OperationKind.ORDER_CREATION
        if self.status(kind).is_in_flight:
            raise ConcurrentOperationError("An order is already being created")

        self._update_contact(customer, vehicle, location)
        try:
            product_id, location = self._require_selection()
            customer, vehicle, location = self._require_contact()
        except PreconditionError as exc:
            self._set_status(kind, OperationStatus.failed(str(exc)))
            raise
        if trade_in is not None:
            self.trade_in = trade_in

        if promo_code is None and self.promo is not None:
            promo_code = self.promo.code

        self._set_status(kind, OperationStatus.in_flight())
        try:
            result = await self.api.create_order(
                self.token,
                customer=customer,
                location=location,
                vehicle=vehicle,
                product_id=product_id,
                brand_id=self.brand_id,
                payment_type=payment_type,
                trade_in=self.trade_in,
                promo_code=promo_code,
                notes=notes,
                redirect_url=redirect_url,
                lead_reason=lead_reason,
                order_type=order_type,
            )
        except CheckoutError as exc:
            logger.error("Order creation failed: %s", exc)
            self._set_status(kind, OperationStatus.failed(str(exc)))
            return None

        self.order_result = result
        self._set_status(kind, OperationStatus.succeeded())
        return result

    def handle_payment_return(self, params: Union[str, Mapping[str, object]]) -> PaymentOutcome:
        """Record the outcome the payment redirect re-enters the app with."""

        if isinstance(params, str):
            outcome = parse_payment_url(params)
        else:
            outcome = parse_payment_return(params)  # type: ignore[arg-type]
        self.payment_outcome = outcome
        logger.info("Payment for order %s finished: %s", outcome.order_id, outcome.status.value)
        self._emit()
        return outcome

    def clear_errors(self) -> None:
        """Reset failed statuses to idle, keeping the last good data."""

        for kind, status in self.statuses.items():
            if status.is_failed:
                self.statuses[kind] = OperationStatus.idle()
        self._emit()

    # -- internals -------------------------------------------------------

    def _issue(self, kind: OperationKind) -> int:
        self._tokens[kind] += 1
        return self._tokens[kind]

    def _is_latest(self, kind: OperationKind, request_token: int) -> bool:
        return self._tokens[kind] == request_token

    def _log_stale(self, kind: OperationKind, request_token: int) -> None:
        logger.warning(
            "Discarding stale %s response (token %d, latest %d)",
            kind.value,
            request_token,
            self._tokens[kind],
        )

    def _set_status(self, kind: OperationKind, status: OperationStatus) -> None:
        self.statuses[kind] = status
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    async def _restore_calculation(
        self, calc_token: int, previous_calc_status: OperationStatus
    ) -> None:
        calc_kind = OperationKind.CALCULATION
        if not self._is_latest(calc_kind, calc_token):
            return
        if previous_calc_status.is_in_flight:
            # the superseded calculation will be discarded as stale
            await self.recalculate()
        else:
            self._set_status(calc_kind, previous_calc_status)

    async def _reject_promo(
        self,
        promo_token: int,
        calc_token: int,
        previous_calc_status: OperationStatus,
        reason: str,
    ) -> None:
        promo_kind = OperationKind.PROMO_VALIDATION
        if self._is_latest(promo_kind, promo_token):
            self.statuses[promo_kind] = OperationStatus.failed(reason)
        else:
            self._log_stale(promo_kind, promo_token)
        self._emit()
        await self._restore_calculation(calc_token, previous_calc_status)

    def _applied_promo(
        self,
        code: str,
        calculation: OrderCalculation,
        hinted_amount: Optional[Number],
        hinted_type: Optional[Union[DiscountType, str]],
    ) -> AppliedPromo:
        details = calculation.promo_details
        if details is not None and details.discount_value > 0:
            return AppliedPromo(code, details.discount_value, details.discount_type)
        if hinted_amount is not None:
            return AppliedPromo(
                code,
                quantize_money(hinted_amount),
                DiscountType.parse(hinted_type) or DiscountType.FIXED,
            )
        return AppliedPromo(code, calculation.promo_discount, DiscountType.FIXED)

    def _resolve_product_id(self, product_id: Union[str, int, ProductId]) -> ProductId:
        product = self.catalog.find(self.products, product_id)
        if product is not None:
            resolved = product.product_id
        elif isinstance(product_id, ProductId):
            resolved = product_id
        else:
            resolved = ProductId.from_wire(product_id)
        if not resolved.is_valid:
            raise PreconditionError(f"Product id {product_id!r} is not usable")
        return resolved

    def _update_contact(
        self,
        customer: Optional[CustomerInfo],
        vehicle: Optional[VehicleInfo],
        location: Optional[Location],
    ) -> None:
        if customer is not None:
            self.customer = customer
        if vehicle is not None:
            self.vehicle = vehicle
        if location is not None:
            self.location = location

    def _require_selection(self) -> Tuple[ProductId, Location]:
        if self.product_id is None or not self.product_id.is_valid:
            raise PreconditionError("A product must be selected")
        if self.location is None:
            raise PreconditionError("A delivery location is required")
        self.location.require_coordinates()
        return self.product_id, self.location

    def _require_contact(self) -> Tuple[CustomerInfo, VehicleInfo, Location]:
        if self.customer is None:
            raise PreconditionError("Customer details are required")
        missing = self.customer.missing_fields()
        if missing:
            raise PreconditionError(f"Customer {', '.join(missing)} required")
        if self.vehicle is None or not self.vehicle.is_complete:
            raise PreconditionError("Vehicle plate number is required")
        if self.location is None:
            raise PreconditionError("A delivery location is required")
        self.location.require_coordinates()
        return self.customer, self.vehicle, self.location
