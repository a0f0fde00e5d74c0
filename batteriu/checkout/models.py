"""Data models for the Batteriu checkout flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional, Union

from .errors import PreconditionError

ZERO = Decimal("0.00")


class DiscountType(str, Enum):
    """How a promo discount value is interpreted."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"

    @classmethod
    def parse(cls, value: object) -> Optional["DiscountType"]:
        """Return the matching type, or ``None`` when the value is not recognized."""

        if isinstance(value, DiscountType):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        if key in {"fixed", "amount", "flat"}:
            return cls.FIXED
        if key in {"percentage", "percent"}:
            return cls.PERCENTAGE
        return None


@dataclass(frozen=True, slots=True)
class ProductId:
    """Product identifier kept in the exact form the backend sent it.

    The backend has used both strings and integers for ``product_id`` and
    expects whichever form it originally produced, so the raw value is
    carried through to requests untouched.
    """

    raw: Union[str, int]

    @classmethod
    def from_wire(cls, value: object) -> "ProductId":
        if isinstance(value, bool) or value is None:
            return cls("")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, float) and value.is_integer():
            return cls(int(value))
        return cls(str(value).strip())

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.raw, int)

    @property
    def is_valid(self) -> bool:
        return str(self) != ""

    def __str__(self) -> str:
        return str(self.raw)


@dataclass(slots=True)
class ProductItem:
    """A purchasable battery as listed by the products endpoint."""

    id: str
    product_id: ProductId
    name: str
    category: str
    consumable: bool
    price_cents: int
    price: str
    brand: Optional[str] = None
    manufacturer_name: Optional[str] = None
    warranty_period: int = 12
    warranty_mileage: Optional[int] = None
    image_url: Optional[str] = None
    is_available: bool = True
    is_recommended: bool = False

    @property
    def is_usable(self) -> bool:
        """Return whether the product can be selected for an order."""

        return bool(self.id)

    @property
    def unit_price(self) -> Decimal:
        """Price in currency units derived from ``price_cents``."""

        try:
            return (Decimal(self.price_cents) / 100).quantize(ZERO)
        except InvalidOperation:
            return ZERO


@dataclass(slots=True)
class ProductList:
    """Products offered for a customer, location and vehicle."""

    products: List[ProductItem] = field(default_factory=list)
    brand_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Location:
    """Delivery location supplied by the map / GPS collaborator."""

    latitude: Optional[float]
    longitude: Optional[float]
    address: str = ""

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def require_coordinates(self) -> None:
        if not self.has_coordinates:
            raise PreconditionError("Location latitude and longitude are required")


@dataclass(frozen=True, slots=True)
class CustomerInfo:
    name: str
    phone: str
    email: str

    def missing_fields(self) -> List[str]:
        return [
            label
            for label, value in (("name", self.name), ("phone", self.phone), ("email", self.email))
            if not value or not value.strip()
        ]

    def as_dict(self) -> Dict[str, str]:
        return {"name": self.name, "phone": self.phone, "email": self.email}


@dataclass(frozen=True, slots=True)
class VehicleInfo:
    plate_number: str

    @property
    def is_complete(self) -> bool:
        return bool(self.plate_number and self.plate_number.strip())

    def as_dict(self) -> Dict[str, str]:
        return {"plate_number": self.plate_number}


@dataclass(frozen=True, slots=True)
class PromoDetails:
    """Descriptive metadata about an applied promo."""

    discount_type: DiscountType = DiscountType.FIXED
    discount_value: Decimal = ZERO
    minimum_order_amount: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class AppliedPromo:
    """A promo code the session currently sends with every calculation."""

    code: str
    discount_amount: Decimal = ZERO
    discount_type: DiscountType = DiscountType.FIXED


@dataclass(frozen=True, slots=True)
class OrderCalculation:
    """Result of a server-side price computation.

    ``total`` is the server's figure and is never replaced by a local
    recomputation, even when the two disagree.
    """

    subtotal: Decimal
    delivery_fee: Decimal
    promo_discount: Decimal
    trade_in_discount: Decimal
    total: Decimal
    promo_code: Optional[str] = None
    is_promo_valid: bool = False
    promo_details: Optional[PromoDetails] = None

    @property
    def local_total(self) -> Decimal:
        """Total recomputed from the breakdown, for comparison only."""

        return self.subtotal + self.delivery_fee - self.promo_discount - self.trade_in_discount


@dataclass(frozen=True, slots=True)
class OrderCreationResult:
    """Terminal output of a successful order submission."""

    order_id: str
    status: str
    total_amount: Decimal
    payment_url: Optional[str] = None
    payment_id: Optional[str] = None

    @property
    def has_payment_url(self) -> bool:
        return bool(self.payment_url)

    def payment_handoff(self) -> Dict[str, object]:
        """Return what the payment collaborator needs to start checkout."""

        if not self.has_payment_url:
            raise PreconditionError(f"Order {self.order_id} has no payment URL")
        return {
            "order_id": self.order_id,
            "payment_url": self.payment_url,
            "total_amount": self.total_amount,
        }


class OperationKind(str, Enum):
    CALCULATION = "calculation"
    PROMO_VALIDATION = "promo_validation"
    PRODUCT_LOAD = "product_load"
    ORDER_CREATION = "order_creation"


class OperationState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class OperationStatus:
    """Status of one kind of asynchronous operation."""

    state: OperationState = OperationState.IDLE
    reason: Optional[str] = None

    @classmethod
    def idle(cls) -> "OperationStatus":
        return cls(OperationState.IDLE)

    @classmethod
    def in_flight(cls) -> "OperationStatus":
        return cls(OperationState.IN_FLIGHT)

    @classmethod
    def succeeded(cls) -> "OperationStatus":
        return cls(OperationState.SUCCEEDED)

    @classmethod
    def failed(cls, reason: str) -> "OperationStatus":
        return cls(OperationState.FAILED, reason)

    @property
    def is_in_flight(self) -> bool:
        return self.state is OperationState.IN_FLIGHT

    @property
    def is_failed(self) -> bool:
        return self.state is OperationState.FAILED
