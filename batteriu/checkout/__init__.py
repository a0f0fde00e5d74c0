"""Checkout core for the Batteriu battery-purchase app."""

from .catalog import CatalogSummary, ProductCatalog
from .client import OrderApiClient
from .errors import (
    ApiError,
    CheckoutError,
    ConcurrentOperationError,
    NetworkError,
    ParseError,
    PreconditionError,
    ValidationError,
)
from .models import (
    AppliedPromo,
    CustomerInfo,
    DiscountType,
    Location,
    OperationKind,
    OperationState,
    OperationStatus,
    OrderCalculation,
    OrderCreationResult,
    ProductId,
    ProductItem,
    ProductList,
    PromoDetails,
    VehicleInfo,
)
from .payment import PaymentOutcome, PaymentStatus, parse_payment_return, parse_payment_url
from .pricing import (
    FIXED_TRADE_IN_DISCOUNT,
    DiscountInfo,
    compute_local_estimate,
    extract_discount_info,
    format_discount_message,
)
from .session import OrderSession

__all__ = [
    "ApiError",
    "AppliedPromo",
    "CatalogSummary",
    "CheckoutError",
    "ConcurrentOperationError",
    "CustomerInfo",
    "DiscountInfo",
    "DiscountType",
    "FIXED_TRADE_IN_DISCOUNT",
    "Location",
    "NetworkError",
    "OperationKind",
    "OperationState",
    "OperationStatus",
    "OrderApiClient",
    "OrderCalculation",
    "OrderCreationResult",
    "OrderSession",
    "ParseError",
    "PaymentOutcome",
    "PaymentStatus",
    "PreconditionError",
    "ProductCatalog",
    "ProductId",
    "ProductItem",
    "ProductList",
    "PromoDetails",
    "ValidationError",
    "VehicleInfo",
    "compute_local_estimate",
    "extract_discount_info",
    "format_discount_message",
    "parse_payment_return",
    "parse_payment_url",
]
