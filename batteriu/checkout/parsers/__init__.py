"""Response parsers for the checkout backend."""

from .base import BaseResponseParser
from .calculation import CalculationParser
from .errors import extract_error_message
from .orders import OrderResultParser
from .products import ProductListParser, ProductParser
from .promo import PromoDetailsParser

__all__ = [
    "BaseResponseParser",
    "CalculationParser",
    "OrderResultParser",
    "ProductListParser",
    "ProductParser",
    "PromoDetailsParser",
    "extract_error_message",
]
