"""Batteriu checkout package."""

from .checkout.client import OrderApiClient
from .checkout.models import OrderCalculation, ProductItem
from .checkout.session import OrderSession
from .config import Settings, load_settings

__all__ = [
    "OrderApiClient",
    "OrderCalculation",
    "OrderSession",
    "ProductItem",
    "Settings",
    "load_settings",
]
