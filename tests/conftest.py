import asyncio
from decimal import Decimal

import pytest

from batteriu.checkout.models import (
    CustomerInfo,
    DiscountType,
    Location,
    OrderCalculation,
    OrderCreationResult,
    ProductId,
    ProductItem,
    ProductList,
    PromoDetails,
    VehicleInfo,
)
from batteriu.checkout.session import OrderSession

VALID_PROMO = "BATTERIUNEWFD"


def make_calculation(promo_code=None, trade_in=False, total=None):
    promo_discount = Decimal("50.00") if promo_code == VALID_PROMO else Decimal("0.00")
    trade_in_discount = Decimal("20.00") if trade_in else Decimal("0.00")
    subtotal = Decimal("450.00")
    delivery_fee = Decimal("15.00")
    if total is None:
        total = subtotal + delivery_fee - promo_discount - trade_in_discount
    return OrderCalculation(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        promo_discount=promo_discount,
        trade_in_discount=trade_in_discount,
        total=total,
        promo_code=promo_code,
        is_promo_valid=promo_code == VALID_PROMO,
        promo_details=PromoDetails(DiscountType.FIXED, Decimal("50.00"))
        if promo_code == VALID_PROMO
        else None,
    )


class FakeOrderApi:
    """In-memory stand-in for OrderApiClient.

    With ``gated`` set, every calculate call parks on a future in
    ``pending`` that the test resolves explicitly.
    """

    def __init__(self):
        self.gated = False
        self.pending = []
        self.calculate_calls = []
        self.product_calls = []
        self.order_calls = []
        self.calculation_results = []
        self.product_results = []
        self.order_results = []
        self.order_gate = None

    async def calculate_order(self, token, location, product_id, promo_code=None, trade_in=False):
        self.calculate_calls.append(
            {
                "token": token,
                "location": location,
                "product_id": product_id,
                "promo_code": promo_code,
                "trade_in": trade_in,
            }
        )
        if self.gated:
            future = asyncio.get_running_loop().create_future()
            self.pending.append(future)
            return await future
        if self.calculation_results:
            result = self.calculation_results.pop(0)
        else:
            result = make_calculation(promo_code, trade_in)
        if isinstance(result, Exception):
            raise result
        return result

    async def load_products(self, token, customer, location, vehicle_plate_number):
        self.product_calls.append(
            {"token": token, "customer": customer, "location": location, "plate": vehicle_plate_number}
        )
        result = self.product_results.pop(0) if self.product_results else ProductList(
            products=[make_product()], brand_id=3
        )
        if isinstance(result, Exception):
            raise result
        return result

    async def create_order(self, token, **kwargs):
        self.order_calls.append(kwargs)
        if self.order_gate is not None:
            await self.order_gate.wait()
        result = self.order_results.pop(0) if self.order_results else OrderCreationResult(
            order_id="ORD-1",
            status="pending_payment",
            total_amount=Decimal("395.00"),
            payment_url="https://pay.example.com/ORD-1",
            payment_id="PAY-1",
        )
        if isinstance(result, Exception):
            raise result
        return result


def make_product(raw_id=101, **overrides):
    product_id = ProductId.from_wire(raw_id)
    values = dict(
        id=str(product_id),
        product_id=product_id,
        name="Amaron Hi-Life NS60",
        category="battery",
        consumable=False,
        price_cents=45000,
        price="RM450.00",
        brand="Amaron",
    )
    values.update(overrides)
    return ProductItem(**values)


@pytest.fixture
def location():
    return Location(latitude=3.139, longitude=101.6869, address="Jalan Ampang, Kuala Lumpur")


@pytest.fixture
def customer():
    return CustomerInfo(name="Aisyah", phone="+60123456789", email="aisyah@example.com")


@pytest.fixture
def vehicle():
    return VehicleInfo(plate_number="WXY 1234")


@pytest.fixture
def api():
    return FakeOrderApi()


@pytest.fixture
def session(api, location, customer, vehicle):
    return OrderSession(
        api=api,
        token="token-123",
        location=location,
        customer=customer,
        vehicle=vehicle,
        products=[make_product()],
    )
