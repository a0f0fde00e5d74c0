import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from batteriu.checkout.client import OrderApiClient
from batteriu.checkout.errors import (
    ApiError,
    ConcurrentOperationError,
    NetworkError,
    ParseError,
    PreconditionError,
    ValidationError,
)
from batteriu.checkout.models import (
    CustomerInfo,
    DiscountType,
    Location,
    OperationKind,
    OperationState,
    OrderCalculation,
    ProductId,
    ProductList,
    VehicleInfo,
)
from batteriu.checkout.session import OrderSession

from conftest import VALID_PROMO, make_calculation, make_product


def _state(session, kind):
    return session.status(kind).state


@pytest.mark.asyncio
async def test_set_product_resolves_wire_id_and_calculates(session, api):
    calculation = await session.set_product("101")

    assert api.calculate_calls[0]["product_id"] == ProductId(101)
    assert calculation.total == Decimal("465.00")
    assert session.latest_calculation is calculation
    assert _state(session, OperationKind.CALCULATION) is OperationState.SUCCEEDED


@pytest.mark.asyncio
async def test_set_product_rejects_empty_id(session, api):
    with pytest.raises(PreconditionError):
        await session.set_product("  ")
    assert api.calculate_calls == []


@pytest.mark.asyncio
async def test_recalculate_twice_is_idempotent(session):
    await session.set_product("101")
    first = await session.recalculate()
    second = await session.recalculate()
    assert first == second


@pytest.mark.asyncio
async def test_trade_in_toggle_recalculates(session, api):
    await session.set_product("101")
    calculation = await session.set_trade_in(True)

    assert api.calculate_calls[-1]["trade_in"] is True
    assert calculation.trade_in_discount == Decimal("20.00")


@pytest.mark.asyncio
async def test_trade_in_without_product_only_toggles(session, api):
    assert await session.set_trade_in(True) is None
    assert session.trade_in is True
    assert api.calculate_calls == []


@pytest.mark.asyncio
async def test_failed_recalculation_keeps_previous_result(session, api):
    good = await session.set_product("101")
    api.calculation_results.append(NetworkError("GET /orders/calculate timed out after 30s"))

    assert await session.recalculate() is None
    assert session.latest_calculation is good
    status = session.status(OperationKind.CALCULATION)
    assert status.state is OperationState.FAILED
    assert "timed out" in status.reason


@pytest.mark.asyncio
async def test_recalculate_without_location_fails_without_network(api):
    session = OrderSession(api=api, products=[make_product()])
    await session.set_product("101")

    assert api.calculate_calls == []
    assert _state(session, OperationKind.CALCULATION) is OperationState.FAILED


@pytest.mark.asyncio
async def test_apply_promo_stores_promo_and_calculation(session):
    await session.set_product("101")
    await session.set_trade_in(True)

    assert await session.apply_promo(VALID_PROMO) is True

    assert session.promo.code == VALID_PROMO
    assert session.promo.discount_amount == Decimal("50.00")
    assert session.promo.discount_type is DiscountType.FIXED
    assert session.latest_calculation.total == Decimal("395.00")
    assert _state(session, OperationKind.PROMO_VALIDATION) is OperationState.SUCCEEDED


@pytest.mark.asyncio
async def test_apply_promo_uses_hints_when_response_has_no_details(session, api):
    await session.set_product("101")
    calculation = make_calculation()
    api.calculation_results.append(
        OrderCalculation(
            subtotal=calculation.subtotal,
            delivery_fee=calculation.delivery_fee,
            promo_discount=Decimal("45.00"),
            trade_in_discount=calculation.trade_in_discount,
            total=Decimal("420.00"),
            promo_code="TENOFF",
            is_promo_valid=True,
        )
    )

    assert await session.apply_promo("TENOFF", hinted_amount=10, hinted_type="percentage")
    assert session.promo.discount_amount == Decimal("10.00")
    assert session.promo.discount_type is DiscountType.PERCENTAGE


@pytest.mark.asyncio
async def test_invalid_promo_keeps_existing_promo(session, api):
    await session.set_product("101")
    await session.apply_promo(VALID_PROMO)
    applied = session.promo
    calculation = session.latest_calculation

    assert await session.apply_promo("WRONGCODE") is False

    assert session.promo == applied
    assert session.latest_calculation is calculation
    status = session.status(OperationKind.PROMO_VALIDATION)
    assert status.state is OperationState.FAILED
    assert "WRONGCODE" in status.reason
    assert _state(session, OperationKind.CALCULATION) is OperationState.SUCCEEDED


@pytest.mark.asyncio
async def test_promo_api_error_is_recorded(session, api):
    await session.set_product("101")
    api.calculation_results.append(ApiError("Promo code expired", 422))

    assert await session.apply_promo("OLD") is False
    assert session.status(OperationKind.PROMO_VALIDATION).reason == "Promo code expired"
    assert session.promo is None


@pytest.mark.asyncio
async def test_empty_promo_code_fails_locally(session, api):
    await session.set_product("101")
    calls = len(api.calculate_calls)
    assert await session.apply_promo("   ") is False
    assert len(api.calculate_calls) == calls


@pytest.mark.asyncio
async def test_remove_promo_recalculates_without_code(session, api):
    await session.set_product("101")
    await session.apply_promo(VALID_PROMO)

    calculation = await session.remove_promo()

    assert session.promo is None
    assert api.calculate_calls[-1]["promo_code"] is None
    assert calculation.promo_discount == Decimal("0.00")
    assert _state(session, OperationKind.PROMO_VALIDATION) is OperationState.IDLE


@pytest.mark.asyncio
async def test_recalculate_sends_applied_promo(session, api):
    await session.set_product("101")
    await session.apply_promo(VALID_PROMO)
    await session.recalculate()
    assert api.calculate_calls[-1]["promo_code"] == VALID_PROMO


@pytest.mark.asyncio
async def test_stale_calculation_response_is_discarded(session, api):
    session.product_id = ProductId(101)
    api.gated = True

    plain = asyncio.create_task(session.recalculate())
    await asyncio.sleep(0)
    with_promo = asyncio.create_task(session.apply_promo(VALID_PROMO))
    await asyncio.sleep(0)
    assert len(api.pending) == 2

    promo_calculation = make_calculation(VALID_PROMO)
    api.pending[1].set_result(promo_calculation)
    assert await with_promo is True

    api.pending[0].set_result(make_calculation())
    assert await plain is None

    assert session.latest_calculation is promo_calculation
    assert _state(session, OperationKind.CALCULATION) is OperationState.SUCCEEDED


@pytest.mark.asyncio
async def test_stale_failure_does_not_mark_calculation_failed(session, api):
    session.product_id = ProductId(101)
    api.gated = True

    first = asyncio.create_task(session.recalculate())
    await asyncio.sleep(0)
    second = asyncio.create_task(session.recalculate())
    await asyncio.sleep(0)

    latest = make_calculation(trade_in=True)
    api.pending[1].set_result(latest)
    await second
    api.pending[0].set_exception(NetworkError("boom"))
    await first

    assert session.latest_calculation is latest
    assert _state(session, OperationKind.CALCULATION) is OperationState.SUCCEEDED


@pytest.mark.asyncio
async def test_rejected_promo_reissues_superseded_calculation(session, api):
    session.product_id = ProductId(101)
    api.gated = True

    toggle = asyncio.create_task(session.set_trade_in(True))
    await asyncio.sleep(0)
    promo = asyncio.create_task(session.apply_promo("WRONGCODE"))
    await asyncio.sleep(0)
    assert len(api.pending) == 2

    api.pending[1].set_result(make_calculation("WRONGCODE", trade_in=True))
    await asyncio.sleep(0)
    api.pending[0].set_result(make_calculation())
    assert await toggle is None

    assert len(api.pending) == 3
    assert api.calculate_calls[-1]["trade_in"] is True
    assert api.calculate_calls[-1]["promo_code"] is None
    api.pending[2].set_result(make_calculation(trade_in=True))
    assert await promo is False

    assert session.latest_calculation.trade_in_discount == Decimal("20.00")
    assert _state(session, OperationKind.CALCULATION) is OperationState.SUCCEEDED
    assert _state(session, OperationKind.PROMO_VALIDATION) is OperationState.FAILED


@pytest.mark.asyncio
async def test_out_of_range_total_is_recorded_as_failure(location):
    def handler(request):
        return httpx.Response(200, json={"subtotal": 450.0, "total": 1e30})

    async with OrderApiClient(
        "https://api.example.com/api/v1", transport=httpx.MockTransport(handler)
    ) as client:
        session = OrderSession(api=client, token="t", location=location)
        session.product_id = ProductId(101)

        assert await session.recalculate() is None

    status = session.status(OperationKind.CALCULATION)
    assert status.state is OperationState.FAILED
    assert "total" in status.reason
    assert session.latest_calculation is None


@pytest.mark.asyncio
async def test_load_products_stores_listing(session, api):
    product = make_product("A-9", is_recommended=True)
    api.product_results.append(ProductList(products=[product], brand_id=8))

    listing = await session.load_products()

    assert listing.products == [product]
    assert session.products == [product]
    assert session.brand_id == 8
    assert api.product_calls[0]["plate"] == "WXY 1234"
    assert _state(session, OperationKind.PRODUCT_LOAD) is OperationState.SUCCEEDED


@pytest.mark.asyncio
async def test_load_products_requires_contact_details(api, location):
    session = OrderSession(api=api, location=location)
    assert await session.load_products() is None
    assert api.product_calls == []
    assert "Customer" in session.status(OperationKind.PRODUCT_LOAD).reason


@pytest.mark.asyncio
async def test_load_products_failure_keeps_previous_products(session, api):
    previous = list(session.products)
    api.product_results.append(NetworkError("offline"))
    assert await session.load_products() is None
    assert session.products == previous
    assert _state(session, OperationKind.PRODUCT_LOAD) is OperationState.FAILED


@pytest.mark.asyncio
async def test_create_order_without_product_makes_no_request(session, api):
    with pytest.raises(ValidationError):
        await session.create_order()
    assert api.order_calls == []
    assert _state(session, OperationKind.ORDER_CREATION) is OperationState.FAILED


@pytest.mark.asyncio
async def test_create_order_without_location_makes_no_request(api, customer, vehicle):
    session = OrderSession(api=api, customer=customer, vehicle=vehicle, products=[make_product()])
    session.product_id = ProductId(101)
    with pytest.raises(PreconditionError):
        await session.create_order(location=Location(latitude=None, longitude=101.0))
    assert api.order_calls == []


@pytest.mark.asyncio
async def test_rejected_create_order_leaves_trade_in_untouched(api, customer, vehicle, location):
    session = OrderSession(api=api, customer=customer, vehicle=vehicle, location=location)

    with pytest.raises(PreconditionError):
        await session.create_order(trade_in=True)

    assert session.trade_in is False
    assert api.order_calls == []


@pytest.mark.asyncio
async def test_create_order_passes_selection(session, api):
    await session.set_product("101")
    await session.set_trade_in(True)
    await session.apply_promo(VALID_PROMO)
    session.brand_id = 3

    result = await session.create_order(notes="Call on arrival", redirect_url="batteriu://payment")

    call = api.order_calls[0]
    assert call["product_id"] == ProductId(101)
    assert call["promo_code"] == VALID_PROMO
    assert call["trade_in"] is True
    assert call["brand_id"] == 3
    assert call["notes"] == "Call on arrival"
    assert result.order_id == "ORD-1"
    assert session.order_result is result
    assert session.is_complete
    assert _state(session, OperationKind.ORDER_CREATION) is OperationState.SUCCEEDED


@pytest.mark.asyncio
async def test_concurrent_create_order_is_rejected(session, api):
    session.product_id = ProductId(101)
    api.order_gate = asyncio.Event()

    first = asyncio.create_task(session.create_order())
    await asyncio.sleep(0)

    with pytest.raises(ConcurrentOperationError):
        await session.create_order()

    api.order_gate.set()
    result = await first
    assert result.order_id == "ORD-1"
    assert len(api.order_calls) == 1


@pytest.mark.asyncio
async def test_create_order_failure_is_recorded_not_raised(session, api):
    session.product_id = ProductId(101)
    api.order_results.append(ParseError("Order response is missing order_id"))

    assert await session.create_order() is None
    status = session.status(OperationKind.ORDER_CREATION)
    assert status.state is OperationState.FAILED
    assert "order_id" in status.reason

    api.order_results.clear()
    assert (await session.create_order()).order_id == "ORD-1"


@pytest.mark.asyncio
async def test_clear_errors_resets_only_failures(session, api):
    good = await session.set_product("101")
    api.calculation_results.append(NetworkError("offline"))
    await session.recalculate()
    await session.apply_promo("")

    session.clear_errors()

    assert _state(session, OperationKind.CALCULATION) is OperationState.IDLE
    assert _state(session, OperationKind.PROMO_VALIDATION) is OperationState.IDLE
    assert session.latest_calculation is good


@pytest.mark.asyncio
async def test_display_total_prefers_server_value(session, api):
    assert session.display_total == Decimal("0.00")
    session.product_id = ProductId(101)
    session.trade_in = True
    assert session.display_total == Decimal("430.00")

    api.calculation_results.append(make_calculation(trade_in=True, total=Decimal("428.50")))
    await session.recalculate()
    assert session.display_total == Decimal("428.50")

    api.calculation_results.append(NetworkError("offline"))
    await session.recalculate()
    assert session.display_total == Decimal("445.00")


@pytest.mark.asyncio
async def test_listeners_observe_transitions(session):
    seen = []
    unsubscribe = session.subscribe(lambda s: seen.append(s.status(OperationKind.CALCULATION).state))

    await session.set_product("101")
    unsubscribe()
    await session.recalculate()

    assert OperationState.IN_FLIGHT in seen
    assert seen[-1] is OperationState.SUCCEEDED
    count = len(seen)
    await session.recalculate()
    assert len(seen) == count


def test_payment_return_is_recorded(session):
    outcome = session.handle_payment_return("batteriu://payment?paid=true&orderId=ORD-1")
    assert outcome.succeeded
    assert session.payment_outcome is outcome


@pytest.mark.asyncio
async def test_end_to_end_uses_server_total():
    def handler(request):
        path = request.url.path
        if path.endswith("/orders/products"):
            return httpx.Response(
                200,
                json={
                    "brand_id": 2,
                    "products": [
                        {"id": 501, "name": "Amaron Pro", "price_cents": 45000, "price": "RM450.00"}
                    ],
                },
            )
        if path.endswith("/orders/calculate"):
            body = json.loads(request.content)["order"]
            promo = body.get("promo_code")
            return httpx.Response(
                200,
                json={
                    "subtotal": 450.0,
                    "delivery_fee": 15.0,
                    "promo_discount": 50.0 if promo else 0,
                    "trade_in_discount": 20.0 if body["trade_in"] else 0,
                    "total": 390.0 if promo else 445.0,
                    "promo_code": {"code": promo, "value": "RM50", "value_type": "fixed"}
                    if promo
                    else None,
                    "is_promo_valid": bool(promo),
                },
            )
        return httpx.Response(
            201,
            json={
                "order_id": "ORD-501",
                "status": "pending_payment",
                "payment_url": "https://pay.example.com/ORD-501",
                "total_amount": 390.0,
            },
        )

    async with OrderApiClient(
        "https://api.example.com/api/v1", transport=httpx.MockTransport(handler)
    ) as client:
        session = OrderSession(api=client, token="t")
        await session.load_products(
            CustomerInfo("Aisyah", "+60123456789", "aisyah@example.com"),
            VehicleInfo("WXY 1234"),
            Location(3.139, 101.6869, "Jalan Ampang"),
        )
        await session.set_product("501")
        await session.set_trade_in(True)
        assert await session.apply_promo("BATTERIUNEWFD")

        calculation = session.latest_calculation
        assert calculation.total == Decimal("390.00")
        assert calculation.local_total == Decimal("395.00")
        assert session.display_total == Decimal("390.00")
        assert session.promo.discount_amount == Decimal("50.00")

        result = await session.create_order()
        assert result.payment_handoff()["total_amount"] == Decimal("390.00")
