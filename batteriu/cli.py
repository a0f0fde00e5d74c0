"""Command line helpers for pricing checks against the Batteriu backend."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Optional, Sequence

from .checkout.client import OrderApiClient
from .checkout.errors import CheckoutError
from .checkout.models import DiscountType, Location, OrderCalculation, ProductId
from .checkout.pricing import (
    compute_local_estimate,
    format_discount_message,
    quantize_money,
    resolve_promo_discount,
)
from .config import Settings, load_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _format_money(value: Decimal, currency: str) -> str:
    return f"{currency}{value:,.2f}"


def render_calculation(calculation: OrderCalculation, currency: str) -> str:
    """Return a plain-text price breakdown."""

    lines = [
        f"Subtotal:      {_format_money(calculation.subtotal, currency)}",
        f"Delivery fee:  {_format_money(calculation.delivery_fee, currency)}",
    ]
    if calculation.promo_discount:
        label = calculation.promo_code or "promo"
        lines.append(f"Promo ({label}): -{_format_money(calculation.promo_discount, currency)}")
        if calculation.promo_details is not None:
            details = calculation.promo_details
            lines.append(
                "  " + format_discount_message(details.discount_value, details.discount_type, currency)
            )
    if calculation.trade_in_discount:
        lines.append(f"Trade-in:      -{_format_money(calculation.trade_in_discount, currency)}")
    lines.append(f"Total:         {_format_money(calculation.total, currency)}")
    return "\n".join(lines)


def _run_estimate(args: argparse.Namespace, settings: Settings) -> int:
    subtotal = quantize_money(args.subtotal)
    promo_discount = resolve_promo_discount(subtotal, args.promo_amount, args.promo_type)
    total = compute_local_estimate(
        subtotal,
        args.delivery_fee,
        args.trade_in,
        promo_discount,
        trade_in_discount=settings.trade_in_discount,
    )
    print(f"Estimated total: {_format_money(total, settings.currency)}")
    if promo_discount:
        print(format_discount_message(args.promo_amount, args.promo_type, settings.currency))
    return 0


async def _quote(args: argparse.Namespace, settings: Settings) -> OrderCalculation:
    token = args.token or settings.api_token or ""
    location = Location(latitude=args.lat, longitude=args.lng, address=args.address or "")
    async with OrderApiClient.from_settings(settings) as client:
        return await client.calculate_order(
            token,
            location,
            ProductId.from_wire(int(args.product_id) if args.product_id.isdigit() else args.product_id),
            promo_code=args.promo,
            trade_in=args.trade_in,
        )


def _run_quote(args: argparse.Namespace, settings: Settings) -> int:
    calculation = asyncio.run(_quote(args, settings))
    print(render_calculation(calculation, settings.currency))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="batteriu", description="Batteriu checkout pricing tools")
    parser.add_argument("--env-file", type=Path, help="Path to a .env file with BATTERIU_* settings")
    parser.add_argument("--log-level", help="Override BATTERIU_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    estimate = subparsers.add_parser("estimate", help="Compute a local total estimate")
    estimate.add_argument("--subtotal", type=Decimal, required=True)
    estimate.add_argument("--delivery-fee", type=Decimal, default=Decimal("0"))
    estimate.add_argument("--trade-in", action="store_true")
    estimate.add_argument("--promo-amount", type=Decimal, default=Decimal("0"))
    estimate.add_argument(
        "--promo-type",
        choices=[kind.value for kind in DiscountType],
        default=DiscountType.FIXED.value,
    )

    quote = subparsers.add_parser("quote", help="Ask the backend to price an order")
    quote.add_argument("--product-id", required=True)
    quote.add_argument("--lat", type=float, required=True)
    quote.add_argument("--lng", type=float, required=True)
    quote.add_argument("--address")
    quote.add_argument("--promo")
    quote.add_argument("--trade-in", action="store_true")
    quote.add_argument("--token", help="Bearer token; defaults to BATTERIU_API_TOKEN")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(args.env_file)
    except CheckoutError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    configure_logging(args.log_level or settings.log_level)

    handlers = {"estimate": _run_estimate, "quote": _run_quote}
    try:
        return handlers[args.command](args, settings)
    except CheckoutError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
