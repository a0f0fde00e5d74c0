"""Runtime settings loaded from the environment or a ``.env`` file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .checkout.errors import ConfigurationError
from .checkout.pricing import DEFAULT_CURRENCY, FIXED_TRADE_IN_DISCOUNT, to_decimal

ENV_PREFIX = "BATTERIU_"
DEFAULT_API_BASE_URL = "http://localhost:3000/api/v1"
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True, slots=True)
class Settings:
    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: Optional[str] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    currency: str = DEFAULT_CURRENCY
    trade_in_discount: Decimal = FIXED_TRADE_IN_DISCOUNT
    log_level: str = "INFO"


def _env(name: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """Build :class:`Settings` from ``BATTERIU_*`` variables.

    Variables already present in the environment take precedence over the
    ``.env`` file.
    """

    load_dotenv(dotenv_path=env_file)

    timeout_raw = _env("REQUEST_TIMEOUT")
    try:
        timeout = float(timeout_raw) if timeout_raw else DEFAULT_REQUEST_TIMEOUT
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {ENV_PREFIX}REQUEST_TIMEOUT: {timeout_raw!r}") from exc
    if timeout <= 0:
        raise ConfigurationError(f"{ENV_PREFIX}REQUEST_TIMEOUT must be positive")

    discount_raw = _env("TRADE_IN_DISCOUNT")
    trade_in_discount = FIXED_TRADE_IN_DISCOUNT
    if discount_raw:
        parsed = to_decimal(discount_raw)
        if parsed is None or parsed < 0:
            raise ConfigurationError(f"Invalid {ENV_PREFIX}TRADE_IN_DISCOUNT: {discount_raw!r}")
        trade_in_discount = parsed

    return Settings(
        api_base_url=_env("API_BASE_URL") or DEFAULT_API_BASE_URL,
        api_token=_env("API_TOKEN"),
        request_timeout=timeout,
        currency=_env("CURRENCY") or DEFAULT_CURRENCY,
        trade_in_discount=trade_in_discount,
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
    )
