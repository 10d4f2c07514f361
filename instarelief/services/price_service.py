"""USD → native token conversion at the CoinGecko spot price.

Prices are cached for ``price_cache_ttl_seconds`` (60 s by default). When
CoinGecko is unreachable the last known price is used, and if none has been
seen yet the configured fallback price keeps payouts flowing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from cachetools import TTLCache

from instarelief.core.config import settings

logger = logging.getLogger(__name__)

_price_cache: TTLCache = TTLCache(maxsize=8, ttl=settings.price_cache_ttl_seconds)
_last_known: dict[str, float] = {}


class PriceServiceError(Exception):
    """Raised when CoinGecko returns an unusable payload."""


@dataclass(frozen=True)
class Conversion:
    usd_amount: float
    token_amount: float
    exchange_rate: float
    timestamp: datetime


def _parse_price(payload: dict[str, Any], coin_id: str) -> float:
    try:
        price = float(payload[coin_id]["usd"])
    except (KeyError, TypeError, ValueError) as exc:
        raise PriceServiceError(f"No USD price for {coin_id!r} in response") from exc
    if price <= 0:
        raise PriceServiceError(f"Non-positive price for {coin_id!r}: {price}")
    return price


async def _fetch_spot_price(coin_id: str) -> float:
    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.get(
            settings.coingecko_api_url,
            params={"ids": coin_id, "vs_currencies": "usd"},
        )
        resp.raise_for_status()
    return _parse_price(resp.json(), coin_id)


async def fetch_token_price(coin_id: str | None = None) -> float:
    """Current USD price of one token."""
    coin_id = coin_id or settings.price_coin_id

    cached = _price_cache.get(coin_id)
    if cached is not None:
        return cached

    try:
        price = await _fetch_spot_price(coin_id)
    except (httpx.HTTPError, PriceServiceError) as exc:
        fallback = _last_known.get(coin_id, settings.price_fallback_usd)
        logger.warning("CoinGecko price fetch failed (%s); using %.2f USD", exc, fallback)
        return fallback

    _price_cache[coin_id] = price
    _last_known[coin_id] = price
    logger.info("%s spot price: %.2f USD", coin_id, price)
    return price


async def convert_usd_to_token(
    usd_amount: float,
    buffer_percent: float | None = None,
) -> Conversion:
    """Convert a USD amount to tokens, padded by ``buffer_percent`` for volatility."""
    if usd_amount <= 0:
        raise ValueError("usd_amount must be positive")

    buffer = settings.conversion_buffer_percent if buffer_percent is None else buffer_percent
    price = await fetch_token_price()
    token_amount = usd_amount / price * (1 + buffer / 100)

    return Conversion(
        usd_amount=usd_amount,
        token_amount=token_amount,
        exchange_rate=price,
        timestamp=datetime.now(timezone.utc),
    )


def clear_cache() -> None:
    _price_cache.clear()
    _last_known.clear()
