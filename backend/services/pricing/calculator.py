"""
Delivery pricing.

The rate parameters travel as an explicit PricingConfig value so a single
price computation never mixes values read at different moments.
"""

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Mapping, Optional

from django.conf import settings

from services.exceptions import InvalidDistanceError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

BASE_FEE_KEY = "BASE_FEE"
PRICE_PER_KM_KEY = "PRICE_PER_KM"
PLATFORM_FEE_KEY = "PLATFORM_FEE_PERCENTAGE"


@dataclass(frozen=True)
class PricingConfig:
    base_fee: Decimal
    price_per_km: Decimal
    platform_fee_percent: Decimal


@dataclass(frozen=True)
class PriceQuote:
    delivery_fee: Decimal
    platform_fee: Decimal
    price: Decimal

    def as_dict(self) -> dict:
        return {
            "delivery_fee": self.delivery_fee,
            "platform_fee": self.platform_fee,
            "price": self.price,
        }


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _validate_distance(distance_km) -> Decimal:
    # bool is an int subclass; True km is not a distance
    if isinstance(distance_km, bool) or not isinstance(distance_km, (int, float, Decimal)):
        raise InvalidDistanceError(f"Distance must be a number, got {distance_km!r}")

    if isinstance(distance_km, Decimal):
        if not distance_km.is_finite():
            raise InvalidDistanceError(f"Distance must be finite, got {distance_km}")
        value = distance_km
    else:
        if not math.isfinite(distance_km):
            raise InvalidDistanceError(f"Distance must be finite, got {distance_km}")
        value = Decimal(str(distance_km))

    if value < 0:
        raise InvalidDistanceError(f"Distance cannot be negative, got {distance_km}")
    return value


def compute_price(distance_km, config: PricingConfig) -> PriceQuote:
    """
    Convert a route distance into delivery fee, platform fee and total price.

    Args:
        distance_km: Routed distance in kilometers (int, float or Decimal)
        config: Rate parameters for this computation

    Returns:
        PriceQuote with all values rounded half-up to the cent; price is the
        exact sum of the two rounded fees.

    Raises:
        InvalidDistanceError: distance is negative, NaN, infinite or not numeric
    """
    distance = _validate_distance(distance_km)

    delivery_fee = config.base_fee + distance * config.price_per_km
    platform_fee = delivery_fee * config.platform_fee_percent / Decimal(100)

    delivery_fee = _to_cents(delivery_fee)
    platform_fee = _to_cents(platform_fee)
    return PriceQuote(
        delivery_fee=delivery_fee,
        platform_fee=platform_fee,
        price=delivery_fee + platform_fee,
    )


def _parse_rate(key: str, raw: Optional[str], default) -> Decimal:
    fallback = Decimal(str(default))
    if raw is None or raw == "":
        return fallback
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        logger.warning("Ignoring unparsable pricing setting %s=%r, using %s", key, raw, fallback)
        return fallback
    if not value.is_finite() or value < 0:
        logger.warning("Ignoring invalid pricing setting %s=%r, using %s", key, raw, fallback)
        return fallback
    return value


def build_pricing_config(stored: Mapping[str, str]) -> PricingConfig:
    """Build a PricingConfig from stored string values, falling back to defaults."""
    defaults = settings.PRICING_DEFAULTS
    return PricingConfig(
        base_fee=_parse_rate(BASE_FEE_KEY, stored.get(BASE_FEE_KEY), defaults[BASE_FEE_KEY]),
        price_per_km=_parse_rate(PRICE_PER_KM_KEY, stored.get(PRICE_PER_KM_KEY), defaults[PRICE_PER_KM_KEY]),
        platform_fee_percent=_parse_rate(PLATFORM_FEE_KEY, stored.get(PLATFORM_FEE_KEY), defaults[PLATFORM_FEE_KEY]),
    )


def load_pricing_config() -> PricingConfig:
    """Read the rate parameters from the SystemConfig store in a single query."""
    from orders.models import SystemConfig

    stored = dict(
        SystemConfig.objects.filter(
            key__in=[BASE_FEE_KEY, PRICE_PER_KM_KEY, PLATFORM_FEE_KEY]
        ).values_list("key", "value")
    )
    return build_pricing_config(stored)


def quote_order_price(distance_km) -> PriceQuote:
    return compute_price(distance_km, load_pricing_config())
