"""
Pricing engine.

    - PricingConfig / PriceQuote value objects
    - compute_price: distance -> delivery fee, platform fee, price
    - load_pricing_config: rate parameters from the SystemConfig store
"""

from .calculator import (
    PricingConfig,
    PriceQuote,
    compute_price,
    build_pricing_config,
    load_pricing_config,
    quote_order_price,
)

__all__ = [
    "PricingConfig",
    "PriceQuote",
    "compute_price",
    "build_pricing_config",
    "load_pricing_config",
    "quote_order_price",
]
