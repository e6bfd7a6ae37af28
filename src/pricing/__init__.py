"""
Pricing Module

Category-weighted price computation for activity packages. Four traveler
categories (foreign adult, foreign kid, local adult, local kid) each carry a
rate; categories without an explicit rate fall back to fixed ratios of the
package base rate. A 5% service fee and 15% tax are charged on the
undiscounted subtotal, and an active offer takes a flat percentage off the
subtotal only.
"""

from .price_calculator import PriceCalculator
from .schemas import (
    HeadcountSelection, RateCard, Offer, PriceBreakdown,
    QuoteRequest, QuoteResponse, CATEGORY_KEYS, CATEGORY_LABELS
)

__all__ = [
    "PriceCalculator",
    "HeadcountSelection",
    "RateCard",
    "Offer",
    "PriceBreakdown",
    "QuoteRequest",
    "QuoteResponse",
    "CATEGORY_KEYS",
    "CATEGORY_LABELS",
]
