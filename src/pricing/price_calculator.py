from typing import Dict, Optional

from src.pricing.schemas import (
    HeadcountSelection, RateCard, Offer, PriceBreakdown,
    FOREIGN_ADULT, FOREIGN_KIDS, LOCAL_ADULT, LOCAL_KIDS
)

class PriceCalculator:
    """Category-weighted pricing for activity packages"""

    SERVICE_FEE_RATE = 0.05
    TAX_RATE = 0.15

    # Fallback ratios of the base rate for categories without an explicit rate
    FALLBACK_RATIOS = {
        FOREIGN_ADULT: 1.0,
        FOREIGN_KIDS: 0.70,
        LOCAL_ADULT: 0.75,
        LOCAL_KIDS: 0.50,
    }

    # Legacy records carry a single price that already includes fees and tax
    LEGACY_GROSS_FACTOR = 1.2
    LEGACY_BASE_SHARE = 0.9
    LEGACY_FEE_SHARE = 0.1

    def resolve_rates(self, rate_card: RateCard) -> Dict[str, float]:
        """Resolve the per-category rate, falling back to the base rate ratios"""

        explicit = {
            FOREIGN_ADULT: rate_card.foreign_adult_rate,
            FOREIGN_KIDS: rate_card.foreign_kid_rate,
            LOCAL_ADULT: rate_card.local_adult_rate,
            LOCAL_KIDS: rate_card.local_kid_rate,
        }

        resolved = {}
        for category, ratio in self.FALLBACK_RATIOS.items():
            rate = explicit[category]
            resolved[category] = rate if rate is not None else rate_card.base_rate * ratio

        return resolved

    def compute(
        self,
        headcounts: HeadcountSelection,
        rate_card: RateCard,
        offer: Optional[Offer] = None
    ) -> PriceBreakdown:
        """Compute the itemized price for a headcount selection"""

        rates = self.resolve_rates(rate_card)
        counts = headcounts.as_counts()

        subtotal = sum(rates[category] * counts[category] for category in rates)

        # Fees and tax always apply to the undiscounted subtotal
        service_fee = subtotal * self.SERVICE_FEE_RATE
        tax = subtotal * self.TAX_RATE

        discount_amount = 0.0
        if offer and offer.has_offer and offer.discount_percentage > 0:
            discount_amount = subtotal * offer.discount_percentage / 100

        total = subtotal + service_fee + tax - discount_amount

        return PriceBreakdown(
            subtotal=subtotal,
            service_fee=service_fee,
            tax=tax,
            discount_amount=discount_amount,
            total=total
        )

    def reconstruct_legacy_breakdown(self, price: float) -> PriceBreakdown:
        """Split a legacy single price into base/fee/tax for display only.

        This split is not a pricing rule. It mirrors how old records without
        itemized fields were always shown and must not feed into compute().
        """

        net = price / self.LEGACY_GROSS_FACTOR
        return PriceBreakdown(
            subtotal=net * self.LEGACY_BASE_SHARE,
            service_fee=net * self.LEGACY_FEE_SHARE,
            tax=price - net,
            discount_amount=0.0,
            total=price
        )
