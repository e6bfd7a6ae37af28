from pydantic import BaseModel, Field
from typing import Dict, Optional
from decimal import Decimal, ROUND_HALF_UP

# Headcount category keys as they travel on the wire
FOREIGN_ADULT = "foreignAdult"
FOREIGN_KIDS = "foreignKids"
LOCAL_ADULT = "localAdult"
LOCAL_KIDS = "localKids"

CATEGORY_KEYS = (FOREIGN_ADULT, FOREIGN_KIDS, LOCAL_ADULT, LOCAL_KIDS)

CATEGORY_LABELS = {
    FOREIGN_ADULT: "Foreign Adult",
    FOREIGN_KIDS: "Foreign Kid",
    LOCAL_ADULT: "Local Adult",
    LOCAL_KIDS: "Local Kid",
}

class HeadcountSelection(BaseModel):
    """Number of travelers per category"""
    foreign_adult: int = Field(0, ge=0, alias=FOREIGN_ADULT)
    foreign_kids: int = Field(0, ge=0, alias=FOREIGN_KIDS)
    local_adult: int = Field(0, ge=0, alias=LOCAL_ADULT)
    local_kids: int = Field(0, ge=0, alias=LOCAL_KIDS)

    class Config:
        populate_by_name = True

    @property
    def total(self) -> int:
        return self.foreign_adult + self.foreign_kids + self.local_adult + self.local_kids

    def as_counts(self) -> Dict[str, int]:
        """Counts keyed by category key"""
        return {
            FOREIGN_ADULT: self.foreign_adult,
            FOREIGN_KIDS: self.foreign_kids,
            LOCAL_ADULT: self.local_adult,
            LOCAL_KIDS: self.local_kids,
        }

class RateCard(BaseModel):
    """Per-package pricing; absent category rates derive from the base rate"""
    base_rate: float = Field(..., ge=0, allow_inf_nan=False)
    foreign_adult_rate: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    foreign_kid_rate: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    local_adult_rate: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    local_kid_rate: Optional[float] = Field(None, ge=0, allow_inf_nan=False)

class Offer(BaseModel):
    """Promotional discount for an activity/package pair"""
    has_offer: bool = False
    discount_percentage: float = Field(0.0, ge=0, le=100, allow_inf_nan=False)
    title: Optional[str] = None

    @classmethod
    def none(cls) -> "Offer":
        return cls(has_offer=False, discount_percentage=0.0)

def to_money(value: float) -> Decimal:
    """Round a monetary value for presentation"""
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

class PriceBreakdown(BaseModel):
    """Itemized price; values are unrounded until presented"""
    subtotal: float
    service_fee: float
    tax: float
    discount_amount: float = 0.0
    total: float

    def presented(self) -> Dict[str, Decimal]:
        """Two-decimal values for display"""
        return {
            "subtotal": to_money(self.subtotal),
            "service_fee": to_money(self.service_fee),
            "tax": to_money(self.tax),
            "discount_amount": to_money(self.discount_amount),
            "total": to_money(self.total),
        }

class QuoteRequest(BaseModel):
    """Request to price a headcount selection for a package"""
    activity_id: int
    package_id: int
    headcounts: HeadcountSelection
    rate_card: RateCard

class QuoteResponse(BaseModel):
    """Priced quote with the resolved offer"""
    activity_id: int
    package_id: int
    resolved_rates: Dict[str, float]
    total_persons: int
    offer: Offer
    breakdown: PriceBreakdown
    display: Dict[str, Decimal]
