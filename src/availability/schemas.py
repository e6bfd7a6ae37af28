from pydantic import BaseModel, Field
from typing import Optional

class AvailabilityVerdict(BaseModel):
    """Remaining capacity for an activity package on a date"""
    activity_id: int
    package_id: int
    date: str
    available: bool
    booked_count: int = Field(..., ge=0)
    total_availability: int = Field(..., ge=0)
    available_spots: int
    requested_count: int = 1
    message: Optional[str] = None

class DateSelectionResult(BaseModel):
    """Outcome of the informational check when a traveler picks a date"""
    verdict: AvailabilityVerdict
    reset_date: bool
    message: str
