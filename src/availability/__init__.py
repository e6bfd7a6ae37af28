"""
Availability Module

Per-date capacity evaluation. The gate is consulted once when a traveler
picks a date (informational) and again immediately before a reservation is
submitted (authoritative). Capacity query failures surface as retryable
errors, never as "unavailable".
"""

from .availability_gate import AvailabilityGate
from .schemas import AvailabilityVerdict, DateSelectionResult

__all__ = [
    "AvailabilityGate",
    "AvailabilityVerdict",
    "DateSelectionResult",
]
