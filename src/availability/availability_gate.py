from typing import Optional
import logging

from src.availability.schemas import AvailabilityVerdict
from src.collaborators.base import CapacitySource
from src.exceptions import AvailabilityConflict, TransientCollaboratorError

logger = logging.getLogger(__name__)

class AvailabilityGate:
    """Evaluates remaining per-date capacity against a requested headcount"""

    def __init__(self, capacity_source: CapacitySource):
        self.capacity_source = capacity_source

    def check(
        self,
        activity_id: int,
        package_id: int,
        date: str,
        requested_count: Optional[int] = None
    ) -> AvailabilityVerdict:
        """Query capacity and build a verdict for the requested headcount"""

        requested = requested_count if requested_count is not None else 1

        try:
            result = self.capacity_source.query_capacity(activity_id, package_id, date)
        except TransientCollaboratorError:
            logger.warning(
                "Capacity query failed for activity %s package %s on %s",
                activity_id, package_id, date
            )
            raise

        try:
            booked_count = int(result["bookedCount"])
            total_availability = int(result["totalAvailability"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransientCollaboratorError("capacity", f"malformed capacity response ({e})")

        available_spots = total_availability - booked_count
        reported_spots = result.get("availableSpots")
        if reported_spots is not None and reported_spots != available_spots:
            logger.warning(
                "Capacity service reported %s spots for activity %s on %s, expected %s",
                reported_spots, activity_id, date, available_spots
            )

        available = available_spots >= max(requested, 1)

        if available_spots <= 0:
            message = "This activity is fully booked for the selected date"
        elif not available:
            message = "Not enough availability for the requested number of people"
        else:
            message = result.get("message") or "Available"

        logger.info(
            "Availability for activity %s package %s on %s: available=%s, spots=%s, requested=%s",
            activity_id, package_id, date, available, available_spots, requested
        )

        return AvailabilityVerdict(
            activity_id=activity_id,
            package_id=package_id,
            date=date,
            available=available,
            booked_count=booked_count,
            total_availability=total_availability,
            available_spots=available_spots,
            requested_count=requested,
            message=message
        )

    @staticmethod
    def check_sufficient(verdict: AvailabilityVerdict, requested_headcount: int) -> bool:
        """True when the remaining spots cover the requested headcount"""
        return verdict.available_spots >= requested_headcount

    def ensure_sufficient(self, verdict: AvailabilityVerdict, requested_headcount: int) -> None:
        """Raise AvailabilityConflict with the exact shortfall"""
        if not self.check_sufficient(verdict, requested_headcount):
            logger.info(
                "Capacity conflict for activity %s on %s: %s spots, %s requested",
                verdict.activity_id, verdict.date, verdict.available_spots, requested_headcount
            )
            raise AvailabilityConflict(verdict.available_spots, requested_headcount)
