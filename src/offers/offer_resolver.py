import logging

from src.collaborators.base import OfferSource
from src.pricing.schemas import Offer
from src.exceptions import TransientCollaboratorError

logger = logging.getLogger(__name__)

class OfferResolver:
    """Resolves the active discount for an activity/package pair"""

    def __init__(self, offer_source: OfferSource):
        self.offer_source = offer_source

    def resolve(self, activity_id: int, package_id: int) -> Offer:
        """Return the applicable offer, or an empty offer when none is active"""

        result = self.offer_source.query_offer(activity_id, package_id)

        if not result or not result.get("hasOffer"):
            return Offer.none()

        try:
            discount = float(result.get("discountPercentage") or 0)
        except (TypeError, ValueError) as e:
            raise TransientCollaboratorError("offer", f"malformed offer response ({e})")

        if not 0 <= discount <= 100:
            logger.warning(
                "Ignoring offer with out-of-range discount %s for activity %s package %s",
                discount, activity_id, package_id
            )
            return Offer.none()

        offer = Offer(
            has_offer=discount > 0,
            discount_percentage=discount,
            title=result.get("offerTitle")
        )

        logger.info(
            "Resolved offer for activity %s package %s: %s%% (%s)",
            activity_id, package_id, discount, offer.title
        )
        return offer
