"""
Offers Module

Resolves the promotional discount that applies to an activity/package pair.
The promotions collaborator picks the best active offer; the resolver turns
its answer into an Offer the price calculator can apply.
"""

from .offer_resolver import OfferResolver

__all__ = ["OfferResolver"]
