"""
Collaborators Module

Contracts for the services the booking engine consumes but does not own:
per-date capacity, active offers and the booking store itself.

Key Components:
- base.py: Abstract contracts (CapacitySource, OfferSource, BookingStore)
- http_client.py: TravelApiClient, httpx client for the remote travel API
- sql_store.py: SqlBookingStore, SQLAlchemy-backed local store used when no
  remote API is configured

Implementations are imported from their modules directly; only the
contracts are re-exported here.
"""

from .base import CapacitySource, OfferSource, BookingStore

__all__ = [
    "CapacitySource",
    "OfferSource",
    "BookingStore",
]
