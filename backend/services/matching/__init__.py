"""
Delivery person ranking and offer dispatch.

This module handles:
    - Ranking a candidate pool for an order
    - Offering an order to one delivery person at a time
    - Accept / reject responses and sweeping lapsed offers
"""

from .ranking import RankedCandidate, distance_to_pickup, rank_candidates
from .offer_dispatch import (
    DispatchOutcome,
    DispatchResult,
    OfferResponseResult,
    SweepResult,
    accept_offer,
    candidate_pool,
    dispatch_next_offer,
    pending_offers_for,
    reject_offer,
    remaining_seconds,
    stranded_order_ids,
    sweep_expired_offers,
    withdraw_pending_offers,
)

__all__ = [
    "RankedCandidate",
    "distance_to_pickup",
    "rank_candidates",
    "DispatchOutcome",
    "DispatchResult",
    "OfferResponseResult",
    "SweepResult",
    "accept_offer",
    "candidate_pool",
    "dispatch_next_offer",
    "pending_offers_for",
    "reject_offer",
    "remaining_seconds",
    "stranded_order_ids",
    "sweep_expired_offers",
    "withdraw_pending_offers",
]
