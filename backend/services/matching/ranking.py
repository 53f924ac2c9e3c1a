"""
Rank delivery persons for an order.

Lower priority score wins; straight-line distance to the pickup point breaks
ties, then the delivery person's id so the order is reproducible.
"""

import heapq
from dataclasses import dataclass
from itertools import groupby
from typing import Iterable, Iterator, Optional

from django.db.models import QuerySet

from common.utils import calculate_distance
from couriers.models import DeliveryPersonProfile
from orders.models import Order

RANKING_CHUNK_SIZE = 100


@dataclass(frozen=True)
class RankedCandidate:
    profile: DeliveryPersonProfile
    distance_km: Optional[float]

    @property
    def user_id(self) -> int:
        return self.profile.user_id


def distance_to_pickup(order: Order, profile: DeliveryPersonProfile) -> Optional[float]:
    if not order.has_origin_coordinates or not profile.has_location:
        return None
    return calculate_distance(
        float(profile.current_latitude),
        float(profile.current_longitude),
        float(order.origin_latitude),
        float(order.origin_longitude),
    )


def _by_priority(pool: Iterable[DeliveryPersonProfile]) -> Iterator[DeliveryPersonProfile]:
    if isinstance(pool, QuerySet):
        # Streamed from the database, ordered by the leading sort key
        return pool.order_by("priority_score", "user_id").iterator(chunk_size=RANKING_CHUNK_SIZE)
    return iter(sorted(pool, key=lambda profile: (profile.priority_score, profile.user_id)))


def rank_candidates(
    order: Order,
    pool: Iterable[DeliveryPersonProfile],
    max_distance_km: Optional[float] = None,
) -> Iterator[RankedCandidate]:
    """
    Yield candidates for `order`, most preferred first.

    The pool is expected to be pre-filtered by the caller (online, not busy,
    known location). It is read in ascending priority score; distances are
    only computed for one score band at a time, and a band is ordered with a
    heap before its candidates are yielded. A consumer that stops after the
    first candidate never reads past the first band that has someone within
    range. Each call returns a fresh iterator.

    Args:
        order: Order being dispatched
        pool: Delivery person profiles (QuerySet or any iterable) to rank
        max_distance_km: Drop candidates farther than this from the pickup point

    Yields:
        RankedCandidate(profile, distance_km)
    """
    for _, band in groupby(_by_priority(pool), key=lambda profile: profile.priority_score):
        heap = []
        for profile in band:
            distance = distance_to_pickup(order, profile)
            if max_distance_km is not None and distance is not None and distance > max_distance_km:
                continue
            # Unknown distance sorts after every known one at equal priority
            distance_key = distance if distance is not None else float("inf")
            heap.append((distance_key, profile.user_id, profile, distance))

        # user_id is unique, so tuple comparison never reaches the profile
        heapq.heapify(heap)
        while heap:
            _, _, profile, distance = heapq.heappop(heap)
            yield RankedCandidate(profile=profile, distance_km=distance)
