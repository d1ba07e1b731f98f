"""
geo_fence.py — Which subscriptions does a new event concern?

A subscription defines a circular geo-fence around the subscriber:

    centre:  (subscription.lat, subscription.lng)
    radius:  subscription.radius_km

It matches an event when both hold:

    event.type ∈ subscription.categories                 (exact token)
    haversine(event, subscription) ≤ subscription.radius_km   (inclusive)

Matches are capped at ``max_results`` (100) to bound notification
fan-out. Which subscriptions survive the cap is storage order; there is
no priority between them.

Malformed rows (empty categories, non-numeric or non-positive radius,
non-finite coordinates) never match and never raise. A storage failure
does propagate: the dispatcher treats it as fatal for that cycle.
"""

from __future__ import annotations

import logging
from typing import List, Protocol

from backend.app.alerts.models import AlertSubscription, DisasterEvent
from backend.app.spatial.radius_utils import is_within_radius

logger = logging.getLogger(__name__)

MAX_MATCHES = 100


class SubscriptionSource(Protocol):
    """Storage capability the matcher needs."""

    async def find_by_category(self, category: str) -> List[AlertSubscription]:
        ...


class SubscriptionMatcher:
    """
    Filter persisted subscriptions by category and radius.

    Parameters
    ----------
    source : SubscriptionSource
        Returns every subscription whose category set includes a type.
    max_results : int
        Upper bound on the number of matches returned.
    """

    def __init__(self, source: SubscriptionSource, *, max_results: int = MAX_MATCHES):
        self.source = source
        self.max_results = max_results

    async def find_matches(self, event: DisasterEvent) -> List[AlertSubscription]:
        category = event.category
        if not category:
            return []

        candidates = await self.source.find_by_category(category)

        matched: List[AlertSubscription] = []
        for sub in candidates:
            # Re-check the token in case the source is looser than exact match
            if category not in sub.category_set:
                continue
            if not is_within_radius(event.lat, event.lng, sub.lat, sub.lng, sub.radius_km):
                continue
            matched.append(sub)
            if len(matched) >= self.max_results:
                break

        logger.info(
            "Geo-fence match for event %s (%s): %d of %d candidates (cap=%d)",
            event.id, category, len(matched), len(candidates), self.max_results,
            extra={"event_id": event.id, "recipient_count": len(matched)},
        )
        return matched
