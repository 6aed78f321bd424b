"""Ordering bounded context — order fulfillment lifecycle.

Governs orders placed by patients of a cannabis association and orders
placed between organizations on the marketplace, from creation through
payment confirmation, stock reservation, expedition, shipping, delivery,
cancellation and refund.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
