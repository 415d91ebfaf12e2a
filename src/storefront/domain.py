"""Storefront bounded context: orders, stock vouchers, inventory and the ledger.

Keeps the finite per-product stock count consistent while orders are placed,
paid, completed, cancelled and refunded, and while stock vouchers import or
export the same inventory. All aggregates here are standard CQRS aggregates.
"""

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)
