"""Marketplace domain — checkout and multi-vendor order settlement.

A single Protean domain holds carts, orders, stock counters, payments and the
notification ledger, so that one checkout commits as one unit of work.
"""

import structlog
from protean.domain import Domain

marketplace = Domain(name="marketplace")

logger = structlog.get_logger(__name__)
