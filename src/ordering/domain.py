"""Ordering bounded context — checkout pipeline and the Order aggregate.

Owns the Order model, its persistence in the relational store and the
checkout orchestrator that sequences stock, payment and persistence.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
