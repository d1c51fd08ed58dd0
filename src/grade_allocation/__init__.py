"""
grade_allocation
================

Grade-tier allocation engine for planning product shipments to retail
regions.

The package turns one planned shipment volume into a per-grade quantity
schedule, reconciles products that share a price band, and reports the
realised delivery against region customer counts. It is pure computation
over in-memory tables; storage, transport and file parsing belong to the
calling application.
"""

from . import (
    actual_delivery,
    allocator,
    band_adjuster,
    config,
    customer_matrix,
    data_models,
    errors,
    events,
    grades,
    monitoring,
    price_bands,
    region_matcher,
)

__all__ = [
    "actual_delivery",
    "allocator",
    "band_adjuster",
    "config",
    "customer_matrix",
    "data_models",
    "errors",
    "events",
    "grades",
    "monitoring",
    "price_bands",
    "region_matcher",
]
