"""Service layer for the dispatch pipeline.

Provides address resolution, note parsing, routing, feed ingestion and
worklist ranking.
"""

from lastmile.services.address_pipeline import AddressResolutionPipeline, Resolution
from lastmile.services.dispatch_service import (
    CycleReport,
    DispatchService,
    open_dispatch_service,
)
from lastmile.services.priority_scheduler import (
    PriorityScheduler,
    WorklistEntry,
    WorklistFilters,
    WorklistPage,
)

__all__ = [
    "AddressResolutionPipeline",
    "Resolution",
    "DispatchService",
    "CycleReport",
    "open_dispatch_service",
    "PriorityScheduler",
    "WorklistEntry",
    "WorklistFilters",
    "WorklistPage",
]
