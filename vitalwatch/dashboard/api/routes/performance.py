"""Performance reporter endpoints."""

import logging

from fastapi import APIRouter

from vitalwatch.dashboard.api.dependencies import RuntimeDep
from vitalwatch.dashboard.models.sessions import OptimizationResponse, PerformanceResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/performance", tags=["performance"])


@router.get("", response_model=PerformanceResponse)
async def get_performance(runtime: RuntimeDep) -> PerformanceResponse:
    """Current frame and operation timing aggregates."""
    reporter = runtime.reporter
    return PerformanceResponse.build(
        running=reporter.is_running,
        jank_percentage=reporter.jank_percentage(),
        frames=reporter.frame_aggregate(),
        operations=reporter.aggregates(),
    )


@router.post("/optimize", response_model=OptimizationResponse)
async def optimize(runtime: RuntimeDep) -> OptimizationResponse:
    """Evict registered caches and drop idle metric buffers."""
    report = runtime.reporter.optimize()
    logger.info(f"Manual optimization evicted {report.total_evicted} cached entries")
    return OptimizationResponse.from_report(report)
