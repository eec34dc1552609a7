"""
Prometheus metrics endpoint for monitoring infrastructure.

Public, unauthenticated scrape target exposing the metrics collected by
``BaseService.measure_operation``, the teacher locks and the ledger.
"""

from fastapi import APIRouter, Response

from ...monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter()


@router.get("/metrics/prometheus", include_in_schema=False)
async def prometheus_scrape() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
