"""
Endpoint de Prometheus Metrics.

Endpoint:
- GET /metrics - Métricas en formato Prometheus

Los contadores se incrementan en los servicios; los gauges de cache y de
asignaciones por estado se recalculan en cada scrape.
"""
import logging

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session

from ...core.cache import get_cache
from ...core.metrics import assignments_by_status, cache_entries
from ...database.config import get_db
from ...database.repositories import AssignmentRepository
from ...models.enums import AssignmentStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Monitoring"])


def _refresh_gauges(db: Session) -> None:
    cache_entries.set(get_cache().get_stats()["size"])
    counts = AssignmentRepository(db).count_by_status()
    for status in AssignmentStatus:
        assignments_by_status.labels(status=status.value).set(counts.get(status.value, 0))


@router.get("/metrics", summary="Prometheus Metrics", response_class=Response)
async def get_metrics(db: Session = Depends(get_db)) -> Response:
    """
    Métricas disponibles:
    - `osce_cache_hits_total` / `osce_cache_misses_total` / `osce_cache_entries`
    - `osce_exams_duplicated_total`, `osce_exams_inactivated_total`
    - `osce_stations_finalized_total`, `osce_answers_recorded_total`
    - `osce_assignments{status=...}`
    """
    _refresh_gauges(db)
    output = generate_latest()
    logger.debug("Exported Prometheus metrics", extra={"size_bytes": len(output)})
    return Response(content=output, media_type=CONTENT_TYPE_LATEST)
