"""
Métricas Prometheus del backend de exámenes.

Se exponen en GET /api/v1/metrics (ver api/routers/metrics.py).
"""
from prometheus_client import Counter, Gauge

cache_hits = Counter(
    "osce_cache_hits_total",
    "Cache hits by cache name",
    ["cache"],
)
cache_misses = Counter(
    "osce_cache_misses_total",
    "Cache misses by cache name",
    ["cache"],
)
exams_duplicated_total = Counter(
    "osce_exams_duplicated_total",
    "Exams created by duplication",
)
stations_finalized_total = Counter(
    "osce_stations_finalized_total",
    "Station finalizations recorded by evaluators",
)
answers_recorded_total = Counter(
    "osce_answers_recorded_total",
    "Student answers upserted",
)
exams_inactivated_total = Counter(
    "osce_exams_inactivated_total",
    "Exams moved to INACTIVO by the status sweep",
)
cache_entries = Gauge(
    "osce_cache_entries",
    "Entries currently held by the list cache",
)
assignments_by_status = Gauge(
    "osce_assignments",
    "Student exam assignments by status",
    ["status"],
)


def record_cache_operation(cache_name: str, hit: bool) -> None:
    """Registra un hit o miss de cache."""
    if hit:
        cache_hits.labels(cache=cache_name).inc()
    else:
        cache_misses.labels(cache=cache_name).inc()

