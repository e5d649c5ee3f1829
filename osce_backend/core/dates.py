"""
Fechas de aplicación de exámenes.

Las fechas se guardan como hora local (EXAM_TIMEZONE) sin zona horaria,
igual que las carga el administrador. Los timestamps de auditoría
(created_at, started_at, ...) se guardan en UTC.
"""
from datetime import date, datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from .constants import DUPLICATE_TITLE_DATE_FORMAT, EXAM_TIMEZONE
from ..api.exceptions import ValidationError


def exam_timezone() -> ZoneInfo:
    return ZoneInfo(EXAM_TIMEZONE)


def to_local_naive(value: datetime) -> datetime:
    """Convierte un datetime con zona a hora local de exámenes sin tz."""
    if value.tzinfo is None:
        return value
    return value.astimezone(exam_timezone()).replace(tzinfo=None)


def local_now() -> datetime:
    """Hora actual en EXAM_TIMEZONE, sin tz (comparable con application_date)"""
    return datetime.now(exam_timezone()).replace(tzinfo=None)


def parse_application_date(value: Any, required: bool = False) -> Optional[datetime]:
    """
    Parsea una fecha de aplicación recibida por la API.

    Acepta datetime, date o strings ISO 8601 ("2025-03-10", "2025-03-10T09:00",
    "2025-03-10T12:00:00Z"). Los valores con zona se pasan a hora local.

    Raises:
        ValidationError: si el valor no es una fecha válida, o falta y es requerido
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError("Application date is required", {"field": "application_date"})
        return None

    if isinstance(value, datetime):
        return to_local_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_local_naive(datetime.fromisoformat(text))
        except ValueError:
            pass

    raise ValidationError(
        f"Invalid application date: {value!r}",
        {"field": "application_date", "value": str(value)},
    )


def parse_day(value: Any) -> date:
    """Parsea un día calendario (YYYY-MM-DD o datetime)."""
    if isinstance(value, datetime):
        return to_local_naive(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid date: {value!r}", {"field": "date", "value": str(value)})


def format_title_date(value: datetime) -> str:
    """dd/mm/yyyy, como aparece en los títulos de exámenes duplicados"""
    return value.strftime(DUPLICATE_TITLE_DATE_FORMAT)
