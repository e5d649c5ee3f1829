"""
Barrido de estado de exámenes: pasa a INACTIVO todo examen cuya fecha de
aplicación ya pasó (hora local de EXAM_TIMEZONE).

Se dispara desde POST /cron/update-exam-status y, sin esperar resultado,
después de cada login exitoso.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.cache import get_cache
from ..core.dates import local_now, to_local_naive
from ..core.metrics import exams_inactivated_total
from ..database.config import get_db_session
from ..database.models import ExamDB
from ..database.repositories import ExamRepository
from ..database.transaction import transaction
from ..models.enums import ExamState

logger = logging.getLogger(__name__)


class ExamStatusService:

    def __init__(self, db: Session):
        self.db = db
        self.exams = ExamRepository(db)

    def update_exam_status(self, now: Optional[datetime] = None) -> List[ExamDB]:
        """
        Marca INACTIVO los exámenes vencidos que todavía no lo están.

        Args:
            now: Momento de referencia (default: hora local actual)

        Returns:
            Los exámenes actualizados
        """
        reference = local_now() if now is None else to_local_naive(now)

        with transaction(self.db, "Update exam status"):
            updated = self.exams.get_past_due(reference)
            for exam in updated:
                exam.state = ExamState.INACTIVO.value
            self.db.flush()

        if updated:
            exams_inactivated_total.inc(len(updated))
            get_cache().invalidate_pattern(r"^exams:")

        logger.info(
            f"Updated {len(updated)} exams to INACTIVO",
            extra={"updated_exams": [
                {"id": exam.id, "title": exam.title,
                 "application_date": exam.application_date.isoformat() if exam.application_date else None}
                for exam in updated
            ]}
        )
        return updated


def run_exam_status_sweep() -> None:
    """
    Ejecuta el barrido con su propia sesión (tarea en segundo plano).

    Los errores se registran y no se propagan.
    """
    db = get_db_session()
    try:
        ExamStatusService(db).update_exam_status()
    except Exception as e:
        logger.error(f"Background exam status sweep failed: {e}", exc_info=True)
    finally:
        db.close()
