"""
Mantenimiento periódico invocado por un cron externo
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...services import ExamStatusService
from ..deps import get_exam_status_service, require_cron_secret
from ..schemas.common import APIResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Maintenance"])


class UpdatedExam(BaseModel):
    id: str
    title: str
    application_date: Optional[datetime] = None


@router.post(
    "/update-exam-status",
    response_model=APIResponse[List[UpdatedExam]],
    dependencies=[Depends(require_cron_secret)],
    summary="Mark past-due exams as INACTIVO",
)
async def update_exam_status(service: ExamStatusService = Depends(get_exam_status_service)):
    updated = service.update_exam_status()
    return APIResponse(
        success=True,
        data=[UpdatedExam(id=e.id, title=e.title, application_date=e.application_date) for e in updated],
        message=f"{len(updated)} exams updated to INACTIVO",
    )
