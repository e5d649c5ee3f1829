"""
Router de asignaciones alumno <-> examen

Endpoints:
- POST /student-exams                  asigna un examen a un alumno
- PUT  /evaluator-exams/{id}           action "iniciar" | "finalizar"
- POST /assignments/identification     número de identificación de un alumno para un día
- GET  /assignments/dates              días con exámenes activos
- GET  /assignments/students?date=     alumnos del día con su número de identificación
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...services import AssignmentService, EvaluationRecorder
from ..deps import get_assignment_service, get_evaluation_recorder
from ..schemas.common import APIResponse
from ..schemas.evaluation import (
    AssignmentAction,
    AssignmentCreate,
    AssignmentOut,
    DayStudentOut,
    ExamDateOut,
    IdentificationRequest,
    IdentificationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Assignments"])


@router.post(
    "/student-exams",
    response_model=APIResponse[AssignmentOut],
    status_code=status.HTTP_201_CREATED,
    summary="Assign an exam to a student",
)
async def assign_exam(payload: AssignmentCreate, service: AssignmentService = Depends(get_assignment_service)):
    assignment = service.assign_exam(payload.student_id, payload.exam_id, payload.evaluator_id)
    return APIResponse(success=True, data=AssignmentOut.model_validate(assignment), message="Exam assigned")


@router.put(
    "/evaluator-exams/{assignment_id}",
    response_model=APIResponse[AssignmentOut],
    summary="Start or finish an assignment",
)
async def update_assignment_state(
    assignment_id: str,
    payload: AssignmentAction,
    recorder: EvaluationRecorder = Depends(get_evaluation_recorder),
):
    if payload.action == "iniciar":
        assignment = recorder.start_assignment(assignment_id)
        message = "Assignment started"
    else:
        assignment = recorder.finish_assignment(assignment_id, remarks=payload.remarks, score=payload.score)
        message = "Assignment finished"
    return APIResponse(success=True, data=AssignmentOut.model_validate(assignment), message=message)


@router.post(
    "/assignments/identification",
    response_model=APIResponse[IdentificationResponse],
    summary="Set a student's identification number for a date",
)
async def set_identification_number(
    payload: IdentificationRequest,
    service: AssignmentService = Depends(get_assignment_service),
):
    updated = service.set_identification_number(payload.student_id, payload.date, payload.identification_number)
    return APIResponse(
        success=True,
        data=IdentificationResponse(updated=updated),
        message=f"{updated} assignments updated",
    )


@router.get("/assignments/dates", response_model=APIResponse[List[ExamDateOut]], summary="Dates with active exams")
async def exam_dates(service: AssignmentService = Depends(get_assignment_service)):
    return APIResponse(success=True, data=[ExamDateOut(**item) for item in service.exam_dates()])


@router.get(
    "/assignments/students",
    response_model=APIResponse[List[DayStudentOut]],
    summary="Students examined on a date with their identification numbers",
)
async def students_for_date(
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    service: AssignmentService = Depends(get_assignment_service),
):
    return APIResponse(success=True, data=[DayStudentOut(**item) for item in service.students_for_date(date)])
