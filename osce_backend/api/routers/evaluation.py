"""
Router del evaluador: respuestas, cierre de estaciones y resultados

Todas las rutas requieren token (header Bearer o cookie).

Endpoints:
- GET  /evaluator/exams                 asignaciones del evaluador autenticado
- POST /evaluator/answers/batch         upsert de un lote de respuestas
- POST /evaluator/stations/finalize     cierre de una estación
- GET  /evaluator/results/{id}          vista de resultados de una asignación
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...services import EvaluationRecorder
from ..deps import RequestContext, get_current_user, get_evaluation_recorder
from ..exceptions import ValidationError
from ..schemas.common import APIResponse
from ..schemas.evaluation import (
    AnswerBatchRequest,
    AnswerOut,
    AssignmentOut,
    EvaluatorAssignmentOut,
    FinalizeStationRequest,
    ResultsOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/evaluator", tags=["Evaluation"])


@router.get("/exams", response_model=APIResponse[List[EvaluatorAssignmentOut]], summary="Assignments of the current evaluator")
async def evaluator_assignments(
    status: Optional[str] = Query(None, description="Pendiente | En Progreso | Completado"),
    evaluator_id: Optional[str] = Query(None, description="Only for admin users"),
    current_user: RequestContext = Depends(get_current_user),
    recorder: EvaluationRecorder = Depends(get_evaluation_recorder),
):
    target = current_user.evaluator_id or evaluator_id
    if not target:
        raise ValidationError("evaluator_id is required for users without an evaluator profile", {"field": "evaluator_id"})

    assignments = [
        EvaluatorAssignmentOut(
            **AssignmentOut.model_validate(a).model_dump(),
            exam_title=a.exam.title,
            application_date=a.exam.application_date,
        )
        for a in recorder.list_assignments_for_evaluator(target, status)
    ]
    return APIResponse(success=True, data=assignments)


@router.post("/answers/batch", response_model=APIResponse[List[AnswerOut]], summary="Record a batch of answers")
async def record_answers_batch(
    payload: AnswerBatchRequest,
    current_user: RequestContext = Depends(get_current_user),
    recorder: EvaluationRecorder = Depends(get_evaluation_recorder),
):
    if not payload.assignment_id:
        raise ValidationError("assignment_id is required", {"field": "assignment_id"})

    rows = recorder.record_answers(payload.assignment_id, [item.model_dump() for item in payload.answers])
    logger.debug(
        f"Answer batch recorded by user {current_user.user_id}",
        extra={"user_id": current_user.user_id, "assignment_id": payload.assignment_id}
    )
    return APIResponse(
        success=True,
        data=[AnswerOut.model_validate(row) for row in rows],
        message=f"{len(rows)} answers saved",
    )


@router.post("/stations/finalize", response_model=APIResponse[AssignmentOut], summary="Finalize a station")
async def finalize_station(
    payload: FinalizeStationRequest,
    current_user: RequestContext = Depends(get_current_user),
    recorder: EvaluationRecorder = Depends(get_evaluation_recorder),
):
    assignment = recorder.finalize_station(
        assignment_id=payload.assignment_id,
        station_id=payload.station_id,
        answers=[item.model_dump() for item in payload.answers],
        station_score=payload.station_score,
        station_remarks=payload.station_remarks,
        exam_aggregate_score=payload.exam_aggregate_score,
        exam_remarks=payload.exam_remarks,
    )
    logger.info(
        f"Station finalized by user {current_user.user_id}",
        extra={"user_id": current_user.user_id, "assignment_id": assignment.id}
    )
    return APIResponse(success=True, data=AssignmentOut.model_validate(assignment), message="Station finalized")


@router.get("/results/{assignment_id}", response_model=APIResponse[ResultsOut], summary="Results of an assignment")
async def assignment_results(
    assignment_id: str,
    current_user: RequestContext = Depends(get_current_user),
    recorder: EvaluationRecorder = Depends(get_evaluation_recorder),
):
    return APIResponse(success=True, data=ResultsOut(**recorder.compute_results(assignment_id)))
