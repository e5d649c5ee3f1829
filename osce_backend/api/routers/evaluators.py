"""
Router de evaluadores
"""
from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...core.cache import get_cache
from ...database.repositories import EvaluatorRepository
from ...services import EvaluatorService
from ..deps import get_evaluator_repository, get_evaluator_service
from ..exceptions import NotFoundError
from ..schemas.common import APIResponse
from ..schemas.exams import ExamSummary
from ..schemas.people import EvaluatorCreate, EvaluatorOut, EvaluatorUpdate

router = APIRouter(prefix="/evaluators", tags=["Evaluators"])


@router.get("", response_model=APIResponse[List[EvaluatorOut]], summary="List evaluators")
async def list_evaluators(
    with_exams: bool = Query(False, description="Only evaluators enabled for at least one exam"),
    repo: EvaluatorRepository = Depends(get_evaluator_repository),
):
    key = "evaluators:with-exams" if with_exams else "evaluators:all"
    evaluators = get_cache().get(
        key,
        lambda: [EvaluatorOut.model_validate(e).model_dump(mode="json") for e in repo.get_all(with_exams_only=with_exams)],
    )
    return APIResponse(success=True, data=evaluators)


@router.post("", response_model=APIResponse[EvaluatorOut], status_code=status.HTTP_201_CREATED, summary="Create evaluator")
async def create_evaluator(payload: EvaluatorCreate, service: EvaluatorService = Depends(get_evaluator_service)):
    evaluator = service.create(payload.model_dump())
    return APIResponse(success=True, data=EvaluatorOut.model_validate(evaluator), message="Evaluator created")


@router.get("/{evaluator_id}", response_model=APIResponse[EvaluatorOut], summary="Get evaluator")
async def get_evaluator(evaluator_id: str, repo: EvaluatorRepository = Depends(get_evaluator_repository)):
    evaluator = repo.get_by_id(evaluator_id)
    if evaluator is None:
        raise NotFoundError("Evaluator", evaluator_id)
    return APIResponse(success=True, data=EvaluatorOut.model_validate(evaluator))


@router.put("/{evaluator_id}", response_model=APIResponse[EvaluatorOut], summary="Update evaluator")
async def update_evaluator(
    evaluator_id: str,
    payload: EvaluatorUpdate,
    service: EvaluatorService = Depends(get_evaluator_service),
):
    evaluator = service.update(evaluator_id, payload.model_dump(exclude_unset=True))
    return APIResponse(success=True, data=EvaluatorOut.model_validate(evaluator), message="Evaluator updated")


@router.delete("/{evaluator_id}", response_model=APIResponse[None], summary="Delete evaluator")
async def delete_evaluator(evaluator_id: str, service: EvaluatorService = Depends(get_evaluator_service)):
    service.delete(evaluator_id)
    return APIResponse(success=True, message="Evaluator deleted")


@router.get("/{evaluator_id}/exams", response_model=APIResponse[List[ExamSummary]], summary="Exams an evaluator is enabled for")
async def evaluator_exams(evaluator_id: str, repo: EvaluatorRepository = Depends(get_evaluator_repository)):
    if repo.get_by_id(evaluator_id) is None:
        raise NotFoundError("Evaluator", evaluator_id)
    return APIResponse(success=True, data=[ExamSummary.model_validate(e) for e in repo.get_exams(evaluator_id)])
