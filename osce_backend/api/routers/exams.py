"""
Router de exámenes: CRUD, árbol de estaciones y duplicación

Endpoints:
- GET    /exams                     listado con cantidad de alumnos asignados
- POST   /exams                     alta (con árbol opcional)
- GET    /exams/upcoming            próximos exámenes
- POST   /exams/duplicate-bulk      duplicación masiva para una fecha
- GET    /exams/{id}                examen completo con evaluadores
- PUT    /exams/{id}                actualización
- DELETE /exams/{id}                baja (409 si tiene alumnos asignados)
- GET    /exams/{id}/stations       estaciones ordenadas
- GET    /exams/{id}/students       alumnos asignados
- POST   /exams/{id}/duplicate      copia para una nueva fecha
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...core.cache import get_cache
from ...core.dates import local_now
from ...database.repositories import AssignmentRepository, ExamRepository, StationRepository
from ...services import ExamCompositionService
from ..deps import get_composition_service, get_exam_repository
from ..exceptions import NotFoundError
from ..schemas.common import APIResponse
from ..schemas.evaluation import ExamStudentOut
from ..schemas.exams import (
    BulkDuplicateRequest,
    BulkDuplicateResponse,
    DuplicateExamRequest,
    DuplicateExamResponse,
    ExamCreate,
    ExamDetail,
    ExamSummary,
    ExamUpdate,
    StationOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exams", tags=["Exams"])

EXAMS_CACHE_KEY = "exams:all"


def _exam_detail(repo: ExamRepository, exam_id: str) -> ExamDetail:
    exam = repo.get_by_id(exam_id, load_tree=True)
    if exam is None:
        raise NotFoundError("Exam", exam_id)
    detail = ExamDetail.model_validate(exam)
    detail.student_count = repo.count_assignments(exam_id)
    return detail


@router.get("", response_model=APIResponse[List[ExamSummary]], summary="List exams")
async def list_exams(repo: ExamRepository = Depends(get_exam_repository)):
    def fetch():
        return [
            ExamSummary.model_validate(exam).model_copy(update={"student_count": count}).model_dump(mode="json")
            for exam, count in repo.get_all_with_counts()
        ]

    exams = get_cache().get(EXAMS_CACHE_KEY, fetch)
    return APIResponse(success=True, data=exams, message=f"Retrieved {len(exams)} exams")


@router.post(
    "",
    response_model=APIResponse[ExamDetail],
    status_code=status.HTTP_201_CREATED,
    summary="Create exam",
)
async def create_exam(
    payload: ExamCreate,
    service: ExamCompositionService = Depends(get_composition_service),
    repo: ExamRepository = Depends(get_exam_repository),
):
    data = payload.model_dump()
    exam = service.create_exam(
        title=data["title"],
        description=data["description"],
        application_date=data["application_date"],
        state=data["state"],
        stations=data["stations"],
        evaluator_ids=data["evaluator_ids"],
    )
    return APIResponse(success=True, data=_exam_detail(repo, exam.id), message="Exam created")


@router.get("/upcoming", response_model=APIResponse[List[ExamSummary]], summary="Upcoming exams")
async def upcoming_exams(
    limit: int = Query(5, ge=1, le=100),
    repo: ExamRepository = Depends(get_exam_repository),
):
    exams = [ExamSummary.model_validate(exam) for exam in repo.get_upcoming(local_now(), limit=limit)]
    return APIResponse(success=True, data=exams)


@router.post(
    "/duplicate-bulk",
    response_model=APIResponse[BulkDuplicateResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate several exams for a new date",
)
async def duplicate_exams_bulk(
    payload: BulkDuplicateRequest,
    service: ExamCompositionService = Depends(get_composition_service),
):
    new_ids = service.duplicate_exams_bulk(payload.exam_ids, payload.application_date)
    return APIResponse(
        success=True,
        data=BulkDuplicateResponse(exam_ids=new_ids),
        message=f"{len(new_ids)} exams duplicated",
    )


@router.get("/{exam_id}", response_model=APIResponse[ExamDetail], summary="Get exam with stations")
async def get_exam(exam_id: str, repo: ExamRepository = Depends(get_exam_repository)):
    return APIResponse(success=True, data=_exam_detail(repo, exam_id))


@router.put("/{exam_id}", response_model=APIResponse[ExamDetail], summary="Update exam")
async def update_exam(
    exam_id: str,
    payload: ExamUpdate,
    service: ExamCompositionService = Depends(get_composition_service),
    repo: ExamRepository = Depends(get_exam_repository),
):
    service.update_exam(exam_id, payload.model_dump(exclude_unset=True))
    return APIResponse(success=True, data=_exam_detail(repo, exam_id), message="Exam updated")


@router.delete("/{exam_id}", response_model=APIResponse[None], summary="Delete exam")
async def delete_exam(exam_id: str, service: ExamCompositionService = Depends(get_composition_service)):
    service.delete_exam(exam_id)
    return APIResponse(success=True, message="Exam deleted")


@router.get("/{exam_id}/stations", response_model=APIResponse[List[StationOut]], summary="Stations of an exam")
async def exam_stations(exam_id: str, repo: ExamRepository = Depends(get_exam_repository)):
    if repo.get_by_id(exam_id) is None:
        raise NotFoundError("Exam", exam_id)
    stations = StationRepository(repo.db).get_by_exam(exam_id)
    return APIResponse(success=True, data=[StationOut.model_validate(s) for s in stations])


@router.get("/{exam_id}/students", response_model=APIResponse[List[ExamStudentOut]], summary="Students assigned to an exam")
async def exam_students(exam_id: str, repo: ExamRepository = Depends(get_exam_repository)):
    if repo.get_by_id(exam_id) is None:
        raise NotFoundError("Exam", exam_id)
    students = [
        ExamStudentOut(
            assignment_id=a.id,
            student_id=a.student.id,
            first_name=a.student.first_name,
            last_name=a.student.last_name,
            registration_number=a.student.registration_number,
            status=a.status,
            score=a.score,
            identification_number=a.identification_number,
        )
        for a in AssignmentRepository(repo.db).get_by_exam(exam_id)
    ]
    return APIResponse(success=True, data=students)


@router.post(
    "/{exam_id}/duplicate",
    response_model=APIResponse[DuplicateExamResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Duplicate exam for a new application date",
)
async def duplicate_exam(
    exam_id: str,
    payload: DuplicateExamRequest,
    service: ExamCompositionService = Depends(get_composition_service),
):
    new_id = service.duplicate_exam(exam_id, payload.application_date)
    return APIResponse(success=True, data=DuplicateExamResponse(exam_id=new_id), message="Exam duplicated")
