"""
Router de alumnos
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...database.repositories import AssignmentRepository, StudentRepository
from ...services import StudentService
from ..deps import get_student_repository, get_student_service
from ..exceptions import NotFoundError
from ..schemas.common import APIResponse
from ..schemas.people import HasExamResponse, StudentCreate, StudentExamOut, StudentOut, StudentUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/students", tags=["Students"])


def _get_or_404(repo: StudentRepository, student_id: str):
    student = repo.get_by_id(student_id)
    if student is None:
        raise NotFoundError("Student", student_id)
    return student


@router.get("", response_model=APIResponse[List[StudentOut]], summary="List students")
async def list_students(
    limit: int = Query(500, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    repo: StudentRepository = Depends(get_student_repository),
):
    students = repo.get_all(limit=limit, offset=offset)
    return APIResponse(success=True, data=[StudentOut.model_validate(s) for s in students])


@router.post("", response_model=APIResponse[StudentOut], status_code=status.HTTP_201_CREATED, summary="Create student")
async def create_student(payload: StudentCreate, service: StudentService = Depends(get_student_service)):
    student = service.create(payload.model_dump())
    return APIResponse(success=True, data=StudentOut.model_validate(student), message="Student created")


@router.get("/{student_id}", response_model=APIResponse[StudentOut], summary="Get student")
async def get_student(student_id: str, repo: StudentRepository = Depends(get_student_repository)):
    return APIResponse(success=True, data=StudentOut.model_validate(_get_or_404(repo, student_id)))


@router.put("/{student_id}", response_model=APIResponse[StudentOut], summary="Update student")
async def update_student(
    student_id: str,
    payload: StudentUpdate,
    service: StudentService = Depends(get_student_service),
):
    student = service.update(student_id, payload.model_dump(exclude_unset=True))
    return APIResponse(success=True, data=StudentOut.model_validate(student), message="Student updated")


@router.delete("/{student_id}", response_model=APIResponse[None], summary="Delete student")
async def delete_student(student_id: str, service: StudentService = Depends(get_student_service)):
    service.delete(student_id)
    return APIResponse(success=True, message="Student deleted")


@router.get("/{student_id}/exams", response_model=APIResponse[List[StudentExamOut]], summary="Exams of a student")
async def student_exams(student_id: str, repo: StudentRepository = Depends(get_student_repository)):
    _get_or_404(repo, student_id)
    exams = [
        StudentExamOut(
            assignment_id=a.id,
            exam_id=a.exam.id,
            title=a.exam.title,
            application_date=a.exam.application_date,
            exam_state=a.exam.state,
            status=a.status,
            score=a.score,
            identification_number=a.identification_number,
        )
        for a in repo.get_assignments(student_id)
    ]
    return APIResponse(success=True, data=exams)


@router.get(
    "/{student_id}/has-exam/{exam_id}",
    response_model=APIResponse[HasExamResponse],
    summary="Whether the student already has the exam assigned",
)
async def student_has_exam(student_id: str, exam_id: str, repo: StudentRepository = Depends(get_student_repository)):
    has_exam = AssignmentRepository(repo.db).exists_for(student_id, exam_id)
    return APIResponse(success=True, data=HasExamResponse(has_exam=has_exam))
