"""
Schemas de asignaciones y evaluación
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ASSIGNMENTS
# =============================================================================

class AssignmentCreate(BaseModel):
    student_id: Optional[str] = None
    exam_id: Optional[str] = None
    evaluator_id: Optional[str] = None


class AssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    exam_id: str
    evaluator_id: Optional[str] = None
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    score: Optional[float] = None
    remarks: Optional[str] = None
    identification_number: Optional[str] = None


class EvaluatorAssignmentOut(AssignmentOut):
    """Asignación vista por el evaluador: sin nombre del alumno"""
    exam_title: str
    application_date: Optional[datetime] = None


class ExamStudentOut(BaseModel):
    assignment_id: str
    student_id: str
    first_name: str
    last_name: str
    registration_number: str
    status: str
    score: Optional[float] = None
    identification_number: Optional[str] = None


class AssignmentAction(BaseModel):
    action: Literal["iniciar", "finalizar"]
    score: Optional[float] = None
    remarks: Optional[str] = None


class IdentificationRequest(BaseModel):
    student_id: Optional[str] = None
    date: Optional[str] = None
    identification_number: Optional[str] = None


class IdentificationResponse(BaseModel):
    updated: int


class ExamDateOut(BaseModel):
    date: str
    exam_count: int


class DayStudentOut(BaseModel):
    student_id: str
    first_name: str
    last_name: str
    registration_number: str
    exam_count: int
    identification_number: Optional[str] = None


# =============================================================================
# ANSWERS AND RESULTS
# =============================================================================

class AnswerItem(BaseModel):
    question_id: Optional[str] = None
    answer: Any = None
    points: Optional[float] = None
    comment: Optional[str] = None


class AnswerBatchRequest(BaseModel):
    assignment_id: Optional[str] = None
    answers: List[AnswerItem] = Field(default_factory=list)


class AnswerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_exam_id: str
    question_id: str
    answer: Optional[str] = None
    points: float
    comment: Optional[str] = None
    answered_at: datetime


class FinalizeStationRequest(BaseModel):
    assignment_id: Optional[str] = None
    station_id: Optional[str] = None
    answers: List[AnswerItem] = Field(default_factory=list)
    station_score: Optional[float] = None
    station_remarks: Optional[str] = None
    # Se acepta por compatibilidad; el total siempre se recalcula
    exam_aggregate_score: Optional[float] = None
    exam_remarks: Optional[str] = None


class QuestionResult(BaseModel):
    question_id: str
    text: str
    type: str
    points: float
    answer: Optional[str] = None
    awarded_points: Optional[float] = None
    comment: Optional[str] = None
    correct_answer: Optional[str] = None


class StationResultOut(BaseModel):
    station_id: str
    title: str
    order_index: int
    max_score: float
    score: Optional[float] = None
    remarks: Optional[str] = None
    finalized: bool
    questions: List[QuestionResult]


class ResultsOut(BaseModel):
    assignment_id: str
    status: str
    identification_number: Optional[str] = None
    student: Dict[str, Any]
    exam: Dict[str, Any]
    evaluator_id: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    remarks: Optional[str] = None
    stations: List[StationResultOut]
    total_score: float
    max_total_score: float
