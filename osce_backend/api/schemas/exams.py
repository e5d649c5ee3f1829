"""
Schemas del árbol de exámenes (examen, estación, pregunta, opción)
"""
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OptionIn(BaseModel):
    text: str
    is_correct: bool = False
    order_index: Optional[int] = None


class QuestionIn(BaseModel):
    id: Optional[str] = None  # presente al actualizar una pregunta existente
    text: Optional[str] = None
    type: Optional[str] = None  # texto_libre | numerico | opcion_unica | opcion_multiple
    required: Optional[bool] = None
    order_index: Optional[int] = None
    points: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    reference_answer: Optional[str] = None
    # Objetos u, en el formato heredado, strings sueltos
    options: Optional[List[Union[OptionIn, str]]] = None


class StationIn(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    order_index: Optional[int] = None
    active: Optional[bool] = None
    questions: List[QuestionIn] = Field(default_factory=list)


class ExamCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    application_date: Optional[str] = None
    state: Optional[str] = None
    stations: List[StationIn] = Field(default_factory=list)
    evaluator_ids: List[str] = Field(default_factory=list)


class ExamUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    application_date: Optional[str] = None
    state: Optional[str] = None
    stations: List[StationIn] = Field(default_factory=list)
    evaluator_ids: List[str] = Field(default_factory=list)


class DuplicateExamRequest(BaseModel):
    application_date: Optional[str] = None


class BulkDuplicateRequest(BaseModel):
    exam_ids: List[str] = Field(default_factory=list)
    application_date: Optional[str] = None


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    question_id: str
    text: str
    is_correct: bool
    order_index: int


class QuestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    station_id: str
    text: str
    type: str
    required: bool
    order_index: int
    points: float
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    reference_answer: Optional[str] = None
    options: List[OptionOut] = Field(default_factory=list)


class StationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    exam_id: str
    title: str
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    order_index: int
    active: bool
    max_score: float


class StationDetail(StationOut):
    questions: List[QuestionOut] = Field(default_factory=list)


class EvaluatorBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    email: str


class ExamSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str] = None
    application_date: Optional[datetime] = None
    state: str
    created_at: Optional[datetime] = None
    student_count: int = 0


class ExamDetail(ExamSummary):
    stations: List[StationDetail] = Field(default_factory=list)
    evaluators: List[EvaluatorBrief] = Field(default_factory=list)


class DuplicateExamResponse(BaseModel):
    exam_id: str


class BulkDuplicateResponse(BaseModel):
    exam_ids: List[str]
