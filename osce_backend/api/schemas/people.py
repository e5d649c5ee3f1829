"""
Schemas de alumnos, evaluadores, hospitales y grupos
"""
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


# =============================================================================
# HOSPITALS
# =============================================================================

class HospitalCreate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    type: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class HospitalUpdate(HospitalCreate):
    pass


class HospitalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    type: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


# =============================================================================
# STUDENTS
# =============================================================================

class StudentCreate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    registration_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    hospital_id: Optional[str] = None


class StudentUpdate(StudentCreate):
    pass


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    registration_number: str
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    hospital_id: Optional[str] = None


class StudentExamOut(BaseModel):
    """Examen de un alumno con el estado de su asignación"""
    assignment_id: str
    exam_id: str
    title: str
    application_date: Optional[datetime] = None
    exam_state: str
    status: str
    score: Optional[float] = None
    identification_number: Optional[str] = None


class HasExamResponse(BaseModel):
    has_exam: bool


# =============================================================================
# EVALUATORS
# =============================================================================

class EvaluatorCreate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    specialty: Optional[str] = None
    category: Optional[str] = None
    active: Optional[bool] = True


class EvaluatorUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    specialty: Optional[str] = None
    category: Optional[str] = None
    active: Optional[bool] = None


class EvaluatorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    email: str
    specialty: Optional[str] = None
    category: Optional[str] = None
    active: bool
    user_id: Optional[str] = None


# =============================================================================
# GROUPS
# =============================================================================

class GroupCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class GroupUpdate(GroupCreate):
    pass


class GroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    student_count: int = 0


class GroupMemberRequest(BaseModel):
    student_id: Optional[str] = None
