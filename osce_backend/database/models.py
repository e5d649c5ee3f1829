"""
SQLAlchemy ORM models for persistence

Models:
- HospitalDB, StudentDB, GroupDB, EvaluatorDB, UserDB: reference entities
- ExamDB -> StationDB -> QuestionDB -> OptionDB: exam composition tree
- StudentExamDB: assignment of one exam to one student (scored by an evaluator)
- StudentAnswerDB, StationResultDB: per-question answers and per-station scores
"""
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from .base import Base, BaseModel
from ..core.constants import utc_now
from ..models.enums import AssignmentStatus, ExamState, QuestionType, UserRole


class JSONBCompatible(TypeDecorator):
    """
    A JSON type that uses JSONB on PostgreSQL and JSON on other databases (e.g., SQLite).
    This allows tests to run with SQLite while production uses PostgreSQL with JSONB.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


# =============================================================================
# ASSOCIATION TABLES
# =============================================================================

student_groups = Table(
    "student_groups",
    Base.metadata,
    Column("student_id", String(36), ForeignKey("students.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
)

# Evaluadores habilitados para tomar cada examen
exam_evaluators = Table(
    "exam_evaluators",
    Base.metadata,
    Column("exam_id", String(36), ForeignKey("exams.id", ondelete="CASCADE"), primary_key=True),
    Column("evaluator_id", String(36), ForeignKey("evaluators.id", ondelete="CASCADE"), primary_key=True),
)


# =============================================================================
# REFERENCE ENTITIES
# =============================================================================


class HospitalDB(Base, BaseModel):
    __tablename__ = "hospitals"

    name = Column(String(255), nullable=False)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    type = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)

    students = relationship("StudentDB", back_populates="hospital")


class GroupDB(Base, BaseModel):
    __tablename__ = "groups"

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    students = relationship("StudentDB", secondary=student_groups, back_populates="groups")


class StudentDB(Base, BaseModel):
    __tablename__ = "students"

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    # Matrícula
    registration_number = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    birth_date = Column(Date, nullable=True)
    hospital_id = Column(String(36), ForeignKey("hospitals.id", ondelete="SET NULL"), nullable=True, index=True)

    hospital = relationship("HospitalDB", back_populates="students")
    groups = relationship("GroupDB", secondary=student_groups, back_populates="students")
    assignments = relationship("StudentExamDB", back_populates="student", cascade="all, delete-orphan")


class UserDB(Base, BaseModel):
    """Login account; evaluators get one automatically when created"""

    __tablename__ = "users"

    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.EVALUADOR.value)
    is_active = Column(Boolean, default=True, server_default='true', nullable=False)
    first_login = Column(Boolean, default=True, server_default='true', nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)

    evaluator = relationship("EvaluatorDB", back_populates="user", uselist=False)

    __table_args__ = (
        Index('idx_user_email_active', 'email', 'is_active'),
    )


class EvaluatorDB(Base, BaseModel):
    __tablename__ = "evaluators"

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    specialty = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    user = relationship("UserDB", back_populates="evaluator")
    exams = relationship("ExamDB", secondary=exam_evaluators, back_populates="evaluators")
    assignments = relationship("StudentExamDB", back_populates="evaluator")


# =============================================================================
# EXAM COMPOSITION TREE
# =============================================================================


class ExamDB(Base, BaseModel):
    __tablename__ = "exams"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Hora local (EXAM_TIMEZONE), sin tz
    application_date = Column(DateTime, nullable=True, index=True)
    state = Column(String(20), nullable=False, default=ExamState.DRAFT.value)

    stations = relationship(
        "StationDB",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="StationDB.order_index",
    )
    evaluators = relationship("EvaluatorDB", secondary=exam_evaluators, back_populates="exams")
    assignments = relationship("StudentExamDB", back_populates="exam")

    __table_args__ = (
        CheckConstraint(
            "state IN ('DRAFT', 'ACTIVO', 'INACTIVO')",
            name="ck_exam_state_valid",
        ),
        Index('idx_exam_state_date', 'state', 'application_date'),
    )


class StationDB(Base, BaseModel):
    __tablename__ = "stations"

    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    # Derivado: suma de los puntajes de sus preguntas
    max_score = Column(Float, nullable=False, default=0.0)

    exam = relationship("ExamDB", back_populates="stations")
    questions = relationship(
        "QuestionDB",
        back_populates="station",
        cascade="all, delete-orphan",
        order_by="QuestionDB.order_index",
    )


class QuestionDB(Base, BaseModel):
    __tablename__ = "questions"

    station_id = Column(String(36), ForeignKey("stations.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, default=QuestionType.TEXTO_LIBRE.value)
    required = Column(Boolean, nullable=False, default=True)
    order_index = Column(Integer, nullable=False, default=0)
    points = Column(Float, nullable=False, default=1.0)
    min_value = Column(Float, nullable=True)
    max_value = Column(Float, nullable=True)
    reference_answer = Column(Text, nullable=True)
    # Formato embebido heredado; solo se lee al migrar a OptionDB
    legacy_options = Column(JSONBCompatible, nullable=True)

    station = relationship("StationDB", back_populates="questions")
    options = relationship(
        "OptionDB",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="OptionDB.order_index",
    )


class OptionDB(Base, BaseModel):
    __tablename__ = "options"

    question_id = Column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False, default=0)

    question = relationship("QuestionDB", back_populates="options")


# =============================================================================
# ASSIGNMENTS AND SCORING
# =============================================================================


class StudentExamDB(Base, BaseModel):
    """Assignment of an exam to a student (alumno_examen)"""

    __tablename__ = "student_exams"

    student_id = Column(String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    evaluator_id = Column(String(36), ForeignKey("evaluators.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=AssignmentStatus.PENDIENTE.value)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    score = Column(Float, nullable=True)
    remarks = Column(Text, nullable=True)
    # Código que reemplaza la identidad del alumno frente al evaluador
    identification_number = Column(String(50), nullable=True, index=True)

    student = relationship("StudentDB", back_populates="assignments")
    exam = relationship("ExamDB", back_populates="assignments")
    evaluator = relationship("EvaluatorDB", back_populates="assignments")
    answers = relationship("StudentAnswerDB", back_populates="assignment", cascade="all, delete-orphan")
    station_results = relationship("StationResultDB", back_populates="assignment", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('student_id', 'exam_id', name='uq_student_exam'),
        CheckConstraint(
            "status IN ('Pendiente', 'En Progreso', 'Completado')",
            name="ck_student_exam_status_valid",
        ),
        Index('idx_student_exam_evaluator_status', 'evaluator_id', 'status'),
    )


class StudentAnswerDB(Base, BaseModel):
    __tablename__ = "student_answers"

    student_exam_id = Column(String(36), ForeignKey("student_exams.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    answer = Column(Text, nullable=True)
    points = Column(Float, nullable=False, default=0.0)
    comment = Column(Text, nullable=True)
    answered_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    assignment = relationship("StudentExamDB", back_populates="answers")
    question = relationship("QuestionDB")

    __table_args__ = (
        UniqueConstraint('student_exam_id', 'question_id', name='uq_answer_assignment_question'),
    )


class StationResultDB(Base, BaseModel):
    __tablename__ = "station_results"

    student_exam_id = Column(String(36), ForeignKey("student_exams.id", ondelete="CASCADE"), nullable=False, index=True)
    station_id = Column(String(36), ForeignKey("stations.id", ondelete="CASCADE"), nullable=False, index=True)
    score = Column(Float, nullable=False, default=0.0)
    remarks = Column(Text, nullable=True)
    evaluated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    assignment = relationship("StudentExamDB", back_populates="station_results")
    station = relationship("StationDB")

    __table_args__ = (
        UniqueConstraint('student_exam_id', 'station_id', name='uq_result_assignment_station'),
    )
