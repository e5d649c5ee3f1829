"""
Repository pattern for database operations

Provides:
- HospitalRepository, StudentRepository, GroupRepository: reference entities
- EvaluatorRepository, UserRepository: evaluators and their login accounts
- ExamRepository, StationRepository, QuestionRepository, OptionRepository:
  the exam composition tree
- AssignmentRepository: student <-> exam assignments (alumno_examen)
- AnswerRepository, StationResultRepository: scoring rows

TRANSACTION MANAGEMENT:
----------------------
Repository methods never commit. They add/flush on the session they were
given so generated ids are available, and the caller decides the unit of
work with the transaction context manager:

    from osce_backend.database.transaction import transaction

    with transaction(db, "Create evaluator with user account"):
        user = UserRepository(db).create(...)
        EvaluatorRepository(db).create(..., user_id=user.id)

    # Commits both inserts, or rolls both back
"""
import logging
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from sqlalchemy import desc, exists, func, select
from sqlalchemy.orm import Session, selectinload

from ..core.constants import utc_now
from ..models.enums import AssignmentStatus, ExamState, QUESTION_TYPE_ALIASES, QuestionType
from .models import (
    EvaluatorDB,
    ExamDB,
    GroupDB,
    HospitalDB,
    OptionDB,
    QuestionDB,
    StationDB,
    StationResultDB,
    StudentAnswerDB,
    StudentDB,
    StudentExamDB,
    UserDB,
    exam_evaluators,
    student_groups,
)

logger = logging.getLogger(__name__)


def _safe_enum_to_str(value: Any, enum_class: Type[Enum], aliases: Optional[Dict[str, Enum]] = None) -> Optional[str]:
    """
    Normalizes an Enum member or a string to the enum's stored value.

    Strings are matched case-insensitively against values and names, then
    against the optional alias table.

    Example:
        >>> _safe_enum_to_str("activo", ExamState)
        'ACTIVO'
        >>> _safe_enum_to_str("seleccion", QuestionType, QUESTION_TYPE_ALIASES)
        'opcion_unica'

    Raises:
        ValueError: If the string is not a valid value for the enum
        TypeError: If the type is not supported
    """
    if value is None:
        return None

    if isinstance(value, enum_class):
        return value.value

    if isinstance(value, str):
        wanted = value.strip().upper()
        for member in enum_class:
            if member.value.upper() == wanted or member.name == wanted:
                return member.value
        if aliases and value.strip().lower() in aliases:
            return aliases[value.strip().lower()].value

        valid_values = [e.value for e in enum_class]
        raise ValueError(
            f"Invalid {enum_class.__name__}: '{value}'. "
            f"Valid values: {valid_values}"
        )

    logger.error(
        f"Expected {enum_class.__name__} or str, got {type(value)}",
        extra={"value": value, "type": type(value).__name__}
    )
    raise TypeError(
        f"Expected {enum_class.__name__} or str, got {type(value).__name__}"
    )


def normalize_question_type(value: Any) -> str:
    return _safe_enum_to_str(value, QuestionType, QUESTION_TYPE_ALIASES) or QuestionType.TEXTO_LIBRE.value


def normalize_exam_state(value: Any) -> Optional[str]:
    return _safe_enum_to_str(value, ExamState)


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """[start, end) of a calendar day as naive datetimes"""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _apply_updates(obj: Any, data: Dict[str, Any], allowed: Iterable[str]) -> Any:
    for field in allowed:
        if field in data:
            setattr(obj, field, data[field])
    return obj


class HospitalRepository:
    """Repository for hospital operations"""

    FIELDS = ("name", "address", "city", "type", "phone", "email")

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, **data) -> HospitalDB:
        hospital = HospitalDB(**{k: v for k, v in data.items() if k in self.FIELDS})
        self.db.add(hospital)
        self.db.flush()
        return hospital

    def get_by_id(self, hospital_id: str) -> Optional[HospitalDB]:
        return self.db.get(HospitalDB, hospital_id)

    def get_all(self) -> List[HospitalDB]:
        return self.db.query(HospitalDB).order_by(HospitalDB.name).all()

    def update(self, hospital_id: str, data: Dict[str, Any]) -> Optional[HospitalDB]:
        hospital = self.get_by_id(hospital_id)
        if hospital is None:
            return None
        _apply_updates(hospital, data, self.FIELDS)
        self.db.flush()
        return hospital

    def delete(self, hospital_id: str) -> bool:
        hospital = self.get_by_id(hospital_id)
        if hospital is None:
            return False
        self.db.delete(hospital)
        self.db.flush()
        return True

    def get_students(self, hospital_id: str) -> List[StudentDB]:
        return (
            self.db.query(StudentDB)
            .filter(StudentDB.hospital_id == hospital_id)
            .order_by(StudentDB.last_name, StudentDB.first_name)
            .all()
        )


class StudentRepository:
    """Repository for student operations"""

    FIELDS = ("first_name", "last_name", "registration_number", "email", "phone", "birth_date", "hospital_id")

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, **data) -> StudentDB:
        student = StudentDB(**{k: v for k, v in data.items() if k in self.FIELDS})
        self.db.add(student)
        self.db.flush()
        return student

    def get_by_id(self, student_id: str) -> Optional[StudentDB]:
        return self.db.get(StudentDB, student_id)

    def get_by_registration_number(self, registration_number: str) -> Optional[StudentDB]:
        return (
            self.db.query(StudentDB)
            .filter(StudentDB.registration_number == registration_number)
            .first()
        )

    def get_all(self, limit: int = 500, offset: int = 0) -> List[StudentDB]:
        return (
            self.db.query(StudentDB)
            .options(selectinload(StudentDB.hospital))
            .order_by(StudentDB.last_name, StudentDB.first_name)
            .limit(limit)
            .offset(offset)
            .all()
        )

    def update(self, student_id: str, data: Dict[str, Any]) -> Optional[StudentDB]:
        student = self.get_by_id(student_id)
        if student is None:
            return None
        _apply_updates(student, data, self.FIELDS)
        self.db.flush()
        return student

    def delete(self, student_id: str) -> bool:
        student = self.get_by_id(student_id)
        if student is None:
            return False
        self.db.delete(student)
        self.db.flush()
        return True

    def get_assignments(self, student_id: str) -> List[StudentExamDB]:
        """Assignments of a student with their exam loaded, newest exam first"""
        return (
            self.db.query(StudentExamDB)
            .join(ExamDB, StudentExamDB.exam_id == ExamDB.id)
            .options(selectinload(StudentExamDB.exam))
            .filter(StudentExamDB.student_id == student_id)
            .order_by(desc(ExamDB.application_date))
            .all()
        )


class GroupRepository:
    """Repository for student group operations"""

    FIELDS = ("name", "description")

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, **data) -> GroupDB:
        group = GroupDB(**{k: v for k, v in data.items() if k in self.FIELDS})
        self.db.add(group)
        self.db.flush()
        return group

    def get_by_id(self, group_id: str) -> Optional[GroupDB]:
        return self.db.get(GroupDB, group_id)

    def get_all_with_counts(self) -> List[Tuple[GroupDB, int]]:
        """Groups with the number of students in each"""
        count_subq = (
            select(student_groups.c.group_id, func.count().label("student_count"))
            .group_by(student_groups.c.group_id)
            .subquery()
        )
        rows = (
            self.db.query(GroupDB, func.coalesce(count_subq.c.student_count, 0))
            .outerjoin(count_subq, count_subq.c.group_id == GroupDB.id)
            .order_by(GroupDB.name)
            .all()
        )
        return [(group, int(count)) for group, count in rows]

    def count_students(self, group_id: str) -> int:
        return (
            self.db.query(func.count())
            .select_from(student_groups)
            .filter(student_groups.c.group_id == group_id)
            .scalar()
        )

    def update(self, group_id: str, data: Dict[str, Any]) -> Optional[GroupDB]:
        group = self.get_by_id(group_id)
        if group is None:
            return None
        _apply_updates(group, data, self.FIELDS)
        self.db.flush()
        return group

    def delete(self, group_id: str) -> bool:
        group = self.get_by_id(group_id)
        if group is None:
            return False
        self.db.delete(group)
        self.db.flush()
        return True

    def add_student(self, group: GroupDB, student: StudentDB) -> bool:
        """Returns False when the student already belonged to the group"""
        if student in group.students:
            return False
        group.students.append(student)
        self.db.flush()
        return True

    def remove_student(self, group: GroupDB, student: StudentDB) -> bool:
        if student not in group.students:
            return False
        group.students.remove(student)
        self.db.flush()
        return True

    def get_students(self, group_id: str) -> List[StudentDB]:
        return (
            self.db.query(StudentDB)
            .join(student_groups, student_groups.c.student_id == StudentDB.id)
            .filter(student_groups.c.group_id == group_id)
            .order_by(StudentDB.last_name, StudentDB.first_name)
            .all()
        )


class UserRepository:
    """Repository for login accounts"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, name: str, email: str, hashed_password: str, role: str, is_active: bool = True) -> UserDB:
        user = UserDB(
            name=name,
            email=email.lower(),
            hashed_password=hashed_password,
            role=role,
            is_active=is_active,
            first_login=True,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def get_by_id(self, user_id: str) -> Optional[UserDB]:
        return self.db.get(UserDB, user_id)

    def get_by_email(self, email: str) -> Optional[UserDB]:
        return self.db.query(UserDB).filter(UserDB.email == email.lower()).first()

    def exists_by_email(self, email: str) -> bool:
        return self.db.query(exists().where(UserDB.email == email.lower())).scalar()

    def update_last_login(self, user: UserDB) -> UserDB:
        user.last_login = utc_now()
        self.db.flush()
        return user

    def update_profile(
        self,
        user: UserDB,
        name: str,
        email: str,
        hashed_password: Optional[str] = None,
    ) -> UserDB:
        """Changing the password also ends the first-login state"""
        user.name = name
        user.email = email.lower()
        if hashed_password is not None:
            user.hashed_password = hashed_password
            user.first_login = False
        self.db.flush()
        return user


class EvaluatorRepository:
    """Repository for evaluator operations"""

    FIELDS = ("first_name", "last_name", "email", "specialty", "category", "active")

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, user_id: Optional[str] = None, **data) -> EvaluatorDB:
        evaluator = EvaluatorDB(user_id=user_id, **{k: v for k, v in data.items() if k in self.FIELDS})
        self.db.add(evaluator)
        self.db.flush()
        return evaluator

    def get_by_id(self, evaluator_id: str) -> Optional[EvaluatorDB]:
        return self.db.get(EvaluatorDB, evaluator_id)

    def get_by_email(self, email: str) -> Optional[EvaluatorDB]:
        return self.db.query(EvaluatorDB).filter(func.lower(EvaluatorDB.email) == email.lower()).first()

    def get_by_user_id(self, user_id: str) -> Optional[EvaluatorDB]:
        return self.db.query(EvaluatorDB).filter(EvaluatorDB.user_id == user_id).first()

    def get_by_ids(self, evaluator_ids: List[str]) -> List[EvaluatorDB]:
        if not evaluator_ids:
            return []
        return self.db.query(EvaluatorDB).filter(EvaluatorDB.id.in_(evaluator_ids)).all()

    def get_all(self, with_exams_only: bool = False) -> List[EvaluatorDB]:
        query = self.db.query(EvaluatorDB)
        if with_exams_only:
            query = query.filter(
                exists().where(exam_evaluators.c.evaluator_id == EvaluatorDB.id)
            )
        return query.order_by(EvaluatorDB.last_name, EvaluatorDB.first_name).all()

    def update(self, evaluator_id: str, data: Dict[str, Any]) -> Optional[EvaluatorDB]:
        evaluator = self.get_by_id(evaluator_id)
        if evaluator is None:
            return None
        _apply_updates(evaluator, data, self.FIELDS)
        self.db.flush()
        return evaluator

    def delete(self, evaluator_id: str) -> bool:
        evaluator = self.get_by_id(evaluator_id)
        if evaluator is None:
            return False
        self.db.delete(evaluator)
        self.db.flush()
        return True

    def has_assigned_exams(self, evaluator_id: str) -> bool:
        """True when the evaluator is eligible for at least one exam"""
        return self.db.query(
            exists().where(exam_evaluators.c.evaluator_id == evaluator_id)
        ).scalar()

    def has_taken_exams(self, evaluator_id: str) -> bool:
        """True when the evaluator is set on at least one assignment"""
        return self.db.query(
            exists().where(StudentExamDB.evaluator_id == evaluator_id)
        ).scalar()

    def get_exams(self, evaluator_id: str) -> List[ExamDB]:
        return (
            self.db.query(ExamDB)
            .join(exam_evaluators, exam_evaluators.c.exam_id == ExamDB.id)
            .filter(exam_evaluators.c.evaluator_id == evaluator_id)
            .order_by(desc(ExamDB.application_date))
            .all()
        )


class ExamRepository:
    """Repository for exam operations"""

    FIELDS = ("title", "description", "application_date", "state")

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        title: str,
        description: Optional[str] = None,
        application_date: Optional[datetime] = None,
        state: str = ExamState.DRAFT.value,
    ) -> ExamDB:
        exam = ExamDB(
            title=title,
            description=description,
            application_date=application_date,
            state=state,
        )
        self.db.add(exam)
        self.db.flush()
        return exam

    def get_by_id(self, exam_id: str, load_tree: bool = False) -> Optional[ExamDB]:
        """
        Get exam by ID, optionally eager loading stations -> questions -> options
        and evaluators (prevents N+1 when serializing the whole tree).
        """
        query = self.db.query(ExamDB).filter(ExamDB.id == exam_id)
        if load_tree:
            query = query.options(
                selectinload(ExamDB.stations)
                .selectinload(StationDB.questions)
                .selectinload(QuestionDB.options),
                selectinload(ExamDB.evaluators),
            )
        return query.first()

    def get_by_ids(self, exam_ids: List[str], load_tree: bool = False) -> List[ExamDB]:
        if not exam_ids:
            return []
        query = self.db.query(ExamDB).filter(ExamDB.id.in_(exam_ids))
        if load_tree:
            query = query.options(
                selectinload(ExamDB.stations)
                .selectinload(StationDB.questions)
                .selectinload(QuestionDB.options),
                selectinload(ExamDB.evaluators),
            )
        return query.all()

    def get_all_with_counts(self) -> List[Tuple[ExamDB, int]]:
        """Exams with the number of students assigned to each, newest first"""
        count_subq = (
            select(StudentExamDB.exam_id, func.count().label("student_count"))
            .group_by(StudentExamDB.exam_id)
            .subquery()
        )
        rows = (
            self.db.query(ExamDB, func.coalesce(count_subq.c.student_count, 0))
            .outerjoin(count_subq, count_subq.c.exam_id == ExamDB.id)
            .order_by(desc(ExamDB.application_date), ExamDB.title)
            .all()
        )
        return [(exam, int(count)) for exam, count in rows]

    def get_upcoming(self, now: datetime, limit: int = 5) -> List[ExamDB]:
        return (
            self.db.query(ExamDB)
            .filter(ExamDB.application_date >= now)
            .filter(ExamDB.state != ExamState.INACTIVO.value)
            .order_by(ExamDB.application_date)
            .limit(limit)
            .all()
        )

    def update(self, exam: ExamDB, data: Dict[str, Any]) -> ExamDB:
        _apply_updates(exam, data, self.FIELDS)
        self.db.flush()
        return exam

    def delete(self, exam: ExamDB) -> None:
        self.db.delete(exam)
        self.db.flush()

    def count_assignments(self, exam_id: str) -> int:
        return self.db.query(StudentExamDB).filter(StudentExamDB.exam_id == exam_id).count()

    def add_evaluators(self, exam: ExamDB, evaluators: Iterable[EvaluatorDB]) -> int:
        """Adds eligibility links that do not exist yet; returns how many were added"""
        added = 0
        for evaluator in evaluators:
            if evaluator not in exam.evaluators:
                exam.evaluators.append(evaluator)
                added += 1
        self.db.flush()
        return added

    def get_past_due(self, now: datetime) -> List[ExamDB]:
        """Exams whose application date has passed and are not INACTIVO yet"""
        stmt = (
            select(ExamDB)
            .where(ExamDB.application_date < now)
            .where(ExamDB.state != ExamState.INACTIVO.value)
            .with_for_update()
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_active_dates(self) -> List[datetime]:
        rows = (
            self.db.query(ExamDB.application_date)
            .filter(ExamDB.application_date.isnot(None))
            .filter(ExamDB.state == ExamState.ACTIVO.value)
            .all()
        )
        return [row[0] for row in rows]


class StationRepository:
    """Repository for station operations"""

    FIELDS = ("title", "description", "duration_minutes", "order_index", "active")

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        exam_id: str,
        title: str,
        description: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        order_index: int = 0,
        active: bool = True,
    ) -> StationDB:
        station = StationDB(
            exam_id=exam_id,
            title=title,
            description=description,
            duration_minutes=duration_minutes,
            order_index=order_index,
            active=active,
            max_score=0.0,
        )
        self.db.add(station)
        self.db.flush()
        return station

    def get_by_id(self, station_id: str) -> Optional[StationDB]:
        return self.db.get(StationDB, station_id)

    def get_by_exam(self, exam_id: str) -> List[StationDB]:
        return (
            self.db.query(StationDB)
            .filter(StationDB.exam_id == exam_id)
            .order_by(StationDB.order_index)
            .all()
        )

    def update(self, station: StationDB, data: Dict[str, Any]) -> StationDB:
        _apply_updates(station, data, self.FIELDS)
        self.db.flush()
        return station

    def recompute_max_score(self, station_id: str) -> float:
        """Sets max_score to the sum of its questions' points and returns it"""
        total = (
            self.db.query(func.coalesce(func.sum(QuestionDB.points), 0.0))
            .filter(QuestionDB.station_id == station_id)
            .scalar()
        )
        station = self.get_by_id(station_id)
        station.max_score = float(total or 0.0)
        self.db.flush()
        return station.max_score


class QuestionRepository:
    """Repository for question operations"""

    FIELDS = ("text", "type", "required", "order_index", "points", "min_value", "max_value", "reference_answer")

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        station_id: str,
        text: str,
        type: Any = QuestionType.TEXTO_LIBRE,
        required: bool = True,
        order_index: int = 0,
        points: float = 1.0,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        reference_answer: Optional[str] = None,
    ) -> QuestionDB:
        question = QuestionDB(
            station_id=station_id,
            text=text,
            type=normalize_question_type(type),
            required=required,
            order_index=order_index,
            points=points,
            min_value=min_value,
            max_value=max_value,
            reference_answer=reference_answer,
        )
        self.db.add(question)
        self.db.flush()
        return question

    def get_by_id(self, question_id: str) -> Optional[QuestionDB]:
        return self.db.get(QuestionDB, question_id)

    def get_by_ids(self, question_ids: Iterable[str]) -> Dict[str, QuestionDB]:
        ids = list(set(question_ids))
        if not ids:
            return {}
        return {q.id: q for q in self.db.query(QuestionDB).filter(QuestionDB.id.in_(ids)).all()}

    def get_by_station(self, station_id: str) -> List[QuestionDB]:
        return (
            self.db.query(QuestionDB)
            .filter(QuestionDB.station_id == station_id)
            .order_by(QuestionDB.order_index)
            .all()
        )

    def update(self, question: QuestionDB, data: Dict[str, Any]) -> QuestionDB:
        if "type" in data:
            data = {**data, "type": normalize_question_type(data["type"])}
        _apply_updates(question, data, self.FIELDS)
        self.db.flush()
        return question

    def get_with_legacy_options(self) -> List[QuestionDB]:
        # Un None guardado en la columna JSON queda como 'null', no como NULL SQL
        candidates = self.db.query(QuestionDB).filter(QuestionDB.legacy_options.isnot(None)).all()
        return [question for question in candidates if question.legacy_options]


class OptionRepository:
    """Repository for question option operations"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, question_id: str, text: str, is_correct: bool = False, order_index: int = 0) -> OptionDB:
        option = OptionDB(
            question_id=question_id,
            text=text,
            is_correct=bool(is_correct),
            order_index=order_index,
        )
        self.db.add(option)
        self.db.flush()
        return option

    def get_by_question(self, question_id: str) -> List[OptionDB]:
        return (
            self.db.query(OptionDB)
            .filter(OptionDB.question_id == question_id)
            .order_by(OptionDB.order_index)
            .all()
        )

    def delete_for_question(self, question: QuestionDB) -> int:
        """Removes every option of the question (delete-orphan cascade)"""
        deleted = len(question.options)
        question.options.clear()
        self.db.flush()
        return deleted


class AssignmentRepository:
    """Repository for student exam assignments"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        student_id: str,
        exam_id: str,
        evaluator_id: Optional[str],
        identification_number: Optional[str] = None,
    ) -> StudentExamDB:
        assignment = StudentExamDB(
            student_id=student_id,
            exam_id=exam_id,
            evaluator_id=evaluator_id,
            status=AssignmentStatus.PENDIENTE.value,
            started_at=None,
            identification_number=identification_number,
        )
        self.db.add(assignment)
        self.db.flush()
        return assignment

    def get_by_id(self, assignment_id: str) -> Optional[StudentExamDB]:
        return self.db.get(StudentExamDB, assignment_id)

    def get_for_update(self, assignment_id: str) -> Optional[StudentExamDB]:
        """
        Loads the assignment with SELECT ... FOR UPDATE so two evaluator
        requests on the same assignment serialize on PostgreSQL.
        """
        stmt = select(StudentExamDB).where(StudentExamDB.id == assignment_id).with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_detailed(self, assignment_id: str) -> Optional[StudentExamDB]:
        return (
            self.db.query(StudentExamDB)
            .options(
                selectinload(StudentExamDB.student),
                selectinload(StudentExamDB.exam)
                .selectinload(ExamDB.stations)
                .selectinload(StationDB.questions)
                .selectinload(QuestionDB.options),
                selectinload(StudentExamDB.answers),
                selectinload(StudentExamDB.station_results),
            )
            .filter(StudentExamDB.id == assignment_id)
            .first()
        )

    def exists_for(self, student_id: str, exam_id: str) -> bool:
        return self.db.query(
            exists().where(
                StudentExamDB.student_id == student_id,
                StudentExamDB.exam_id == exam_id,
            )
        ).scalar()

    def get_by_evaluator(self, evaluator_id: str, status: Optional[str] = None) -> List[StudentExamDB]:
        query = (
            self.db.query(StudentExamDB)
            .join(ExamDB, StudentExamDB.exam_id == ExamDB.id)
            .options(selectinload(StudentExamDB.exam), selectinload(StudentExamDB.student))
            .filter(StudentExamDB.evaluator_id == evaluator_id)
        )
        if status:
            query = query.filter(StudentExamDB.status == status)
        return query.order_by(StudentExamDB.started_at.is_(None).desc(), desc(StudentExamDB.started_at), ExamDB.title).all()

    def get_by_exam(self, exam_id: str) -> List[StudentExamDB]:
        return (
            self.db.query(StudentExamDB)
            .join(StudentDB, StudentExamDB.student_id == StudentDB.id)
            .options(selectinload(StudentExamDB.student))
            .filter(StudentExamDB.exam_id == exam_id)
            .order_by(StudentDB.last_name, StudentDB.first_name)
            .all()
        )

    def _on_day(self, query, day: date):
        start, end = day_bounds(day)
        return (
            query.join(ExamDB, StudentExamDB.exam_id == ExamDB.id)
            .filter(ExamDB.application_date >= start)
            .filter(ExamDB.application_date < end)
        )

    def find_identification_number(self, student_id: str, day: date) -> Optional[str]:
        """Identification number already used by the student on that day, if any"""
        query = self.db.query(StudentExamDB.identification_number).filter(
            StudentExamDB.student_id == student_id,
            StudentExamDB.identification_number.isnot(None),
        )
        row = self._on_day(query, day).first()
        return row[0] if row else None

    def find_holder_of_number(self, day: date, number: str, exclude_student_id: str) -> Optional[StudentDB]:
        """Another student holding `number` on that day, if any"""
        query = (
            self.db.query(StudentExamDB)
            .options(selectinload(StudentExamDB.student))
            .filter(
                StudentExamDB.identification_number == number,
                StudentExamDB.student_id != exclude_student_id,
            )
        )
        assignment = self._on_day(query, day).first()
        return assignment.student if assignment else None

    def get_for_student_on_day(self, student_id: str, day: date) -> List[StudentExamDB]:
        query = self.db.query(StudentExamDB).filter(StudentExamDB.student_id == student_id)
        return self._on_day(query, day).all()

    def get_students_on_day(self, day: date) -> List[Tuple[StudentDB, int, Optional[str]]]:
        """Students with exams on that day, their exam count and identification number"""
        query = (
            self.db.query(
                StudentDB,
                func.count(StudentExamDB.id),
                func.max(StudentExamDB.identification_number),
            )
            .join(StudentExamDB, StudentExamDB.student_id == StudentDB.id)
        )
        rows = (
            self._on_day(query, day)
            .group_by(StudentDB.id)
            .order_by(StudentDB.last_name, StudentDB.first_name)
            .all()
        )
        return [(student, int(count), number) for student, count, number in rows]

    def start(self, assignment: StudentExamDB) -> StudentExamDB:
        """Pendiente -> En Progreso, stamping the start time"""
        assignment.status = AssignmentStatus.EN_PROGRESO.value
        assignment.started_at = utc_now()
        self.db.flush()
        return assignment

    def complete(self, assignment: StudentExamDB, score: float, remarks: Optional[str] = None) -> StudentExamDB:
        """Marks the assignment Completado with its aggregate score"""
        now = utc_now()
        if assignment.started_at is None:
            assignment.started_at = now
        assignment.status = AssignmentStatus.COMPLETADO.value
        assignment.finished_at = now
        assignment.score = score
        if remarks is not None:
            assignment.remarks = remarks
        self.db.flush()
        return assignment

    def set_identification_number(self, assignments: Iterable[StudentExamDB], number: str) -> int:
        updated = 0
        for assignment in assignments:
            assignment.identification_number = number
            updated += 1
        self.db.flush()
        return updated

    def count_by_status(self) -> Dict[str, int]:
        rows = (
            self.db.query(StudentExamDB.status, func.count(StudentExamDB.id))
            .group_by(StudentExamDB.status)
            .all()
        )
        return {status: int(count) for status, count in rows}


class AnswerRepository:
    """Repository for student answers, keyed by (assignment, question)"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get(self, assignment_id: str, question_id: str) -> Optional[StudentAnswerDB]:
        return (
            self.db.query(StudentAnswerDB)
            .filter(
                StudentAnswerDB.student_exam_id == assignment_id,
                StudentAnswerDB.question_id == question_id,
            )
            .first()
        )

    def upsert(
        self,
        assignment_id: str,
        question_id: str,
        answer: Optional[str],
        points: float = 0.0,
        comment: Optional[str] = None,
    ) -> Tuple[StudentAnswerDB, bool]:
        """
        Inserts the answer or updates the existing one for the pair.

        Returns:
            (row, created)
        """
        row = self.get(assignment_id, question_id)
        created = row is None
        if created:
            row = StudentAnswerDB(student_exam_id=assignment_id, question_id=question_id)
            self.db.add(row)
        row.answer = answer
        row.points = points
        row.comment = comment
        row.answered_at = utc_now()
        self.db.flush()
        return row, created

    def get_by_assignment(self, assignment_id: str) -> List[StudentAnswerDB]:
        return (
            self.db.query(StudentAnswerDB)
            .filter(StudentAnswerDB.student_exam_id == assignment_id)
            .all()
        )

    def count_by_assignment(self, assignment_id: str) -> int:
        return (
            self.db.query(StudentAnswerDB)
            .filter(StudentAnswerDB.student_exam_id == assignment_id)
            .count()
        )


class StationResultRepository:
    """Repository for per-station results, keyed by (assignment, station)"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get(self, assignment_id: str, station_id: str) -> Optional[StationResultDB]:
        return (
            self.db.query(StationResultDB)
            .filter(
                StationResultDB.student_exam_id == assignment_id,
                StationResultDB.station_id == station_id,
            )
            .first()
        )

    def upsert(
        self,
        assignment_id: str,
        station_id: str,
        score: float,
        remarks: Optional[str] = None,
    ) -> Tuple[StationResultDB, bool]:
        row = self.get(assignment_id, station_id)
        created = row is None
        if created:
            row = StationResultDB(student_exam_id=assignment_id, station_id=station_id)
            self.db.add(row)
        row.score = score
        row.remarks = remarks
        row.evaluated_at = utc_now()
        self.db.flush()
        return row, created

    def get_by_assignment(self, assignment_id: str) -> List[StationResultDB]:
        return (
            self.db.query(StationResultDB)
            .filter(StationResultDB.student_exam_id == assignment_id)
            .all()
        )

    def sum_scores(self, assignment_id: str) -> float:
        total = (
            self.db.query(func.coalesce(func.sum(StationResultDB.score), 0.0))
            .filter(StationResultDB.student_exam_id == assignment_id)
            .scalar()
        )
        return float(total or 0.0)

    def count_by_assignment(self, assignment_id: str) -> int:
        return (
            self.db.query(StationResultDB)
            .filter(StationResultDB.student_exam_id == assignment_id)
            .count()
        )


class StatsRepository:
    """Entity counts for the admin dashboard"""

    MODELS = {
        "hospitals": HospitalDB,
        "students": StudentDB,
        "evaluators": EvaluatorDB,
        "exams": ExamDB,
        "groups": GroupDB,
        "stations": StationDB,
        "questions": QuestionDB,
        "answers": StudentAnswerDB,
    }

    def __init__(self, db_session: Session):
        self.db = db_session

    def counts(self) -> Dict[str, int]:
        return {name: self.db.query(model).count() for name, model in self.MODELS.items()}
