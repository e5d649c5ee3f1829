"""
Servicios de entidades de referencia: alumnos, evaluadores, hospitales y grupos,
más el perfil de la cuenta logueada.

Validan campos requeridos y referencias, corren cada escritura en una
transacción e invalidan las claves de cache de los listados afectados.
"""
import logging
from typing import Any, Dict, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from ..api.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.cache import get_cache
from ..core.constants import DEFAULT_EVALUATOR_PASSWORD
from ..core.security import get_password_hash
from ..database.models import EvaluatorDB, GroupDB, HospitalDB, StudentDB, UserDB
from ..database.repositories import (
    EvaluatorRepository,
    GroupRepository,
    HospitalRepository,
    StudentRepository,
    UserRepository,
)
from ..database.transaction import transaction
from ..models.enums import UserRole

logger = logging.getLogger(__name__)


def _require(data: Dict[str, Any], *fields: str) -> None:
    missing = [field for field in fields if data.get(field) is None or not str(data[field]).strip()]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"fields": missing})


def normalize_email(email: str) -> str:
    try:
        return validate_email(email, check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {email}", {"field": "email", "reason": str(e)}) from e


class StudentService:

    def __init__(self, db: Session):
        self.db = db
        self.students = StudentRepository(db)
        self.hospitals = HospitalRepository(db)

    def create(self, data: Dict[str, Any]) -> StudentDB:
        _require(data, "first_name", "last_name", "registration_number")
        with transaction(self.db, "Create student"):
            self._check_references(data)
            if self.students.get_by_registration_number(data["registration_number"]):
                raise ConflictError(
                    "A student with this registration number already exists",
                    {"registration_number": data["registration_number"]},
                )
            student = self.students.create(**data)

        logger.info(f"Student created: {student.id}", extra={"student_id": student.id})
        return student

    def update(self, student_id: str, data: Dict[str, Any]) -> StudentDB:
        with transaction(self.db, "Update student"):
            if self.students.get_by_id(student_id) is None:
                raise NotFoundError("Student", student_id)
            self._check_references(data)
            number = data.get("registration_number")
            if number:
                other = self.students.get_by_registration_number(number)
                if other is not None and other.id != student_id:
                    raise ConflictError(
                        "A student with this registration number already exists",
                        {"registration_number": number},
                    )
            student = self.students.update(student_id, data)
        return student

    def delete(self, student_id: str) -> None:
        with transaction(self.db, "Delete student"):
            if not self.students.delete(student_id):
                raise NotFoundError("Student", student_id)
        get_cache().invalidate_pattern(r"^(groups|exams):")
        logger.info(f"Student deleted: {student_id}", extra={"student_id": student_id})

    def _check_references(self, data: Dict[str, Any]) -> None:
        hospital_id = data.get("hospital_id")
        if hospital_id and self.hospitals.get_by_id(hospital_id) is None:
            raise NotFoundError("Hospital", hospital_id)


class EvaluatorService:

    def __init__(self, db: Session):
        self.db = db
        self.evaluators = EvaluatorRepository(db)
        self.users = UserRepository(db)

    def create(self, data: Dict[str, Any]) -> EvaluatorDB:
        """
        Crea el evaluador y, si no existe, su usuario de login (rol evaluador,
        contraseña por defecto hasheada) en la misma transacción.
        """
        _require(data, "first_name", "last_name", "email")
        email = normalize_email(data["email"])

        with transaction(self.db, "Create evaluator"):
            if self.evaluators.get_by_email(email) is not None:
                raise ConflictError("An evaluator with this email already exists", {"email": email})

            user = self.users.get_by_email(email)
            if user is None:
                user = self.users.create(
                    name=f"{data['first_name']} {data['last_name']}",
                    email=email,
                    hashed_password=get_password_hash(DEFAULT_EVALUATOR_PASSWORD),
                    role=UserRole.EVALUADOR.value,
                )
                logger.info(f"User account created for evaluator {email}", extra={"user_id": user.id})

            evaluator = self.evaluators.create(user_id=user.id, **{**data, "email": email})

        get_cache().invalidate_pattern(r"^evaluators:")
        logger.info(f"Evaluator created: {evaluator.id}", extra={"evaluator_id": evaluator.id})
        return evaluator

    def update(self, evaluator_id: str, data: Dict[str, Any]) -> EvaluatorDB:
        if data.get("email"):
            data = {**data, "email": normalize_email(data["email"])}

        with transaction(self.db, "Update evaluator"):
            if self.evaluators.get_by_id(evaluator_id) is None:
                raise NotFoundError("Evaluator", evaluator_id)
            if data.get("email"):
                other = self.evaluators.get_by_email(data["email"])
                if other is not None and other.id != evaluator_id:
                    raise ConflictError("An evaluator with this email already exists", {"email": data["email"]})
            evaluator = self.evaluators.update(evaluator_id, data)

        get_cache().invalidate_pattern(r"^(evaluators|exams):")
        return evaluator

    def delete(self, evaluator_id: str) -> None:
        """
        Raises:
            NotFoundError: el evaluador no existe
            ConflictError: el evaluador tiene exámenes asignados
        """
        with transaction(self.db, "Delete evaluator"):
            if self.evaluators.get_by_id(evaluator_id) is None:
                raise NotFoundError("Evaluator", evaluator_id)
            if self.evaluators.has_assigned_exams(evaluator_id) or self.evaluators.has_taken_exams(evaluator_id):
                raise ConflictError(
                    "Evaluator has assigned exams and cannot be deleted",
                    {"evaluator_id": evaluator_id},
                )
            self.evaluators.delete(evaluator_id)

        get_cache().invalidate_pattern(r"^evaluators:")
        logger.info(f"Evaluator deleted: {evaluator_id}", extra={"evaluator_id": evaluator_id})


class AccountService:
    """Perfil del usuario logueado: nombre, email y contraseña"""

    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)
        self.evaluators = EvaluatorRepository(db)

    def update_profile(
        self,
        user_id: str,
        name: Optional[str],
        email: Optional[str],
        new_password: Optional[str] = None,
    ) -> UserDB:
        """
        Actualiza nombre y email y, si viene, la contraseña (hasheada con bcrypt).

        El email del evaluador vinculado se mantiene igual al del usuario.

        Raises:
            ValidationError: falta nombre o email, o el email es inválido
            NotFoundError: usuario inexistente
            ConflictError: el email ya pertenece a otra cuenta
        """
        _require({"name": name, "email": email}, "name", "email")
        email = normalize_email(email)

        with transaction(self.db, "Update user profile"):
            user = self.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User", user_id)

            other = self.users.get_by_email(email)
            if other is not None and other.id != user.id:
                raise ConflictError("Another account already uses this email", {"email": email})

            evaluator = self.evaluators.get_by_user_id(user.id)
            if evaluator is not None and evaluator.email != email:
                taken = self.evaluators.get_by_email(email)
                if taken is not None and taken.id != evaluator.id:
                    raise ConflictError("An evaluator with this email already exists", {"email": email})
                self.evaluators.update(evaluator.id, {"email": email})

            hashed_password = get_password_hash(new_password) if new_password else None
            self.users.update_profile(user, name.strip(), email, hashed_password)

        if evaluator is not None:
            get_cache().invalidate_pattern(r"^evaluators:")
        logger.info(
            f"Profile updated for user {user_id}",
            extra={"user_id": user_id, "password_changed": hashed_password is not None}
        )
        return user


class HospitalService:

    def __init__(self, db: Session):
        self.db = db
        self.hospitals = HospitalRepository(db)

    def create(self, data: Dict[str, Any]) -> HospitalDB:
        _require(data, "name")
        with transaction(self.db, "Create hospital"):
            hospital = self.hospitals.create(**data)
        get_cache().invalidate_pattern(r"^hospitals:")
        return hospital

    def update(self, hospital_id: str, data: Dict[str, Any]) -> HospitalDB:
        if "name" in data and data["name"] is not None:
            _require(data, "name")
        with transaction(self.db, "Update hospital"):
            hospital = self.hospitals.update(hospital_id, data)
            if hospital is None:
                raise NotFoundError("Hospital", hospital_id)
        get_cache().invalidate_pattern(r"^hospitals:")
        return hospital

    def delete(self, hospital_id: str) -> None:
        with transaction(self.db, "Delete hospital"):
            if not self.hospitals.delete(hospital_id):
                raise NotFoundError("Hospital", hospital_id)
        get_cache().invalidate_pattern(r"^hospitals:")
        logger.info(f"Hospital deleted: {hospital_id}", extra={"hospital_id": hospital_id})


class GroupService:

    def __init__(self, db: Session):
        self.db = db
        self.groups = GroupRepository(db)
        self.students = StudentRepository(db)

    def create(self, data: Dict[str, Any]) -> GroupDB:
        _require(data, "name")
        with transaction(self.db, "Create group"):
            group = self.groups.create(**data)
        get_cache().invalidate_pattern(r"^groups:")
        return group

    def update(self, group_id: str, data: Dict[str, Any]) -> GroupDB:
        if "name" in data and data["name"] is not None:
            _require(data, "name")
        with transaction(self.db, "Update group"):
            group = self.groups.update(group_id, data)
            if group is None:
                raise NotFoundError("Group", group_id)
        get_cache().invalidate_pattern(r"^groups:")
        return group

    def delete(self, group_id: str) -> None:
        with transaction(self.db, "Delete group"):
            if self.groups.get_by_id(group_id) is None:
                raise NotFoundError("Group", group_id)
            members = self.groups.count_students(group_id)
            if members:
                raise ConflictError(
                    "Group has students assigned and cannot be deleted",
                    {"group_id": group_id, "student_count": members},
                )
            self.groups.delete(group_id)
        get_cache().invalidate_pattern(r"^groups:")

    def add_student(self, group_id: str, student_id: Optional[str]) -> None:
        if not student_id:
            raise ValidationError("student_id is required", {"field": "student_id"})
        with transaction(self.db, "Add student to group"):
            group, student = self._load(group_id, student_id)
            if not self.groups.add_student(group, student):
                raise ConflictError(
                    "Student already belongs to this group",
                    {"group_id": group_id, "student_id": student_id},
                )
        get_cache().invalidate_pattern(r"^groups:")

    def remove_student(self, group_id: str, student_id: str) -> None:
        with transaction(self.db, "Remove student from group"):
            group, student = self._load(group_id, student_id)
            if not self.groups.remove_student(group, student):
                raise NotFoundError("Group member", student_id)
        get_cache().invalidate_pattern(r"^groups:")

    def _load(self, group_id: str, student_id: str):
        group = self.groups.get_by_id(group_id)
        if group is None:
            raise NotFoundError("Group", group_id)
        student = self.students.get_by_id(student_id)
        if student is None:
            raise NotFoundError("Student", student_id)
        return group, student
