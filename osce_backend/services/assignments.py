"""
Asignación de exámenes a alumnos y números de identificación anónimos.

El número de identificación reemplaza la identidad del alumno frente al
evaluador. Es único por día: un alumno conserva el mismo número en todos
los exámenes que rinde en una fecha, y dos alumnos no pueden compartirlo.
"""
import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..api.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.cache import get_cache
from ..core.dates import parse_day
from ..database.models import StudentExamDB
from ..database.repositories import (
    AssignmentRepository,
    EvaluatorRepository,
    ExamRepository,
    StudentRepository,
)
from ..database.transaction import transaction

logger = logging.getLogger(__name__)


class AssignmentService:
    """Alta de asignaciones alumno <-> examen"""

    def __init__(self, db: Session):
        self.db = db
        self.assignments = AssignmentRepository(db)
        self.students = StudentRepository(db)
        self.exams = ExamRepository(db)
        self.evaluators = EvaluatorRepository(db)

    def assign_exam(
        self,
        student_id: Optional[str],
        exam_id: Optional[str],
        evaluator_id: Optional[str],
    ) -> StudentExamDB:
        """
        Asigna un examen a un alumno con el evaluador que lo tomará.

        La asignación nace Pendiente y sin fecha de inicio. Si el alumno ya
        tiene número de identificación para otro examen del mismo día, lo reutiliza.

        Raises:
            ValidationError: falta alguno de los tres IDs
            NotFoundError: alumno, examen o evaluador inexistente
            ConflictError: el alumno ya tiene ese examen asignado
        """
        missing = [
            name for name, value in
            (("student_id", student_id), ("exam_id", exam_id), ("evaluator_id", evaluator_id))
            if not value
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"fields": missing})

        with transaction(self.db, "Assign exam to student"):
            if self.students.get_by_id(student_id) is None:
                raise NotFoundError("Student", student_id)
            exam = self.exams.get_by_id(exam_id)
            if exam is None:
                raise NotFoundError("Exam", exam_id)
            if self.evaluators.get_by_id(evaluator_id) is None:
                raise NotFoundError("Evaluator", evaluator_id)

            if self.assignments.exists_for(student_id, exam_id):
                raise ConflictError(
                    "Student already has this exam assigned",
                    {"student_id": student_id, "exam_id": exam_id},
                )

            identification_number = None
            if exam.application_date is not None:
                identification_number = self.assignments.find_identification_number(
                    student_id, exam.application_date.date()
                )

            assignment = self.assignments.create(
                student_id=student_id,
                exam_id=exam_id,
                evaluator_id=evaluator_id,
                identification_number=identification_number,
            )

        get_cache().invalidate_pattern(r"^exams:")

        logger.info(
            f"Exam {exam_id} assigned to student {student_id}",
            extra={"assignment_id": assignment.id, "evaluator_id": evaluator_id,
                   "identification_number": identification_number}
        )
        return assignment

    def set_identification_number(self, student_id: str, day: Any, number: Any) -> int:
        """
        Fija el número de identificación de un alumno para un día.

        Returns:
            Cantidad de asignaciones actualizadas

        Raises:
            ValidationError: fecha o número ausentes/inválidos
            NotFoundError: alumno inexistente
            ConflictError: otro alumno ya tiene ese número ese día
        """
        if not student_id:
            raise ValidationError("student_id is required", {"field": "student_id"})
        exam_day = parse_day(day)
        if number is None or not str(number).strip():
            raise ValidationError("Identification number is required", {"field": "identification_number"})
        number = str(number).strip()

        with transaction(self.db, "Set identification number"):
            if self.students.get_by_id(student_id) is None:
                raise NotFoundError("Student", student_id)

            holder = self.assignments.find_holder_of_number(exam_day, number, exclude_student_id=student_id)
            if holder is not None:
                raise ConflictError(
                    f"Identification number {number} is already used on {exam_day.isoformat()}",
                    {
                        "identification_number": number,
                        "date": exam_day.isoformat(),
                        "student_id": holder.id,
                        "student_name": f"{holder.first_name} {holder.last_name}",
                    },
                )

            updated = self.assignments.set_identification_number(
                self.assignments.get_for_student_on_day(student_id, exam_day), number
            )

        logger.info(
            f"Identification number set for student {student_id} on {exam_day.isoformat()}",
            extra={"student_id": student_id, "updated": updated}
        )
        return updated

    def students_for_date(self, day: Any) -> List[Dict[str, Any]]:
        """
        Alumnos que rinden en el día, con cuántos exámenes tienen y su número
        de identificación (None si todavía no se fijó).
        """
        exam_day = parse_day(day)
        return [
            {
                "student_id": student.id,
                "first_name": student.first_name,
                "last_name": student.last_name,
                "registration_number": student.registration_number,
                "exam_count": exam_count,
                "identification_number": number,
            }
            for student, exam_count, number in self.assignments.get_students_on_day(exam_day)
        ]

    def exam_dates(self) -> List[Dict[str, Any]]:
        """Días con exámenes ACTIVO y cuántos exámenes hay en cada uno"""
        counts = Counter(value.date() for value in self.exams.get_active_dates())
        return [
            {"date": day.isoformat(), "exam_count": count}
            for day, count in sorted(counts.items())
        ]
