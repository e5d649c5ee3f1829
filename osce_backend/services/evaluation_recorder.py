"""
Evaluation Recorder - respuestas, resultados por estación y cierre de asignaciones

Flujo de un evaluador sobre una asignación (alumno_examen):

    Pendiente --start_assignment--> En Progreso --finalize_station--> Completado

- record_answers: upsert atómico de un lote de respuestas por (asignación, pregunta)
- finalize_station: respuestas + resultado de estación + cierre, todo o nada
- compute_results: vista de lectura con puntajes por estación y totales

El puntaje total de una asignación siempre se deriva de la suma de sus
StationResult; un puntaje total enviado por el cliente se ignora.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..api.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.metrics import answers_recorded_total, stations_finalized_total
from ..database.models import QuestionDB, StudentAnswerDB, StudentExamDB
from ..database.repositories import (
    AnswerRepository,
    AssignmentRepository,
    QuestionRepository,
    StationRepository,
    StationResultRepository,
)
from ..database.transaction import transaction
from ..models.enums import AssignmentStatus

logger = logging.getLogger(__name__)

SCORE_TOLERANCE = 1e-6


def serialize_answer(answer: Any) -> Optional[str]:
    """Texto guardado para una respuesta (listas y objetos como JSON)."""
    if answer is None:
        return None
    if isinstance(answer, str):
        return answer
    if isinstance(answer, (list, dict)):
        return json.dumps(answer, ensure_ascii=False)
    return str(answer)


def validate_answer_items(items: Any) -> List[Dict[str, Any]]:
    """
    Valida la forma de un lote de respuestas antes de escribir nada.

    Raises:
        ValidationError: lote vacío, ítem que no es objeto o sin question_id
    """
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("At least one answer is required", {"field": "answers"})

    normalized = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"Answer at position {position} is malformed", {"position": position})
        question_id = item.get("question_id")
        if not question_id:
            raise ValidationError(
                f"Answer at position {position} is missing question_id",
                {"field": "question_id", "position": position},
            )
        points = item.get("points")
        try:
            points = 0.0 if points is None else float(points)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Answer at position {position} has invalid points",
                {"field": "points", "position": position},
            ) from e
        normalized.append({
            "question_id": str(question_id),
            "answer": serialize_answer(item.get("answer")),
            "points": points,
            "comment": item.get("comment"),
        })
    return normalized


def correct_answer_for(question: QuestionDB) -> Optional[str]:
    """Opciones correctas (unidas por coma) o la respuesta de referencia"""
    correct = [option.text for option in question.options if option.is_correct]
    if correct:
        return ", ".join(correct)
    return question.reference_answer


class EvaluationRecorder:
    """
    Registra la evaluación de un alumno.

    Uso:
        recorder = EvaluationRecorder(db)
        recorder.start_assignment(assignment_id)
        recorder.finalize_station(assignment_id, station_id, answers=[...], station_score=8)
        results = recorder.compute_results(assignment_id)
    """

    def __init__(self, db: Session):
        self.db = db
        self.assignments = AssignmentRepository(db)
        self.answers = AnswerRepository(db)
        self.results = StationResultRepository(db)
        self.questions = QuestionRepository(db)
        self.stations = StationRepository(db)

    def record_answers(self, assignment_id: str, items: List[Dict[str, Any]]) -> List[StudentAnswerDB]:
        """
        Upsert de un lote de respuestas, todo o nada.

        Raises:
            ValidationError: lote vacío o mal formado, pregunta de otro examen
            NotFoundError: asignación o pregunta inexistente
        """
        normalized = validate_answer_items(items)

        with transaction(self.db, "Record answers"):
            assignment = self._get_assignment_for_update(assignment_id)
            self._check_questions(assignment, normalized)
            rows = self._upsert_answers(assignment.id, normalized)

        answers_recorded_total.inc(len(rows))
        logger.info(
            f"Recorded {len(rows)} answers for assignment {assignment_id}",
            extra={"assignment_id": assignment_id, "answers": len(rows)}
        )
        return rows

    def finalize_station(
        self,
        assignment_id: str,
        station_id: str,
        answers: List[Dict[str, Any]],
        station_score: Optional[float] = None,
        station_remarks: Optional[str] = None,
        exam_aggregate_score: Optional[float] = None,
        exam_remarks: Optional[str] = None,
    ) -> StudentExamDB:
        """
        Cierra una estación: respuestas, resultado de la estación y la asignación.

        1. Upsert de todas las respuestas
        2. Upsert del resultado (asignación, estación); sin station_score se usa
           la suma de los puntos de las respuestas de esa estación
        3. La asignación pasa a Completado con fecha de fin y puntaje total
           igual a la suma de sus resultados por estación

        Finalizar de nuevo una estación corrige su resultado y recalcula el total.

        Raises:
            ValidationError: faltan IDs, lote vacío, puntaje negativo,
                estación de otro examen
            NotFoundError: asignación, estación o pregunta inexistente
        """
        if not assignment_id:
            raise ValidationError("assignment_id is required", {"field": "assignment_id"})
        if not station_id:
            raise ValidationError("station_id is required", {"field": "station_id"})
        normalized = validate_answer_items(answers)
        if station_score is not None and station_score < 0:
            raise ValidationError("Station score cannot be negative", {"field": "station_score"})

        with transaction(self.db, "Finalize station"):
            assignment = self._get_assignment_for_update(assignment_id)

            station = self.stations.get_by_id(station_id)
            if station is None:
                raise NotFoundError("Station", station_id)
            if station.exam_id != assignment.exam_id:
                raise ValidationError(
                    "Station does not belong to the assigned exam",
                    {"station_id": station_id, "exam_id": assignment.exam_id},
                )

            self._check_questions(assignment, normalized)
            self._upsert_answers(assignment.id, normalized)

            if station_score is None:
                station_question_ids = {question.id for question in station.questions}
                station_score = sum(
                    row.points or 0.0
                    for row in self.answers.get_by_assignment(assignment.id)
                    if row.question_id in station_question_ids
                )

            self.results.upsert(assignment.id, station.id, float(station_score), station_remarks)

            aggregate = self.results.sum_scores(assignment.id)
            if exam_aggregate_score is not None and abs(float(exam_aggregate_score) - aggregate) > SCORE_TOLERANCE:
                logger.warning(
                    f"Ignoring client aggregate score {exam_aggregate_score} for assignment "
                    f"{assignment.id}; derived score is {aggregate}",
                    extra={"assignment_id": assignment.id}
                )
            self.assignments.complete(assignment, aggregate, exam_remarks)

        stations_finalized_total.inc()
        answers_recorded_total.inc(len(normalized))
        logger.info(
            f"Station {station_id} finalized for assignment {assignment_id}",
            extra={"assignment_id": assignment_id, "station_id": station_id,
                   "station_score": station_score, "aggregate_score": aggregate}
        )
        return assignment

    def start_assignment(self, assignment_id: str) -> StudentExamDB:
        """
        Pendiente -> En Progreso.

        Iniciar una asignación ya en progreso no cambia nada; una completada
        no puede volver a iniciarse.
        """
        with transaction(self.db, "Start assignment"):
            assignment = self._get_assignment_for_update(assignment_id)

            if assignment.status == AssignmentStatus.COMPLETADO.value:
                raise ConflictError(
                    "Assignment is already completed",
                    {"assignment_id": assignment_id, "status": assignment.status},
                )
            if assignment.status == AssignmentStatus.PENDIENTE.value:
                self.assignments.start(assignment)
                logger.info(f"Assignment started: {assignment_id}", extra={"assignment_id": assignment_id})

        return assignment

    def finish_assignment(
        self,
        assignment_id: str,
        remarks: Optional[str] = None,
        score: Optional[float] = None,
    ) -> StudentExamDB:
        """Cierra la asignación sin pasar por una estación (acción "finalizar")."""
        with transaction(self.db, "Finish assignment"):
            assignment = self._get_assignment_for_update(assignment_id)
            aggregate = self.results.sum_scores(assignment.id)
            if score is not None and abs(float(score) - aggregate) > SCORE_TOLERANCE:
                logger.warning(
                    f"Ignoring client score {score} for assignment {assignment_id}; derived score is {aggregate}",
                    extra={"assignment_id": assignment_id}
                )
            self.assignments.complete(assignment, aggregate, remarks)

        logger.info(f"Assignment finished: {assignment_id}", extra={"assignment_id": assignment_id})
        return assignment

    def compute_results(self, assignment_id: str) -> Dict[str, Any]:
        """
        Vista de resultados de una asignación (solo lectura).

        Returns:
            Dict con datos de la asignación, estaciones (puntaje máximo y
            obtenido, preguntas con respuesta, puntos y respuesta correcta)
            y los totales obtenido/posible
        """
        assignment = self.assignments.get_detailed(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)

        answers_by_question = {answer.question_id: answer for answer in assignment.answers}
        results_by_station = {result.station_id: result for result in assignment.station_results}

        stations = []
        total_score = 0.0
        max_total_score = 0.0
        for station in sorted(assignment.exam.stations, key=lambda s: s.order_index):
            result = results_by_station.get(station.id)
            questions = []
            for question in sorted(station.questions, key=lambda q: q.order_index):
                answer = answers_by_question.get(question.id)
                questions.append({
                    "question_id": question.id,
                    "text": question.text,
                    "type": question.type,
                    "points": question.points,
                    "answer": answer.answer if answer else None,
                    "awarded_points": answer.points if answer else None,
                    "comment": answer.comment if answer else None,
                    "correct_answer": correct_answer_for(question),
                })

            max_score = station.max_score or 0.0
            max_total_score += max_score
            if result is not None:
                total_score += result.score or 0.0

            stations.append({
                "station_id": station.id,
                "title": station.title,
                "order_index": station.order_index,
                "max_score": max_score,
                "score": result.score if result else None,
                "remarks": result.remarks if result else None,
                "finalized": result is not None,
                "questions": questions,
            })

        return {
            "assignment_id": assignment.id,
            "status": assignment.status,
            "identification_number": assignment.identification_number,
            "student": {
                "id": assignment.student.id,
                "first_name": assignment.student.first_name,
                "last_name": assignment.student.last_name,
            },
            "exam": {
                "id": assignment.exam.id,
                "title": assignment.exam.title,
                "application_date": assignment.exam.application_date,
            },
            "evaluator_id": assignment.evaluator_id,
            "started_at": assignment.started_at,
            "finished_at": assignment.finished_at,
            "remarks": assignment.remarks,
            "stations": stations,
            "total_score": total_score,
            "max_total_score": max_total_score,
        }

    def list_assignments_for_evaluator(self, evaluator_id: str, status: Optional[str] = None) -> List[StudentExamDB]:
        if status is not None and status not in {s.value for s in AssignmentStatus}:
            raise ValidationError(f"Invalid assignment status: {status}", {"field": "status"})
        return self.assignments.get_by_evaluator(evaluator_id, status)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _get_assignment_for_update(self, assignment_id: str) -> StudentExamDB:
        assignment = self.assignments.get_for_update(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        return assignment

    def _check_questions(self, assignment: StudentExamDB, items: List[Dict[str, Any]]) -> None:
        questions = self.questions.get_by_ids(item["question_id"] for item in items)
        for item in items:
            question = questions.get(item["question_id"])
            if question is None:
                raise NotFoundError("Question", item["question_id"])
            if question.station.exam_id != assignment.exam_id:
                raise ValidationError(
                    "Question does not belong to the assigned exam",
                    {"question_id": question.id, "exam_id": assignment.exam_id},
                )

    def _upsert_answers(self, assignment_id: str, items: List[Dict[str, Any]]) -> List[StudentAnswerDB]:
        rows = []
        for item in items:
            row, _ = self.answers.upsert(
                assignment_id,
                item["question_id"],
                answer=item["answer"],
                points=item["points"],
                comment=item["comment"],
            )
            rows.append(row)
        return rows
