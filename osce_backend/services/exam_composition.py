"""
Exam Composition Service - árbol Examen -> Estación -> Pregunta -> Opción

Crea, actualiza, duplica y elimina exámenes completos. Toda operación de
escritura que toca más de una fila corre dentro de una única transacción:
si algo falla a mitad de camino no queda ningún registro parcial.

Uso:
    from osce_backend.services.exam_composition import ExamCompositionService

    service = ExamCompositionService(db)
    exam = service.create_exam("Cardio", stations=[{"title": "ECG", "questions": [...]}])
    new_id = service.duplicate_exam(exam.id, "2025-03-10T09:00")
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..api.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.cache import get_cache
from ..core.dates import format_title_date, parse_application_date
from ..core.metrics import exams_duplicated_total
from ..database.models import ExamDB, QuestionDB, StationDB
from ..database.repositories import (
    EvaluatorRepository,
    ExamRepository,
    OptionRepository,
    QuestionRepository,
    StationRepository,
    normalize_exam_state,
    normalize_question_type,
)
from ..database.transaction import transaction
from ..models.enums import ExamState

logger = logging.getLogger(__name__)

# Claves de cache que dependen de los exámenes
EXAM_CACHE_PATTERN = r"^(exams|evaluators):"


def coerce_options(raw_options: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    """
    Normaliza opciones en cualquiera de los formatos aceptados.

    Acepta strings sueltos (formato embebido heredado) u objetos con
    text/texto, is_correct/es_correcta/correcta y order_index/orden.
    El orden de la lista define order_index cuando no viene explícito.
    """
    options = []
    for position, raw in enumerate(raw_options or []):
        if isinstance(raw, str):
            text, is_correct, order_index = raw, False, position
        elif isinstance(raw, dict):
            text = raw.get("text", raw.get("texto"))
            is_correct = raw.get("is_correct", raw.get("es_correcta", raw.get("correcta", False)))
            order_index = raw.get("order_index", raw.get("orden"))
            if order_index is None:
                order_index = position
        else:
            raise ValidationError(
                f"Invalid option at position {position}",
                {"field": "options", "position": position},
            )
        if text is None or not str(text).strip():
            raise ValidationError(
                f"Option text is required (position {position})",
                {"field": "options", "position": position},
            )
        options.append({"text": str(text), "is_correct": bool(is_correct), "order_index": int(order_index)})
    return options


class ExamCompositionService:
    """
    Operaciones sobre el árbol completo de un examen.
    """

    def __init__(self, db: Session):
        self.db = db
        self.exams = ExamRepository(db)
        self.stations = StationRepository(db)
        self.questions = QuestionRepository(db)
        self.options = OptionRepository(db)
        self.evaluators = EvaluatorRepository(db)

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_exam(
        self,
        title: Optional[str],
        description: Optional[str] = None,
        application_date: Any = None,
        state: Any = None,
        stations: Optional[List[Dict[str, Any]]] = None,
        evaluator_ids: Optional[List[str]] = None,
    ) -> ExamDB:
        """
        Crea un examen y, opcionalmente, su árbol de estaciones/preguntas/opciones.

        Sin estado explícito queda DRAFT, o ACTIVO si ya tiene fecha de aplicación.

        Raises:
            ValidationError: título ausente, fecha o estado inválidos, pregunta mal formada
            NotFoundError: algún evaluador no existe
        """
        if not title or not title.strip():
            raise ValidationError("Exam title is required", {"field": "title"})

        parsed_date = parse_application_date(application_date)
        exam_state = self._resolve_state(state, parsed_date)

        with transaction(self.db, "Create exam"):
            exam = self.exams.create(
                title=title.strip(),
                description=description,
                application_date=parsed_date,
                state=exam_state,
            )
            for position, station_data in enumerate(stations or []):
                self._create_station(exam.id, station_data, position)

            if evaluator_ids:
                self.exams.add_evaluators(exam, self._load_evaluators(evaluator_ids))

        self.db.expire_all()
        get_cache().invalidate_pattern(EXAM_CACHE_PATTERN)

        logger.info(
            f"Exam created: {exam.id}",
            extra={"exam_id": exam.id, "state": exam_state, "stations": len(stations or [])}
        )
        return exam

    # =========================================================================
    # DUPLICATE
    # =========================================================================

    def duplicate_exam(self, source_exam_id: str, new_application_date: Any) -> str:
        """
        Copia completa de un examen para una nueva fecha de aplicación.

        El nuevo examen se titula "<título> (Copia dd/mm/yyyy)", conserva
        descripción y estado, y recibe copias de todas las estaciones,
        preguntas y opciones (respetando order_index) y los mismos
        evaluadores habilitados. El puntaje máximo de cada estación nueva
        se recalcula desde sus preguntas.

        Returns:
            ID del examen nuevo

        Raises:
            ValidationError: fecha ausente o inválida
            NotFoundError: el examen origen no existe
        """
        new_date = parse_application_date(new_application_date, required=True)

        with transaction(self.db, "Duplicate exam"):
            source = self.exams.get_by_id(source_exam_id, load_tree=True)
            if source is None:
                raise NotFoundError("Exam", source_exam_id)

            new_exam = self._copy_exam(
                source,
                title=f"{source.title} (Copia {format_title_date(new_date)})",
                application_date=new_date,
                state=source.state,
            )

        self.db.expire_all()
        exams_duplicated_total.inc()
        get_cache().invalidate_pattern(EXAM_CACHE_PATTERN)

        logger.info(
            f"Exam {source_exam_id} duplicated as {new_exam.id}",
            extra={"source_exam_id": source_exam_id, "new_exam_id": new_exam.id,
                   "application_date": new_date.isoformat()}
        )
        return new_exam.id

    def duplicate_exams_bulk(self, exam_ids: List[str], new_application_date: Any) -> List[str]:
        """
        Duplica varios exámenes para la misma fecha en una sola transacción.

        Los exámenes nuevos quedan ACTIVO y se titulan "<título> (dd/mm/yyyy)".
        Si algún ID no existe no se crea ninguno.
        """
        if not exam_ids:
            raise ValidationError("At least one exam id is required", {"field": "exam_ids"})
        new_date = parse_application_date(new_application_date, required=True)

        # Sin repetidos, conservando el orden recibido
        unique_ids = list(dict.fromkeys(exam_ids))

        with transaction(self.db, "Bulk duplicate exams"):
            sources = {exam.id: exam for exam in self.exams.get_by_ids(unique_ids, load_tree=True)}
            for exam_id in unique_ids:
                if exam_id not in sources:
                    raise NotFoundError("Exam", exam_id)

            new_ids = []
            for exam_id in unique_ids:
                source = sources[exam_id]
                new_exam = self._copy_exam(
                    source,
                    title=f"{source.title} ({format_title_date(new_date)})",
                    application_date=new_date,
                    state=ExamState.ACTIVO.value,
                )
                new_ids.append(new_exam.id)

        self.db.expire_all()
        exams_duplicated_total.inc(len(new_ids))
        get_cache().invalidate_pattern(EXAM_CACHE_PATTERN)

        logger.info(
            f"Bulk duplicated {len(new_ids)} exams",
            extra={"source_exam_ids": unique_ids, "new_exam_ids": new_ids}
        )
        return new_ids

    # =========================================================================
    # UPDATE / DELETE
    # =========================================================================

    def update_exam(self, exam_id: str, data: Dict[str, Any]) -> ExamDB:
        """
        Actualiza campos del examen y hace upsert de estaciones y preguntas por ID.

        - Estaciones/preguntas con ID existente se actualizan, sin ID se crean.
        - Si una pregunta trae "options", sus opciones se reemplazan.
        - "evaluator_ids" agrega evaluadores habilitados.
        - El puntaje máximo de cada estación tocada se recalcula.
        """
        with transaction(self.db, "Update exam"):
            exam = self.exams.get_by_id(exam_id, load_tree=True)
            if exam is None:
                raise NotFoundError("Exam", exam_id)

            updates: Dict[str, Any] = {}
            if "title" in data and data["title"] is not None:
                if not str(data["title"]).strip():
                    raise ValidationError("Exam title is required", {"field": "title"})
                updates["title"] = str(data["title"]).strip()
            if "description" in data:
                updates["description"] = data["description"]
            if "application_date" in data:
                updates["application_date"] = parse_application_date(data["application_date"])
            if data.get("state") is not None:
                updates["state"] = self._resolve_state(data["state"], None)
            self.exams.update(exam, updates)

            existing_stations = {station.id: station for station in exam.stations}
            for position, station_data in enumerate(data.get("stations") or []):
                station_id = station_data.get("id")
                if station_id:
                    station = existing_stations.get(station_id)
                    if station is None:
                        raise NotFoundError("Station", station_id)
                    self._update_station(station, station_data)
                else:
                    self._create_station(exam.id, station_data, len(existing_stations) + position)

            if data.get("evaluator_ids"):
                self.exams.add_evaluators(exam, self._load_evaluators(data["evaluator_ids"]))

        self.db.expire_all()
        get_cache().invalidate_pattern(EXAM_CACHE_PATTERN)
        logger.info(f"Exam updated: {exam_id}", extra={"exam_id": exam_id, "fields": sorted(updates)})
        return exam

    def delete_exam(self, exam_id: str) -> None:
        """
        Elimina un examen con todo su árbol.

        Raises:
            NotFoundError: el examen no existe
            ConflictError: el examen ya tiene alumnos asignados
        """
        with transaction(self.db, "Delete exam"):
            exam = self.exams.get_by_id(exam_id)
            if exam is None:
                raise NotFoundError("Exam", exam_id)

            assigned = self.exams.count_assignments(exam_id)
            if assigned:
                raise ConflictError(
                    "Exam has students assigned and cannot be deleted",
                    {"exam_id": exam_id, "assignments": assigned},
                )
            self.exams.delete(exam)

        get_cache().invalidate_pattern(EXAM_CACHE_PATTERN)
        logger.info(f"Exam deleted: {exam_id}", extra={"exam_id": exam_id})

    # =========================================================================
    # LEGACY OPTIONS
    # =========================================================================

    def normalize_legacy_options(self) -> int:
        """
        Migra las opciones embebidas en questions.legacy_options a filas OptionDB.

        Las preguntas que ya tienen filas de opciones no se duplican; en
        todos los casos la columna embebida queda vacía.

        Returns:
            Cantidad de preguntas migradas
        """
        migrated = 0
        with transaction(self.db, "Normalize legacy options"):
            for question in self.questions.get_with_legacy_options():
                if not self.options.get_by_question(question.id):
                    for option in coerce_options(question.legacy_options):
                        self.options.create(question_id=question.id, **option)
                    migrated += 1
                question.legacy_options = None
            self.db.flush()

        logger.info(f"Normalized legacy options for {migrated} questions")
        return migrated

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _resolve_state(self, state: Any, application_date: Optional[datetime]) -> str:
        if state is None:
            return ExamState.ACTIVO.value if application_date else ExamState.DRAFT.value
        try:
            return normalize_exam_state(state)
        except (ValueError, TypeError) as e:
            raise ValidationError(str(e), {"field": "state"}) from e

    def _load_evaluators(self, evaluator_ids: List[str]):
        evaluators = self.evaluators.get_by_ids(list(evaluator_ids))
        found = {evaluator.id for evaluator in evaluators}
        for evaluator_id in evaluator_ids:
            if evaluator_id not in found:
                raise NotFoundError("Evaluator", evaluator_id)
        return evaluators

    def _question_fields(self, question_data: Dict[str, Any], position: int) -> Dict[str, Any]:
        text = question_data.get("text")
        if not text or not str(text).strip():
            raise ValidationError("Question text is required", {"field": "text", "position": position})

        try:
            question_type = normalize_question_type(question_data.get("type"))
        except (ValueError, TypeError) as e:
            raise ValidationError(str(e), {"field": "type", "position": position}) from e

        points = question_data.get("points")
        points = 1.0 if points is None else float(points)
        if points < 0:
            raise ValidationError("Question points cannot be negative", {"field": "points", "position": position})

        min_value = question_data.get("min_value")
        max_value = question_data.get("max_value")
        if min_value is not None and max_value is not None and min_value > max_value:
            raise ValidationError(
                "min_value cannot be greater than max_value",
                {"field": "min_value", "position": position},
            )

        order_index = question_data.get("order_index")
        required = question_data.get("required")
        return {
            "text": str(text),
            "type": question_type,
            "required": True if required is None else bool(required),
            "order_index": position if order_index is None else order_index,
            "points": points,
            "min_value": min_value,
            "max_value": max_value,
            "reference_answer": question_data.get("reference_answer"),
        }

    def _create_station(self, exam_id: str, station_data: Dict[str, Any], position: int) -> StationDB:
        title = station_data.get("title")
        if not title or not str(title).strip():
            raise ValidationError("Station title is required", {"field": "title", "position": position})

        order_index = station_data.get("order_index")
        active = station_data.get("active")
        station = self.stations.create(
            exam_id=exam_id,
            title=str(title),
            description=station_data.get("description"),
            duration_minutes=station_data.get("duration_minutes"),
            order_index=position if order_index is None else order_index,
            active=True if active is None else bool(active),
        )
        for q_position, question_data in enumerate(station_data.get("questions") or []):
            self._create_question(station.id, question_data, q_position)

        self.stations.recompute_max_score(station.id)
        return station

    def _update_station(self, station: StationDB, station_data: Dict[str, Any]) -> StationDB:
        self.stations.update(station, {k: v for k, v in station_data.items() if v is not None and k != "questions"})

        existing_questions = {question.id: question for question in station.questions}
        for position, question_data in enumerate(station_data.get("questions") or []):
            question_id = question_data.get("id")
            if question_id:
                question = existing_questions.get(question_id)
                if question is None:
                    raise NotFoundError("Question", question_id)
                self._update_question(question, question_data, position)
            else:
                self._create_question(station.id, question_data, len(existing_questions) + position)

        self.stations.recompute_max_score(station.id)
        return station

    def _create_question(self, station_id: str, question_data: Dict[str, Any], position: int) -> QuestionDB:
        question = self.questions.create(station_id=station_id, **self._question_fields(question_data, position))
        for option in coerce_options(question_data.get("options")):
            self.options.create(question_id=question.id, **option)
        return question

    def _update_question(self, question: QuestionDB, question_data: Dict[str, Any], position: int) -> QuestionDB:
        merged = {
            "text": question.text,
            "type": question.type,
            "required": question.required,
            "order_index": question.order_index,
            "points": question.points,
            "min_value": question.min_value,
            "max_value": question.max_value,
            "reference_answer": question.reference_answer,
        }
        merged.update({k: v for k, v in question_data.items() if v is not None})
        self.questions.update(question, self._question_fields(merged, position))

        if question_data.get("options") is not None:
            self.options.delete_for_question(question)
            for option in coerce_options(question_data["options"]):
                self.options.create(question_id=question.id, **option)
        return question

    @staticmethod
    def _source_options(question) -> List[Dict[str, Any]]:
        """Opciones a copiar; una pregunta sin migrar aporta las embebidas como filas"""
        if question.options:
            return [
                {"text": o.text, "is_correct": o.is_correct, "order_index": o.order_index}
                for o in sorted(question.options, key=lambda o: o.order_index)
            ]
        return coerce_options(question.legacy_options)

    def _copy_exam(self, source: ExamDB, title: str, application_date: datetime, state: str) -> ExamDB:
        """Inserta la copia del examen con su árbol completo y sus evaluadores."""
        new_exam = self.exams.create(
            title=title,
            description=source.description,
            application_date=application_date,
            state=state,
        )

        for station in sorted(source.stations, key=lambda s: s.order_index):
            new_station = self.stations.create(
                exam_id=new_exam.id,
                title=station.title,
                description=station.description,
                duration_minutes=station.duration_minutes,
                order_index=station.order_index,
                active=station.active,
            )
            for question in sorted(station.questions, key=lambda q: q.order_index):
                new_question = self.questions.create(
                    station_id=new_station.id,
                    text=question.text,
                    type=question.type,
                    required=question.required,
                    order_index=question.order_index,
                    points=question.points,
                    min_value=question.min_value,
                    max_value=question.max_value,
                    reference_answer=question.reference_answer,
                )
                for option in self._source_options(question):
                    self.options.create(question_id=new_question.id, **option)
            self.stations.recompute_max_score(new_station.id)

        self.exams.add_evaluators(new_exam, source.evaluators)
        return new_exam
