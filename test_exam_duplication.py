"""
Tests del árbol de exámenes: alta, duplicación, actualización y baja
"""
import pytest

from conftest import DUPLICATE_DATE
from osce_backend.api.exceptions import ConflictError, InternalError, NotFoundError, ValidationError
from osce_backend.database.models import ExamDB, OptionDB, QuestionDB, StationDB
from osce_backend.database.repositories import ExamRepository, OptionRepository, QuestionRepository
from osce_backend.models.enums import ExamState
from osce_backend.services import AssignmentService, ExamCompositionService


def two_station_tree():
    return [
        {
            "title": "Anamnesis",
            "duration_minutes": 15,
            "questions": [
                {"text": "Motivo de consulta", "type": "texto_libre", "points": 3,
                 "reference_answer": "Dolor torácico"},
                {"text": "Antecedentes", "type": "opcion_multiple", "points": 4.5, "options": [
                    {"text": "HTA", "is_correct": True},
                    {"text": "DBT", "is_correct": True},
                    {"text": "Asma", "is_correct": False},
                ]},
                {"text": "Frecuencia cardíaca", "type": "numerico", "points": 2,
                 "min_value": 60, "max_value": 100},
            ],
        },
        {"title": "Descanso", "active": False, "questions": []},
    ]


def counts(db):
    return tuple(db.query(model).count() for model in (ExamDB, StationDB, QuestionDB, OptionDB))


def test_create_exam_builds_tree_and_max_scores(db, make_exam):
    exam = make_exam(stations=two_station_tree())
    loaded = ExamRepository(db).get_by_id(exam.id, load_tree=True)

    assert loaded.state == ExamState.ACTIVO.value
    assert [s.title for s in loaded.stations] == ["Anamnesis", "Descanso"]
    assert loaded.stations[0].max_score == pytest.approx(9.5)
    assert loaded.stations[1].max_score == 0
    assert [o.text for o in loaded.stations[0].questions[1].options] == ["HTA", "DBT", "Asma"]


def test_create_exam_defaults_and_validation(db):
    service = ExamCompositionService(db)

    assert service.create_exam("Sin fecha").state == ExamState.DRAFT.value
    assert service.create_exam("Con fecha", application_date="2099-01-01").state == ExamState.ACTIVO.value
    assert service.create_exam("Explícito", state="inactivo").state == ExamState.INACTIVO.value

    with pytest.raises(ValidationError):
        service.create_exam("   ")
    with pytest.raises(ValidationError):
        service.create_exam("Fecha rota", application_date="31/31/2099")
    with pytest.raises(ValidationError):
        service.create_exam("Tipo raro", stations=[{"title": "E1", "questions": [{"text": "?", "type": "dibujo"}]}])


def test_legacy_question_types_and_string_options_are_normalized(db, make_exam):
    exam = make_exam(stations=[{
        "title": "Triage",
        "questions": [{"text": "Prioridad", "type": "seleccion", "options": ["Roja", "Amarilla"]}],
    }])
    question = ExamRepository(db).get_by_id(exam.id, load_tree=True).stations[0].questions[0]

    assert question.type == "opcion_unica"
    assert [(o.text, o.order_index) for o in question.options] == [("Roja", 0), ("Amarilla", 1)]


def test_duplicate_copies_full_tree(db, make_exam, make_evaluator):
    evaluator = make_evaluator()
    source = make_exam(stations=two_station_tree(), evaluator_ids=[evaluator.id])

    new_id = ExamCompositionService(db).duplicate_exam(source.id, DUPLICATE_DATE)

    repo = ExamRepository(db)
    original = repo.get_by_id(source.id, load_tree=True)
    copy = repo.get_by_id(new_id, load_tree=True)

    assert new_id != source.id
    assert copy.title == "Cardio (Copia 20/04/2099)"
    assert copy.state == original.state
    assert copy.description == original.description
    assert copy.application_date.isoformat() == "2099-04-20T10:30:00"
    assert [e.id for e in copy.evaluators] == [evaluator.id]

    assert len(copy.stations) == len(original.stations)
    for old_station, new_station in zip(original.stations, copy.stations):
        assert new_station.id != old_station.id
        assert (new_station.title, new_station.order_index, new_station.active, new_station.duration_minutes) == \
            (old_station.title, old_station.order_index, old_station.active, old_station.duration_minutes)
        assert len(new_station.questions) == len(old_station.questions)
        for old_q, new_q in zip(old_station.questions, new_station.questions):
            assert (new_q.text, new_q.type, new_q.points, new_q.order_index, new_q.min_value, new_q.max_value,
                    new_q.reference_answer) == \
                (old_q.text, old_q.type, old_q.points, old_q.order_index, old_q.min_value, old_q.max_value,
                 old_q.reference_answer)
            assert [(o.text, o.is_correct, o.order_index) for o in new_q.options] == \
                [(o.text, o.is_correct, o.order_index) for o in old_q.options]


def test_duplicate_recomputes_station_max_score(db, make_exam):
    source = make_exam(stations=two_station_tree())
    station = ExamRepository(db).get_by_id(source.id, load_tree=True).stations[0]
    station.max_score = 999
    db.commit()

    new_id = ExamCompositionService(db).duplicate_exam(source.id, DUPLICATE_DATE)

    for new_station in ExamRepository(db).get_by_id(new_id, load_tree=True).stations:
        assert new_station.max_score == pytest.approx(sum(q.points for q in new_station.questions))


def test_duplicate_rejects_invalid_date_and_unknown_exam(db, make_exam):
    source = make_exam()
    before = counts(db)
    service = ExamCompositionService(db)

    with pytest.raises(ValidationError):
        service.duplicate_exam(source.id, "not-a-date")
    with pytest.raises(ValidationError):
        service.duplicate_exam(source.id, None)
    with pytest.raises(NotFoundError):
        service.duplicate_exam("missing-exam", DUPLICATE_DATE)

    assert counts(db) == before


def test_duplicate_rolls_back_everything_on_failure(db, make_exam, monkeypatch):
    source = make_exam()
    before = counts(db)

    def boom(self, *args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(OptionRepository, "create", boom)

    with pytest.raises(InternalError):
        ExamCompositionService(db).duplicate_exam(source.id, DUPLICATE_DATE)

    assert counts(db) == before


def test_bulk_duplicate(db, make_exam):
    first = make_exam(title="Cardio", state="DRAFT")
    second = make_exam(title="Neuro", stations=[])
    service = ExamCompositionService(db)

    new_ids = service.duplicate_exams_bulk([first.id, second.id], DUPLICATE_DATE)

    copies = {e.id: e for e in ExamRepository(db).get_by_ids(new_ids, load_tree=True)}
    assert [copies[i].title for i in new_ids] == ["Cardio (20/04/2099)", "Neuro (20/04/2099)"]
    assert all(e.state == ExamState.ACTIVO.value for e in copies.values())
    assert len(copies[new_ids[0]].stations) == 1


def test_bulk_duplicate_is_all_or_nothing(db, make_exam):
    exam = make_exam()
    before = counts(db)
    service = ExamCompositionService(db)

    with pytest.raises(NotFoundError):
        service.duplicate_exams_bulk([exam.id, "missing-exam"], DUPLICATE_DATE)
    with pytest.raises(ValidationError):
        service.duplicate_exams_bulk([], DUPLICATE_DATE)

    assert counts(db) == before


def test_update_exam_recomputes_scores_and_replaces_options(db, make_exam):
    exam = make_exam()
    tree = ExamRepository(db).get_by_id(exam.id, load_tree=True)
    station, question = tree.stations[0], tree.stations[0].questions[0]

    ExamCompositionService(db).update_exam(exam.id, {
        "title": "Cardio II",
        "stations": [
            {"id": station.id, "questions": [
                {"id": question.id, "points": 6, "options": [{"text": "Sinusal", "is_correct": True}]},
                {"text": "Eje eléctrico", "type": "texto_libre", "points": 4},
            ]},
            {"title": "Auscultación", "questions": [{"text": "Soplo", "points": 5}]},
        ],
    })

    updated = ExamRepository(db).get_by_id(exam.id, load_tree=True)
    assert updated.title == "Cardio II"
    assert [s.max_score for s in updated.stations] == [10, 5]
    assert len(OptionRepository(db).get_by_question(question.id)) == 1
    assert QuestionRepository(db).get_by_id(question.id).points == 6


def test_update_unknown_exam(db):
    with pytest.raises(NotFoundError):
        ExamCompositionService(db).update_exam("missing-exam", {"title": "x"})


def test_delete_exam_blocked_by_assignments(db, make_exam, make_student, make_evaluator):
    exam = make_exam()
    evaluator = make_evaluator()
    AssignmentService(db).assign_exam(make_student().id, exam.id, evaluator.id)
    service = ExamCompositionService(db)

    with pytest.raises(ConflictError):
        service.delete_exam(exam.id)

    free_exam = make_exam(title="Libre")
    service.delete_exam(free_exam.id)
    assert ExamRepository(db).get_by_id(free_exam.id) is None
    assert db.query(StationDB).filter(StationDB.exam_id == free_exam.id).count() == 0

    with pytest.raises(NotFoundError):
        service.delete_exam(free_exam.id)


def test_normalize_legacy_options(db, make_exam):
    exam = make_exam(stations=[{"title": "Legacy", "questions": [{"text": "Elegir", "type": "multiple"}]}])
    question = ExamRepository(db).get_by_id(exam.id, load_tree=True).stations[0].questions[0]
    question.legacy_options = ["A", {"texto": "B", "es_correcta": True}]
    db.commit()

    assert ExamCompositionService(db).normalize_legacy_options() == 1

    db.expire_all()
    options = OptionRepository(db).get_by_question(question.id)
    assert [(o.text, o.is_correct) for o in options] == [("A", False), ("B", True)]
    assert QuestionRepository(db).get_by_id(question.id).legacy_options is None
    assert ExamCompositionService(db).normalize_legacy_options() == 0


def test_duplicate_carries_unmigrated_legacy_options(db, make_exam):
    exam = make_exam(stations=[{"title": "Legacy", "questions": [{"text": "Elegir", "type": "multiple"}]}])
    question = ExamRepository(db).get_by_id(exam.id, load_tree=True).stations[0].questions[0]
    question.legacy_options = ["A", {"texto": "B", "es_correcta": True}]
    db.commit()

    new_id = ExamCompositionService(db).duplicate_exam(exam.id, DUPLICATE_DATE)

    copied = ExamRepository(db).get_by_id(new_id, load_tree=True).stations[0].questions[0]
    assert [(o.text, o.is_correct, o.order_index) for o in copied.options] == [
        ("A", False, 0), ("B", True, 1),
    ]
    assert not copied.legacy_options
    assert QuestionRepository(db).get_by_id(question.id).legacy_options == ["A", {"texto": "B", "es_correcta": True}]
