"""
Fixtures compartidas: base SQLite en memoria por test, cliente HTTP y datos de ejemplo.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from osce_backend.core.cache import get_cache
from osce_backend.database.config import init_database
from osce_backend.services import AssignmentService, EvaluatorService, ExamCompositionService, StudentService

FUTURE_DATE = "2099-03-10T09:00:00"
DUPLICATE_DATE = "2099-04-20T10:30:00"


def cardio_stations():
    """Examen "Cardio": una estación ECG con una pregunta de 10 puntos y dos opciones"""
    return [
        {
            "title": "ECG",
            "description": "Lectura de electrocardiograma",
            "duration_minutes": 10,
            "questions": [
                {
                    "text": "¿Cuál es el ritmo del trazado?",
                    "type": "opcion_unica",
                    "points": 10,
                    "options": [
                        {"text": "Sinusal", "is_correct": True},
                        {"text": "Fibrilación auricular", "is_correct": False},
                    ],
                }
            ],
        }
    ]


@pytest.fixture
def db_config():
    config = init_database("sqlite://", poolclass=StaticPool)
    yield config
    config.engine.dispose()


@pytest.fixture
def db(db_config):
    session = db_config.session()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clear_cache():
    get_cache().clear()
    yield
    get_cache().clear()


@pytest.fixture
def client(db_config):
    from osce_backend.api.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_student(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "first_name": "Lucía",
            "last_name": f"Pérez {counter['n']}",
            "registration_number": f"MAT-{counter['n']:04d}",
        }
        data.update(overrides)
        return StudentService(db).create(data)

    return _make


@pytest.fixture
def make_evaluator(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "first_name": "Martín",
            "last_name": f"Gómez {counter['n']}",
            "email": f"evaluador{counter['n']}@hospital.org",
            "specialty": "Cardiología",
        }
        data.update(overrides)
        return EvaluatorService(db).create(data)

    return _make


@pytest.fixture
def make_exam(db):
    def _make(title="Cardio", application_date=FUTURE_DATE, stations=None, **kwargs):
        return ExamCompositionService(db).create_exam(
            title=title,
            application_date=application_date,
            stations=cardio_stations() if stations is None else stations,
            **kwargs,
        )

    return _make


@pytest.fixture
def assignment(db, make_student, make_evaluator, make_exam):
    """Asignación Pendiente del examen Cardio"""
    evaluator = make_evaluator()
    exam = make_exam(evaluator_ids=[evaluator.id])
    student = make_student()
    return AssignmentService(db).assign_exam(student.id, exam.id, evaluator.id)
