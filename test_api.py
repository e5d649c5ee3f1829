"""
Tests de la API HTTP: recursos de referencia, exámenes, autenticación y flujo completo de evaluación
"""
from conftest import DUPLICATE_DATE, FUTURE_DATE, cardio_stations
from osce_backend.core import constants
from osce_backend.database.repositories import HospitalRepository

API = "/api/v1"


def create_evaluator(client, email="ana@hospital.org"):
    response = client.post(f"{API}/evaluators", json={
        "first_name": "Ana", "last_name": "Ruiz", "email": email, "specialty": "Cardiología",
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]


def create_student(client, registration_number="MAT-0001", **extra):
    payload = {"first_name": "Lucía", "last_name": "Pérez", "registration_number": registration_number}
    payload.update(extra)
    response = client.post(f"{API}/students", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def create_exam(client, **extra):
    payload = {"title": "Cardio", "application_date": FUTURE_DATE, "stations": cardio_stations()}
    payload.update(extra)
    response = client.post(f"{API}/exams", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def login(client, email="ana@hospital.org", password=constants.DEFAULT_EVALUATOR_PASSWORD):
    return client.post(f"{API}/auth/login", json={"email": email, "password": password})


# =============================================================================
# APP
# =============================================================================

def test_health_and_no_cache_headers(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["Cache-Control"] == "no-store, no-cache, must-revalidate"
    assert response.headers["Pragma"] == "no-cache"

    assert client.get(f"{API}/health").status_code == 200


def test_request_validation_maps_to_400(client):
    response = client.get(f"{API}/exams/upcoming", params={"limit": 0})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "VALIDATION_ERROR"


def test_failed_transaction_returns_500_with_traceback(client, monkeypatch):
    def broken_create(self, **data):
        raise RuntimeError("disk full")

    monkeypatch.setattr(HospitalRepository, "create", broken_create)

    response = client.post(f"{API}/hospitals", json={"name": "Hospital Italiano"})

    assert response.status_code == 500
    body = response.json()
    assert body["error_code"] == "INTERNAL_ERROR"
    assert body["details"]["operation"] == "Create hospital"
    assert any("disk full" in line for line in body["details"]["traceback"])
    assert client.get(f"{API}/hospitals").json()["data"] == []


def test_metrics_endpoint(client):
    create_exam(client)

    response = client.get(f"{API}/metrics")

    assert response.status_code == 200
    assert "osce_exams_duplicated_total" in response.text
    assert "osce_cache_hits_total" in response.text
    assert 'osce_assignments{status="Pendiente"} 0.0' in response.text


def test_stats(client):
    create_student(client)

    data = client.get(f"{API}/stats").json()["data"]

    assert data["entities"]["students"] == 1
    assert data["assignments_by_status"] == {}


# =============================================================================
# REFERENCE ENTITIES
# =============================================================================

def test_hospital_crud_keeps_cached_list_fresh(client):
    assert client.get(f"{API}/hospitals").json()["data"] == []

    created = client.post(f"{API}/hospitals", json={"name": "Hospital Italiano", "city": "Mendoza"})
    assert created.status_code == 201
    hospital_id = created.json()["data"]["id"]

    assert [h["name"] for h in client.get(f"{API}/hospitals").json()["data"]] == ["Hospital Italiano"]

    client.put(f"{API}/hospitals/{hospital_id}", json={"name": "Hospital Central"})
    assert [h["name"] for h in client.get(f"{API}/hospitals").json()["data"]] == ["Hospital Central"]

    student = create_student(client, hospital_id=hospital_id)
    students = client.get(f"{API}/hospitals/{hospital_id}/students").json()["data"]
    assert [s["id"] for s in students] == [student["id"]]

    assert client.delete(f"{API}/hospitals/{hospital_id}").status_code == 200
    assert client.get(f"{API}/hospitals").json()["data"] == []
    assert client.get(f"{API}/hospitals/{hospital_id}").status_code == 404
    assert client.post(f"{API}/hospitals", json={"city": "Mendoza"}).status_code == 400


def test_student_errors(client):
    create_student(client)

    duplicate = client.post(f"{API}/students", json={
        "first_name": "Otro", "last_name": "Alumno", "registration_number": "MAT-0001",
    })
    assert duplicate.status_code == 409
    assert duplicate.json()["error_code"] == "CONFLICT"

    missing = client.post(f"{API}/students", json={"first_name": "Sin", "registration_number": "MAT-0002"})
    assert missing.status_code == 400
    assert missing.json()["details"]["fields"] == ["last_name"]

    unknown_hospital = client.post(f"{API}/students", json={
        "first_name": "Lucía", "last_name": "Pérez", "registration_number": "MAT-0003", "hospital_id": "missing",
    })
    assert unknown_hospital.status_code == 404
    assert unknown_hospital.json()["error_code"] == "HOSPITAL_NOT_FOUND"

    assert client.get(f"{API}/students/missing").status_code == 404


def test_evaluator_lifecycle(client):
    evaluator = create_evaluator(client, email="Ana@Hospital.org")
    assert evaluator["email"] == "ana@hospital.org"
    assert evaluator["user_id"]

    assert client.post(f"{API}/evaluators", json={
        "first_name": "Ana", "last_name": "Ruiz", "email": "no-es-un-email",
    }).status_code == 400
    assert client.post(f"{API}/evaluators", json={
        "first_name": "Ana", "last_name": "Ruiz", "email": "ana@hospital.org",
    }).status_code == 409

    free = create_evaluator(client, email="libre@hospital.org")
    create_exam(client, evaluator_ids=[evaluator["id"]])

    with_exams = client.get(f"{API}/evaluators", params={"with_exams": True}).json()["data"]
    assert [e["id"] for e in with_exams] == [evaluator["id"]]
    exams = client.get(f"{API}/evaluators/{evaluator['id']}/exams").json()["data"]
    assert [e["title"] for e in exams] == ["Cardio"]

    assert client.delete(f"{API}/evaluators/{evaluator['id']}").status_code == 409
    assert client.delete(f"{API}/evaluators/{free['id']}").status_code == 200
    assert client.delete(f"{API}/evaluators/{free['id']}").status_code == 404


def test_group_membership(client):
    group = client.post(f"{API}/groups", json={"name": "Comisión A"}).json()["data"]
    student = create_student(client)
    members_url = f"{API}/groups/{group['id']}/students"

    assert client.post(members_url, json={"student_id": student["id"]}).status_code == 201
    assert client.post(members_url, json={"student_id": student["id"]}).status_code == 409
    assert client.post(members_url, json={}).status_code == 400
    assert client.post(members_url, json={"student_id": "missing"}).status_code == 404

    assert [s["id"] for s in client.get(members_url).json()["data"]] == [student["id"]]
    assert client.get(f"{API}/groups").json()["data"][0]["student_count"] == 1

    blocked = client.delete(f"{API}/groups/{group['id']}")
    assert blocked.status_code == 409
    assert blocked.json()["details"]["student_count"] == 1
    assert client.get(f"{API}/groups/{group['id']}").status_code == 200

    assert client.delete(f"{members_url}/{student['id']}").status_code == 200
    assert client.delete(f"{members_url}/{student['id']}").status_code == 404
    assert client.get(f"{API}/groups").json()["data"][0]["student_count"] == 0

    assert client.delete(f"{API}/groups/{group['id']}").status_code == 200
    assert client.get(f"{API}/groups/{group['id']}").status_code == 404


# =============================================================================
# EXAMS
# =============================================================================

def test_exam_tree_endpoints(client):
    exam = create_exam(client)
    station = exam["stations"][0]
    question = station["questions"][0]

    assert exam["state"] == "ACTIVO"
    assert station["max_score"] == 10
    assert [o["text"] for o in question["options"]] == ["Sinusal", "Fibrilación auricular"]

    stations = client.get(f"{API}/exams/{exam['id']}/stations").json()["data"]
    assert [s["id"] for s in stations] == [station["id"]]
    questions = client.get(f"{API}/stations/{station['id']}/questions").json()["data"]
    assert [q["id"] for q in questions] == [question["id"]]
    options = client.get(f"{API}/questions/{question['id']}/options").json()["data"]
    assert [o["is_correct"] for o in options] == [True, False]

    listed = client.get(f"{API}/exams").json()["data"]
    assert [(e["title"], e["student_count"]) for e in listed] == [("Cardio", 0)]
    assert client.get(f"{API}/exams/missing").status_code == 404


def test_exam_update_and_delete(client):
    exam = create_exam(client)

    updated = client.put(f"{API}/exams/{exam['id']}", json={"title": "Cardio II", "state": "inactivo"})
    assert updated.status_code == 200
    assert (updated.json()["data"]["title"], updated.json()["data"]["state"]) == ("Cardio II", "INACTIVO")
    assert client.get(f"{API}/exams").json()["data"][0]["title"] == "Cardio II"

    assert client.delete(f"{API}/exams/{exam['id']}").status_code == 200
    assert client.get(f"{API}/exams").json()["data"] == []


def test_duplicate_exam_endpoints(client):
    exam = create_exam(client)

    response = client.post(f"{API}/exams/{exam['id']}/duplicate", json={"application_date": DUPLICATE_DATE})
    assert response.status_code == 201
    copy = client.get(f"{API}/exams/{response.json()['data']['exam_id']}").json()["data"]
    assert copy["title"] == "Cardio (Copia 20/04/2099)"
    assert copy["stations"][0]["max_score"] == 10
    assert copy["stations"][0]["id"] != exam["stations"][0]["id"]

    assert client.post(f"{API}/exams/{exam['id']}/duplicate", json={"application_date": "ayer"}).status_code == 400
    assert client.post(f"{API}/exams/{exam['id']}/duplicate", json={}).status_code == 400
    assert client.post(f"{API}/exams/missing/duplicate", json={"application_date": DUPLICATE_DATE}).status_code == 404

    bulk = client.post(f"{API}/exams/duplicate-bulk", json={
        "exam_ids": [exam["id"]], "application_date": "2099-05-02T08:00:00Z",
    })
    assert bulk.status_code == 201
    [bulk_id] = bulk.json()["data"]["exam_ids"]
    assert client.get(f"{API}/exams/{bulk_id}").json()["data"]["title"] == "Cardio (02/05/2099)"

    assert len(client.get(f"{API}/exams").json()["data"]) == 3


def test_assignment_endpoints(client):
    evaluator = create_evaluator(client)
    exam = create_exam(client, evaluator_ids=[evaluator["id"]])
    student = create_student(client)
    payload = {"student_id": student["id"], "exam_id": exam["id"], "evaluator_id": evaluator["id"]}

    created = client.post(f"{API}/student-exams", json=payload)
    assert created.status_code == 201
    assert created.json()["data"]["status"] == "Pendiente"
    assert client.post(f"{API}/student-exams", json=payload).status_code == 409
    assert client.post(f"{API}/student-exams", json={"student_id": student["id"]}).status_code == 400

    has_exam = client.get(f"{API}/students/{student['id']}/has-exam/{exam['id']}").json()["data"]
    assert has_exam == {"has_exam": True}
    student_exams = client.get(f"{API}/students/{student['id']}/exams").json()["data"]
    assert [e["title"] for e in student_exams] == ["Cardio"]
    assert client.get(f"{API}/exams").json()["data"][0]["student_count"] == 1

    identification = client.post(f"{API}/assignments/identification", json={
        "student_id": student["id"], "date": "2099-03-10", "identification_number": "17",
    })
    assert identification.json()["data"] == {"updated": 1}

    day_students = client.get(f"{API}/assignments/students", params={"date": "2099-03-10"}).json()["data"]
    assert [(s["student_id"], s["identification_number"]) for s in day_students] == [(student["id"], "17")]
    assert client.get(f"{API}/assignments/students").status_code == 400

    dates = client.get(f"{API}/assignments/dates").json()["data"]
    assert dates == [{"date": "2099-03-10", "exam_count": 1}]

    assert client.delete(f"{API}/exams/{exam['id']}").status_code == 409

    assignment_id = created.json()["data"]["id"]
    finished = client.put(f"{API}/evaluator-exams/{assignment_id}", json={"action": "finalizar", "score": 50})
    assert finished.json()["data"]["status"] == "Completado"
    assert finished.json()["data"]["score"] == 0
    assert client.put(f"{API}/evaluator-exams/{assignment_id}", json={"action": "iniciar"}).status_code == 409
    assert client.put(f"{API}/evaluator-exams/{assignment_id}", json={"action": "pausar"}).status_code == 400


# =============================================================================
# AUTH AND MAINTENANCE
# =============================================================================

def test_evaluator_routes_require_token(client):
    assert client.get(f"{API}/evaluator/exams").status_code == 401
    response = client.get(f"{API}/evaluator/exams", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "UNAUTHORIZED"
    assert client.post(f"{API}/evaluator/answers/batch", json={}).status_code == 401
    assert client.get(f"{API}/auth/me").status_code == 401


def test_login(client):
    evaluator = create_evaluator(client)

    assert login(client, password="incorrecta").status_code == 401
    assert login(client, email="nadie@hospital.org").status_code == 401
    assert client.post(f"{API}/auth/login", json={"email": "ana@hospital.org"}).status_code == 400

    response = login(client, email="ANA@hospital.org")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["evaluator_id"] == evaluator["id"]
    assert data["user"]["role"] == "evaluador"
    assert response.cookies.get("auth_token") == data["tokens"]["access_token"]

    client.cookies.clear()
    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {data['tokens']['access_token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "ana@hospital.org"
    assert me.json()["data"]["last_login"] is not None


def test_update_profile(client):
    create_evaluator(client)
    assert client.put(f"{API}/auth/profile", json={"name": "Ana", "email": "ana@hospital.org"}).status_code == 401

    token = login(client).json()["data"]["tokens"]["access_token"]
    headers = {"Authorization": f"Bearer {token}"}

    assert client.put(f"{API}/auth/profile", json={"name": "Ana"}, headers=headers).status_code == 400
    response = client.put(f"{API}/auth/profile", headers=headers, json={
        "name": "Ana Ruiz", "email": "ana@hospital.org", "new_password": "otra-clave",
    })
    assert response.status_code == 200
    assert response.json()["data"]["first_login"] is False

    client.cookies.clear()
    assert login(client).status_code == 401
    assert login(client, password="otra-clave").status_code == 200


def test_cron_requires_secret(client):
    past = create_exam(client, title="Pasado", application_date="2020-01-01T09:00:00", stations=[])
    assert past["state"] == "ACTIVO"

    assert client.post(f"{API}/cron/update-exam-status").status_code == 401
    assert client.post(
        f"{API}/cron/update-exam-status", headers={"Authorization": "Bearer wrong"}
    ).status_code == 401

    response = client.post(
        f"{API}/cron/update-exam-status", headers={"Authorization": f"Bearer {constants.CRON_SECRET}"}
    )
    assert response.status_code == 200
    assert [e["id"] for e in response.json()["data"]] == [past["id"]]
    assert client.get(f"{API}/exams/{past['id']}").json()["data"]["state"] == "INACTIVO"


def test_login_triggers_status_sweep(client):
    create_evaluator(client)
    past = create_exam(client, title="Pasado", application_date="2020-01-01T09:00:00", stations=[])
    upcoming = create_exam(client)
    assert client.get(f"{API}/exams").json()["data"][0]["state"] == "ACTIVO"

    assert login(client).status_code == 200

    states = {e["id"]: e["state"] for e in client.get(f"{API}/exams").json()["data"]}
    assert states == {past["id"]: "INACTIVO", upcoming["id"]: "ACTIVO"}


# =============================================================================
# END TO END
# =============================================================================

def test_cardio_evaluation_end_to_end(client):
    evaluator = create_evaluator(client)
    exam = create_exam(client, evaluator_ids=[evaluator["id"]])
    station = exam["stations"][0]
    question = station["questions"][0]
    student = create_student(client)

    assignment = client.post(f"{API}/student-exams", json={
        "student_id": student["id"], "exam_id": exam["id"], "evaluator_id": evaluator["id"],
    }).json()["data"]
    assert login(client).status_code == 200

    mine = client.get(f"{API}/evaluator/exams").json()["data"]
    assert [(a["id"], a["exam_title"], a["status"]) for a in mine] == [(assignment["id"], "Cardio", "Pendiente")]
    assert "first_name" not in mine[0]

    started = client.put(f"{API}/evaluator-exams/{assignment['id']}", json={"action": "iniciar"})
    assert started.json()["data"]["status"] == "En Progreso"

    batch = client.post(f"{API}/evaluator/answers/batch", json={
        "assignment_id": assignment["id"],
        "answers": [{"question_id": question["id"], "answer": "Sinusal", "points": 8}],
    })
    assert batch.status_code == 200
    assert batch.json()["data"][0]["points"] == 8

    finalized = client.post(f"{API}/evaluator/stations/finalize", json={
        "assignment_id": assignment["id"],
        "station_id": station["id"],
        "answers": [{"question_id": question["id"], "answer": "Sinusal", "points": 8}],
        "station_score": 8,
        "station_remarks": "Buena lectura",
        "exam_aggregate_score": 99,
    })
    assert finalized.status_code == 200
    assert (finalized.json()["data"]["status"], finalized.json()["data"]["score"]) == ("Completado", 8)

    results = client.get(f"{API}/evaluator/results/{assignment['id']}").json()["data"]
    assert (results["total_score"], results["max_total_score"]) == (8, 10)
    assert results["stations"][0]["questions"][0]["correct_answer"] == "Sinusal"

    students = client.get(f"{API}/exams/{exam['id']}/students").json()["data"]
    assert [(s["status"], s["score"]) for s in students] == [("Completado", 8)]
    assert client.get(f"{API}/evaluator/exams", params={"status": "Completado"}).json()["data"][0]["score"] == 8


def test_evaluator_answer_errors(client):
    evaluator = create_evaluator(client)
    exam = create_exam(client, evaluator_ids=[evaluator["id"]])
    student = create_student(client)
    assignment = client.post(f"{API}/student-exams", json={
        "student_id": student["id"], "exam_id": exam["id"], "evaluator_id": evaluator["id"],
    }).json()["data"]
    login(client)
    question_id = exam["stations"][0]["questions"][0]["id"]

    assert client.post(f"{API}/evaluator/answers/batch", json={
        "assignment_id": assignment["id"], "answers": [],
    }).status_code == 400
    assert client.post(f"{API}/evaluator/answers/batch", json={
        "answers": [{"question_id": question_id}],
    }).status_code == 400
    assert client.post(f"{API}/evaluator/answers/batch", json={
        "assignment_id": "missing", "answers": [{"question_id": question_id}],
    }).status_code == 404
    assert client.post(f"{API}/evaluator/stations/finalize", json={
        "assignment_id": assignment["id"], "answers": [{"question_id": question_id}],
    }).status_code == 400
    assert client.get(f"{API}/evaluator/results/missing").status_code == 404


def test_admin_bootstrap_and_evaluator_lookup(client):
    from osce_backend.scripts.init_db import init_db

    init_db(admin_email="admin@hospital.org", admin_password="secreto")
    init_db(admin_email="admin@hospital.org", admin_password="secreto")
    evaluator = create_evaluator(client)

    response = login(client, email="admin@hospital.org", password="secreto")
    assert response.status_code == 200
    assert response.json()["data"]["user"]["role"] == "admin"
    assert response.json()["data"]["user"]["evaluator_id"] is None

    assert client.get(f"{API}/evaluator/exams").status_code == 400
    lookup = client.get(f"{API}/evaluator/exams", params={"evaluator_id": evaluator["id"]})
    assert lookup.status_code == 200
    assert lookup.json()["data"] == []
