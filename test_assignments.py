"""
Tests de asignaciones, números de identificación y barrido de estados de exámenes
"""
from datetime import datetime, timezone

import pytest

from osce_backend.api.exceptions import ConflictError, NotFoundError, ValidationError
from osce_backend.database.models import StudentExamDB
from osce_backend.database.repositories import AssignmentRepository, ExamRepository
from osce_backend.models.enums import AssignmentStatus, ExamState
from osce_backend.services import AssignmentService, ExamStatusService, run_exam_status_sweep


def test_assign_exam_creates_pending_assignment(db, assignment):
    assert assignment.status == AssignmentStatus.PENDIENTE.value
    assert assignment.started_at is None
    assert assignment.identification_number is None


def test_assign_exam_is_unique_per_student_and_exam(db, assignment):
    service = AssignmentService(db)

    with pytest.raises(ConflictError):
        service.assign_exam(assignment.student_id, assignment.exam_id, assignment.evaluator_id)

    count = (
        db.query(StudentExamDB)
        .filter(StudentExamDB.student_id == assignment.student_id, StudentExamDB.exam_id == assignment.exam_id)
        .count()
    )
    assert count == 1


def test_assign_exam_validation(db, make_student, make_exam, make_evaluator):
    service = AssignmentService(db)
    student, exam, evaluator = make_student(), make_exam(), make_evaluator()

    with pytest.raises(ValidationError) as excinfo:
        service.assign_exam(student.id, None, "")
    assert excinfo.value.extra["fields"] == ["exam_id", "evaluator_id"]

    with pytest.raises(NotFoundError):
        service.assign_exam("missing-student", exam.id, evaluator.id)
    with pytest.raises(NotFoundError):
        service.assign_exam(student.id, "missing-exam", evaluator.id)
    with pytest.raises(NotFoundError):
        service.assign_exam(student.id, exam.id, "missing-evaluator")

    assert db.query(StudentExamDB).count() == 0


def test_identification_number_is_shared_by_the_day(db, assignment, make_exam):
    service = AssignmentService(db)

    assert service.set_identification_number(assignment.student_id, "2099-03-10", "17") == 1

    afternoon = make_exam(title="Neuro", application_date="2099-03-10T15:00:00")
    second = service.assign_exam(assignment.student_id, afternoon.id, assignment.evaluator_id)
    assert second.identification_number == "17"

    next_day = make_exam(title="Trauma", application_date="2099-03-11T09:00:00")
    third = service.assign_exam(assignment.student_id, next_day.id, assignment.evaluator_id)
    assert third.identification_number is None

    assert service.set_identification_number(assignment.student_id, "2099-03-10", "18") == 2
    numbers = {a.identification_number for a in AssignmentRepository(db).get_for_student_on_day(
        assignment.student_id, datetime(2099, 3, 10).date())}
    assert numbers == {"18"}


def test_identification_number_conflicts_with_other_student(db, assignment, make_student):
    service = AssignmentService(db)
    other = make_student()
    service.assign_exam(other.id, assignment.exam_id, assignment.evaluator_id)
    service.set_identification_number(assignment.student_id, "2099-03-10", "17")

    with pytest.raises(ConflictError) as excinfo:
        service.set_identification_number(other.id, "2099-03-10", "17")
    assert excinfo.value.extra["student_id"] == assignment.student_id

    assert service.set_identification_number(other.id, "2099-03-11", "17") == 0


def test_identification_number_validation(db, assignment):
    service = AssignmentService(db)

    with pytest.raises(ValidationError):
        service.set_identification_number(assignment.student_id, "mañana", "17")
    with pytest.raises(ValidationError):
        service.set_identification_number(assignment.student_id, "2099-03-10", "  ")
    with pytest.raises(ValidationError):
        service.set_identification_number("", "2099-03-10", "17")
    with pytest.raises(NotFoundError):
        service.set_identification_number("missing-student", "2099-03-10", "17")


def test_exam_dates_counts_active_exams_per_day(db, make_exam):
    make_exam(title="Cardio")
    make_exam(title="Neuro", application_date="2099-03-10T15:00:00")
    make_exam(title="Trauma", application_date="2099-04-20T10:30:00")
    make_exam(title="Borrador", application_date="2099-05-01T10:00:00", state="DRAFT")
    make_exam(title="Sin fecha", application_date=None)

    assert AssignmentService(db).exam_dates() == [
        {"date": "2099-03-10", "exam_count": 2},
        {"date": "2099-04-20", "exam_count": 1},
    ]


def test_status_sweep_inactivates_past_exams(db, make_exam):
    morning = make_exam(title="Mañana", application_date="2099-03-10T09:00:00")
    later = make_exam(title="Abril", application_date="2099-04-20T10:30:00")

    updated = ExamStatusService(db).update_exam_status(now=datetime(2099, 3, 10, 12, 0))

    assert [exam.id for exam in updated] == [morning.id]
    repo = ExamRepository(db)
    assert repo.get_by_id(morning.id).state == ExamState.INACTIVO.value
    assert repo.get_by_id(later.id).state == ExamState.ACTIVO.value

    assert ExamStatusService(db).update_exam_status(now=datetime(2099, 3, 10, 12, 0)) == []


def test_status_sweep_compares_in_exam_timezone(db, make_exam):
    early = make_exam(title="Temprano", application_date="2099-03-10T08:30:00")
    on_time = make_exam(title="En hora", application_date="2099-03-10T09:00:00")

    # 12:00 UTC son las 09:00 en Buenos Aires
    updated = ExamStatusService(db).update_exam_status(now=datetime(2099, 3, 10, 12, 0, tzinfo=timezone.utc))

    assert [exam.id for exam in updated] == [early.id]
    assert ExamRepository(db).get_by_id(on_time.id).state == ExamState.ACTIVO.value


def test_background_sweep_uses_own_session(db, make_exam):
    past = make_exam(title="Pasado", application_date="2020-01-01T09:00:00")
    future = make_exam(title="Futuro")

    run_exam_status_sweep()

    db.expire_all()
    repo = ExamRepository(db)
    assert repo.get_by_id(past.id).state == ExamState.INACTIVO.value
    assert repo.get_by_id(future.id).state == ExamState.ACTIVO.value


def test_students_for_date_lists_identification_numbers(db, assignment, make_student, make_exam):
    service = AssignmentService(db)
    afternoon = make_exam(title="Neuro", application_date="2099-03-10T15:00:00")
    service.assign_exam(assignment.student_id, afternoon.id, assignment.evaluator_id)
    other = make_student(last_name="Acosta")
    service.assign_exam(other.id, assignment.exam_id, assignment.evaluator_id)
    service.set_identification_number(assignment.student_id, "2099-03-10", "17")

    rows = service.students_for_date("2099-03-10")

    assert [(r["student_id"], r["exam_count"], r["identification_number"]) for r in rows] == [
        (other.id, 1, None),
        (assignment.student_id, 2, "17"),
    ]
    assert rows[1]["registration_number"] == "MAT-0001"
    assert service.students_for_date("2099-03-11") == []

    with pytest.raises(ValidationError):
        service.students_for_date(None)
