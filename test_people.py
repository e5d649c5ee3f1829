"""
Tests de servicios de personas: grupos, perfil de cuenta y verificación de contraseñas
"""
import pytest

from osce_backend.api.exceptions import ConflictError, NotFoundError, ValidationError
from osce_backend.core import constants
from osce_backend.core.security import get_password_hash, verify_password
from osce_backend.database.repositories import EvaluatorRepository, GroupRepository, UserRepository
from osce_backend.services import AccountService, GroupService


def test_group_with_students_cannot_be_deleted(db, make_student):
    service = GroupService(db)
    group = service.create({"name": "Comisión A"})
    student = make_student()
    service.add_student(group.id, student.id)

    with pytest.raises(ConflictError) as excinfo:
        service.delete(group.id)
    assert excinfo.value.extra["student_count"] == 1
    assert GroupRepository(db).get_by_id(group.id) is not None

    service.remove_student(group.id, student.id)
    service.delete(group.id)
    assert GroupRepository(db).get_by_id(group.id) is None

    with pytest.raises(NotFoundError):
        service.delete(group.id)


def test_update_profile_changes_password_and_ends_first_login(db, make_evaluator):
    evaluator = make_evaluator()
    user = UserRepository(db).get_by_email(evaluator.email)
    assert user.first_login is True

    updated = AccountService(db).update_profile(user.id, "Martín Gómez", "MGOMEZ@hospital.org", "nueva-clave")

    assert updated.name == "Martín Gómez"
    assert updated.email == "mgomez@hospital.org"
    assert updated.first_login is False
    assert verify_password("nueva-clave", updated.hashed_password)
    assert not verify_password(constants.DEFAULT_EVALUATOR_PASSWORD, updated.hashed_password)
    assert EvaluatorRepository(db).get_by_id(evaluator.id).email == "mgomez@hospital.org"


def test_update_profile_without_password_keeps_it(db, make_evaluator):
    evaluator = make_evaluator()
    user = UserRepository(db).get_by_email(evaluator.email)
    previous_hash = user.hashed_password

    updated = AccountService(db).update_profile(user.id, "Martín", evaluator.email)

    assert updated.hashed_password == previous_hash
    assert updated.first_login is True


def test_update_profile_errors(db, make_evaluator):
    first, second = make_evaluator(), make_evaluator()
    user = UserRepository(db).get_by_email(first.email)
    service = AccountService(db)

    with pytest.raises(ConflictError):
        service.update_profile(user.id, "Martín", second.email)
    with pytest.raises(ValidationError):
        service.update_profile(user.id, "  ", first.email)
    with pytest.raises(ValidationError):
        service.update_profile(user.id, "Martín", "no-es-un-email")
    with pytest.raises(NotFoundError):
        service.update_profile("missing-user", "Martín", "otro@hospital.org")

    assert UserRepository(db).get_by_id(user.id).email == first.email


def test_verify_password_accepts_bcrypt_and_legacy_plain_text():
    assert verify_password("12345", get_password_hash("12345"))
    assert not verify_password("54321", get_password_hash("12345"))
    assert verify_password("clave-vieja", "clave-vieja")
    assert not verify_password("clave", "clave-vieja")
    assert not verify_password("clave", "")
