"""
Dependencias de FastAPI: sesión de base de datos, repositorios, servicios
y contexto de la request autenticada.
"""
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from ..core import constants
from ..core.security import decode_access_token
from ..database.config import get_db
from ..database.repositories import (
    EvaluatorRepository,
    ExamRepository,
    GroupRepository,
    HospitalRepository,
    StudentRepository,
    UserRepository,
)
from ..services import (
    AccountService,
    AssignmentService,
    EvaluationRecorder,
    EvaluatorService,
    ExamCompositionService,
    ExamStatusService,
    GroupService,
    HospitalService,
    StudentService,
)
from .exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

# Cookie que usa el frontend para guardar el token
AUTH_COOKIE_NAME = "auth_token"


# =============================================================================
# REPOSITORIES
# =============================================================================

def get_exam_repository(db: Session = Depends(get_db)) -> ExamRepository:
    return ExamRepository(db)


def get_student_repository(db: Session = Depends(get_db)) -> StudentRepository:
    return StudentRepository(db)


def get_evaluator_repository(db: Session = Depends(get_db)) -> EvaluatorRepository:
    return EvaluatorRepository(db)


def get_hospital_repository(db: Session = Depends(get_db)) -> HospitalRepository:
    return HospitalRepository(db)


def get_group_repository(db: Session = Depends(get_db)) -> GroupRepository:
    return GroupRepository(db)


# =============================================================================
# SERVICES
# =============================================================================

def get_composition_service(db: Session = Depends(get_db)) -> ExamCompositionService:
    return ExamCompositionService(db)


def get_evaluation_recorder(db: Session = Depends(get_db)) -> EvaluationRecorder:
    return EvaluationRecorder(db)


def get_assignment_service(db: Session = Depends(get_db)) -> AssignmentService:
    return AssignmentService(db)


def get_exam_status_service(db: Session = Depends(get_db)) -> ExamStatusService:
    return ExamStatusService(db)


def get_student_service(db: Session = Depends(get_db)) -> StudentService:
    return StudentService(db)


def get_evaluator_service(db: Session = Depends(get_db)) -> EvaluatorService:
    return EvaluatorService(db)


def get_hospital_service(db: Session = Depends(get_db)) -> HospitalService:
    return HospitalService(db)


def get_group_service(db: Session = Depends(get_db)) -> GroupService:
    return GroupService(db)


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    return AccountService(db)


# =============================================================================
# AUTH
# =============================================================================

@dataclass
class RequestContext:
    """Usuario autenticado de la request, pasado explícitamente a los servicios"""
    user_id: str
    email: str
    role: str
    token: str
    evaluator_id: Optional[str] = None


def _extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(AUTH_COOKIE_NAME)


async def get_current_user(request: Request, db: Session = Depends(get_db)) -> RequestContext:
    """
    Valida el token (header Bearer o cookie) y arma el contexto de la request.

    Raises:
        UnauthorizedError: token ausente, inválido o de un usuario inactivo
    """
    token = _extract_token(request)
    if not token:
        raise UnauthorizedError("Authentication token is required")

    payload = decode_access_token(token)
    if payload is None or not payload.get("sub"):
        raise UnauthorizedError("Invalid or expired token")

    user = UserRepository(db).get_by_id(payload["sub"])
    if user is None or not user.is_active:
        raise UnauthorizedError("User not found or inactive")

    evaluator = EvaluatorRepository(db).get_by_user_id(user.id)
    return RequestContext(
        user_id=user.id,
        email=user.email,
        role=user.role,
        token=token,
        evaluator_id=evaluator.id if evaluator else None,
    )


async def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """El cron externo se autentica con 'Authorization: Bearer <CRON_SECRET>'"""
    expected = f"Bearer {constants.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("Unauthorized access attempt to exam status cron endpoint")
        raise UnauthorizedError("Invalid cron secret")
