"""
Authentication endpoints

Endpoints:
- POST /auth/login: JSON login, returns user info and access token
- GET /auth/me: Current user info
- PUT /auth/profile: Update name, email and password of the current user

After every successful login the exam status sweep is scheduled in the
background; its failures are logged and never reach the client.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...core.security import create_access_token, verify_password
from ...database.config import get_db
from ...database.repositories import EvaluatorRepository, UserRepository
from ...database.transaction import transaction
from ...services import AccountService, run_exam_status_sweep
from ..deps import AUTH_COOKIE_NAME, RequestContext, get_account_service, get_current_user
from ..exceptions import NotFoundError, UnauthorizedError, ValidationError
from ..schemas.common import APIResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


# =============================================================================
# SCHEMAS
# =============================================================================

class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserResponseSchema(BaseModel):
    id: str
    name: str
    email: str
    role: str
    is_active: bool
    first_login: bool
    evaluator_id: Optional[str] = None
    last_login: Optional[datetime] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    new_password: Optional[str] = None


class TokenSchema(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserWithTokenResponse(BaseModel):
    user: UserResponseSchema
    tokens: TokenSchema


def _user_to_response(user, evaluator_id: Optional[str]) -> UserResponseSchema:
    return UserResponseSchema(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        first_login=user.first_login,
        evaluator_id=evaluator_id,
        last_login=user.last_login,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post(
    "/login",
    response_model=APIResponse[UserWithTokenResponse],
    summary="Login with email and password",
)
async def login(
    credentials: LoginRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    if not credentials.email or not credentials.password:
        raise ValidationError("Email and password are required", {"fields": ["email", "password"]})

    users = UserRepository(db)
    user = users.get_by_email(credentials.email.strip())
    logger.info(f"Login attempt: email={credentials.email}, user_found={user is not None}")

    if user is None or not verify_password(credentials.password, user.hashed_password):
        logger.warning(f"Invalid credentials for: {credentials.email}")
        raise UnauthorizedError("Incorrect email or password")

    if not user.is_active:
        logger.warning(f"Inactive user tried to log in: {credentials.email}")
        raise UnauthorizedError("User account is disabled")

    with transaction(db, "Register login"):
        users.update_last_login(user)

    evaluator = EvaluatorRepository(db).get_by_user_id(user.id)
    access_token = create_access_token(data={"sub": user.id, "role": user.role})
    response.set_cookie(AUTH_COOKIE_NAME, access_token, httponly=True, samesite="lax")

    background_tasks.add_task(run_exam_status_sweep)

    logger.info(f"Login successful: {user.email}", extra={"user_id": user.id, "role": user.role})
    return APIResponse(
        success=True,
        data=UserWithTokenResponse(
            user=_user_to_response(user, evaluator.id if evaluator else None),
            tokens=TokenSchema(access_token=access_token),
        ),
        message="Login successful",
    )


@router.get("/me", response_model=APIResponse[UserResponseSchema], summary="Current user")
async def me(current_user: RequestContext = Depends(get_current_user), db: Session = Depends(get_db)):
    user = UserRepository(db).get_by_id(current_user.user_id)
    if user is None:
        raise NotFoundError("User", current_user.user_id)
    return APIResponse(success=True, data=_user_to_response(user, current_user.evaluator_id))


@router.put("/profile", response_model=APIResponse[UserResponseSchema], summary="Update current user profile")
async def update_profile(
    payload: ProfileUpdateRequest,
    current_user: RequestContext = Depends(get_current_user),
    service: AccountService = Depends(get_account_service),
):
    user = service.update_profile(current_user.user_id, payload.name, payload.email, payload.new_password)
    return APIResponse(
        success=True,
        data=_user_to_response(user, current_user.evaluator_id),
        message="Profile updated",
    )
