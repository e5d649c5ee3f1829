"""
Excepciones personalizadas para la API REST de exámenes
"""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class ExamAPIException(HTTPException):
    """Excepción base para la API de exámenes"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, str]] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.extra = extra or {}


class ValidationError(ExamAPIException):
    """Campos requeridos ausentes o mal formados"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
            error_code="VALIDATION_ERROR",
            extra=details or {}
        )


class NotFoundError(ExamAPIException):
    """Entidad referenciada inexistente"""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{entity} '{entity_id}' not found",
            error_code=f"{entity.upper().replace(' ', '_')}_NOT_FOUND",
            extra={"entity": entity, "id": str(entity_id)}
        )


class ConflictError(ExamAPIException):
    """Conflicto con el estado actual (asignación duplicada, borrado bloqueado, ...)"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=message,
            error_code="CONFLICT",
            extra=details or {}
        )


class UnauthorizedError(ExamAPIException):
    """Credenciales o token ausentes o inválidos"""

    def __init__(self, detail: str = "Invalid authentication credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class InternalError(ExamAPIException):
    """Cualquier otro fallo, incluidos los de almacenamiento"""

    def __init__(self, operation: str, details: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Operation failed: {operation}",
            error_code="INTERNAL_ERROR",
            extra={"operation": operation, "details": details}
        )
