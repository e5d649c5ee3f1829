"""
Enumeraciones del dominio de exámenes
"""
from enum import Enum


class ExamState(str, Enum):
    DRAFT = "DRAFT"
    ACTIVO = "ACTIVO"
    INACTIVO = "INACTIVO"


class AssignmentStatus(str, Enum):
    """Pendiente -> En Progreso -> Completado (monótono)"""
    PENDIENTE = "Pendiente"
    EN_PROGRESO = "En Progreso"
    COMPLETADO = "Completado"


class QuestionType(str, Enum):
    TEXTO_LIBRE = "texto_libre"
    NUMERICO = "numerico"
    OPCION_UNICA = "opcion_unica"
    OPCION_MULTIPLE = "opcion_multiple"


# Nombres heredados que todavía llegan desde formularios viejos
QUESTION_TYPE_ALIASES = {
    "seleccion": QuestionType.OPCION_UNICA,
    "multiple": QuestionType.OPCION_MULTIPLE,
    "listado": QuestionType.OPCION_MULTIPLE,
    "texto": QuestionType.TEXTO_LIBRE,
    "numero": QuestionType.NUMERICO,
}


class UserRole(str, Enum):
    ADMIN = "admin"
    EVALUADOR = "evaluador"
