"""
Servicios de dominio del backend de exámenes
"""
from .assignments import AssignmentService
from .evaluation_recorder import EvaluationRecorder
from .exam_composition import ExamCompositionService
from .exam_status import ExamStatusService, run_exam_status_sweep
from .people import AccountService, EvaluatorService, GroupService, HospitalService, StudentService

__all__ = [
    "AssignmentService",
    "EvaluationRecorder",
    "ExamCompositionService",
    "ExamStatusService",
    "run_exam_status_sweep",
    "AccountService",
    "EvaluatorService",
    "GroupService",
    "HospitalService",
    "StudentService",
]
