from .enums import AssignmentStatus, ExamState, QuestionType, QUESTION_TYPE_ALIASES, UserRole

__all__ = ["AssignmentStatus", "ExamState", "QuestionType", "QUESTION_TYPE_ALIASES", "UserRole"]
