"""
Database package for the OSCE exam backend

Provides:
- SQLAlchemy database configuration
- Database session management
- Base model for ORM
- ORM models (ExamDB, StationDB, StudentExamDB, etc.)
- Repository pattern implementations
- Transaction management utilities
"""
from .config import DatabaseConfig, get_db, get_db_session, init_database, get_db_config
from .base import Base
from .transaction import transaction, TransactionManager

# ORM Models
from .models import (
    HospitalDB,
    GroupDB,
    StudentDB,
    UserDB,
    EvaluatorDB,
    ExamDB,
    StationDB,
    QuestionDB,
    OptionDB,
    StudentExamDB,
    StudentAnswerDB,
    StationResultDB,
)

# Repositories
from .repositories import (
    HospitalRepository,
    StudentRepository,
    GroupRepository,
    UserRepository,
    EvaluatorRepository,
    ExamRepository,
    StationRepository,
    QuestionRepository,
    OptionRepository,
    AssignmentRepository,
    AnswerRepository,
    StationResultRepository,
    StatsRepository,
)

__all__ = [
    # Configuration
    "DatabaseConfig",
    "get_db",
    "get_db_session",
    "init_database",
    "get_db_config",
    "Base",
    # Transaction management
    "transaction",
    "TransactionManager",
    # ORM Models
    "HospitalDB",
    "GroupDB",
    "StudentDB",
    "UserDB",
    "EvaluatorDB",
    "ExamDB",
    "StationDB",
    "QuestionDB",
    "OptionDB",
    "StudentExamDB",
    "StudentAnswerDB",
    "StationResultDB",
    # Repositories
    "HospitalRepository",
    "StudentRepository",
    "GroupRepository",
    "UserRepository",
    "EvaluatorRepository",
    "ExamRepository",
    "StationRepository",
    "QuestionRepository",
    "OptionRepository",
    "AssignmentRepository",
    "AnswerRepository",
    "StationResultRepository",
    "StatsRepository",
]
