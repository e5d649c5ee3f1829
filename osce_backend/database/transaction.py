"""
Unit-of-work helpers.

Every multi-statement write runs on ONE Session (one pinned connection):
commit when the block finishes, rollback when anything inside raises.
Repositories only add/flush; they never commit.

    with transaction(db, "Duplicate exam"):
        new_exam = exam_repo.create(...)
        station_repo.create(...)

Nested blocks join the outermost one, so a service that opens a
transaction can call another service that also opens one.
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..api.exceptions import ConflictError, ExamAPIException, InternalError

logger = logging.getLogger(__name__)

_DEPTH_KEY = "osce_transaction_depth"


class TransactionManager:
    """Tracks transaction nesting for one Session"""

    def __init__(self, db: Session):
        self.db = db

    @property
    def depth(self) -> int:
        return self.db.info.get(_DEPTH_KEY, 0)

    def enter(self) -> bool:
        """Returns True when this call opened the outermost transaction."""
        depth = self.depth
        self.db.info[_DEPTH_KEY] = depth + 1
        return depth == 0

    def exit(self) -> None:
        self.db.info[_DEPTH_KEY] = max(self.depth - 1, 0)


@contextmanager
def transaction(db: Session, description: str = "database operation") -> Iterator[Session]:
    """
    Runs the block as one atomic unit.

    Raises:
        ExamAPIException subclasses unchanged (after rollback)
        ConflictError: on IntegrityError (unique keys, FK violations)
        InternalError: on any other failure, storage errors included
    """
    manager = TransactionManager(db)
    outermost = manager.enter()
    try:
        yield db
        if outermost:
            db.commit()
            logger.debug(f"Transaction committed: {description}")
    except ExamAPIException:
        if outermost:
            db.rollback()
            logger.info(f"Transaction rolled back: {description}")
        raise
    except IntegrityError as e:
        if outermost:
            db.rollback()
        logger.warning(f"Integrity violation during '{description}': {e.orig}")
        raise ConflictError(
            f"{description} conflicts with existing data",
            details={"reason": str(e.orig)},
        ) from e
    except SQLAlchemyError as e:
        if outermost:
            db.rollback()
        logger.error(f"Database error during '{description}'", exc_info=True)
        raise InternalError(description, details=str(e)) from e
    except Exception as e:
        if outermost:
            db.rollback()
        logger.error(f"Transaction rolled back after unexpected error: {description}", exc_info=True)
        raise InternalError(description, details=str(e)) from e
    finally:
        manager.exit()
