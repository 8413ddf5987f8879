import logging
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from errors import DuplicateEntry

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT")


def insert_unique(db: Session, row: RowT, existing: Query, dimension: str, message: str = None) -> RowT:
    """Insert ``row`` unless ``existing`` already matches its natural key.

    The pre-check only exists to give a readable error; the UNIQUE constraint
    on the table is what actually rejects a concurrent duplicate, which shows
    up here as an ``IntegrityError`` on commit.
    """
    if existing.first() is not None:
        raise DuplicateEntry(dimension, message)

    db.add(row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Concurrent duplicate rejected by storage constraint on %s", dimension)
        raise DuplicateEntry(dimension, message) from exc

    db.refresh(row)
    return row
