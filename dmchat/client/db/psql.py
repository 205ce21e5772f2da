from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dmchat.db.session import SessionLocal
from dmchat.errors import PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def session_scope() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("database operation failed")
        raise PersistenceError("Internal Error") from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
