"""Server-side session lifecycle.

Sessions live in the ``session`` table so they survive restarts. The cookie
only carries a signed, opaque session id; the snapshot itself never leaves
the server and is not refreshed from ``users`` until the next login.
"""
import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth import sign_session_id, unsign_session_id
from .config import get_settings
from .errors import PersistenceFailure
from .utils import utcnow

logger = logging.getLogger(__name__)


def create_session(db: Session, snapshot: schemas.SessionSnapshot) -> str:
    settings = get_settings()
    sid = secrets.token_urlsafe(32)
    record = models.SessionRecord(
        sid=sid,
        sess=snapshot.model_dump(),
        expire=utcnow() + timedelta(seconds=settings.session_ttl_seconds),
    )
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("could not persist session for user %s", snapshot.id)
        raise PersistenceFailure() from e
    return sign_session_id(sid, settings.session_ttl_seconds)


def read_session(db: Session, token: Optional[str]) -> Optional[schemas.SessionSnapshot]:
    if not token:
        return None
    sid = unsign_session_id(token)
    if sid is None:
        return None
    record = db.get(models.SessionRecord, sid)
    if record is None:
        return None
    if record.expire <= utcnow():
        try:
            db.delete(record)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("could not remove expired session")
        return None
    return schemas.SessionSnapshot.model_validate(record.sess)


def destroy_session(db: Session, token: Optional[str]) -> None:
    """Delete the stored session. Failures are logged, never raised."""
    if not token:
        return
    sid = unsign_session_id(token)
    if sid is None:
        return
    try:
        db.query(models.SessionRecord).filter(models.SessionRecord.sid == sid).delete(
            synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("logout error")


def purge_expired(db: Session) -> int:
    removed = (
        db.query(models.SessionRecord)
        .filter(models.SessionRecord.expire <= utcnow())
        .delete(synchronize_session=False)
    )
    db.commit()
    return removed


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
