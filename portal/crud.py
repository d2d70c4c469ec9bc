import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth import hash_password, verify_password
from .errors import (
    AccountNotFound,
    DuplicateEmail,
    InvalidCredentials,
    PersistenceFailure,
    ValidationFailure,
)
from .utils import like_pattern, utcnow

logger = logging.getLogger(__name__)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email).first()


# -------------------- Auth service --------------------

def signup(db: Session, username: str, surname: str, email: str, phone: str, password: str) -> int:
    if not username or not email or not password:
        raise ValidationFailure()
    try:
        if get_user_by_email(db, email) is not None:
            logger.info("signup rejected, email already exists: %s", email)
            raise DuplicateEmail()
        user = models.User(
            displayname=username,
            surname=surname,
            email=email,
            phone=phone,
            password=hash_password(password),
            role=models.Role.MEMBER.value,
        )
        db.add(user)
        db.commit()
    except IntegrityError as e:
        # the unique constraint caught a concurrent signup the pre-check missed
        db.rollback()
        raise DuplicateEmail() from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("signup failed for %s", email)
        raise PersistenceFailure() from e
    db.refresh(user)
    logger.info("inserted user id %s", user.userid)
    return user.userid


def login(db: Session, email: str, password: str) -> schemas.SessionSnapshot:
    try:
        user = get_user_by_email(db, email)
    except SQLAlchemyError as e:
        logger.exception("login lookup failed for %s", email)
        raise PersistenceFailure() from e

    if user is None:
        logger.info("login failed, unknown email: %s", email)
        raise InvalidCredentials()
    if not user.password:
        logger.info("login failed, no stored password hash for: %s", email)
        raise InvalidCredentials()
    if not verify_password(password or "", user.password):
        logger.info("login failed, wrong password for: %s", email)
        raise InvalidCredentials()

    return schemas.SessionSnapshot(
        id=user.userid,
        email=user.email,
        role=user.role,
        displayname=user.displayname,
        surname=user.surname,
    )


def reset_password(db: Session, email: str, new_password: str) -> None:
    if not email or not new_password:
        raise ValidationFailure("please enter your email and a new password")
    try:
        user = get_user_by_email(db, email)
        if user is None:
            raise AccountNotFound()
        user.password = hash_password(new_password)
        db.add(user)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("password reset failed for %s", email)
        raise PersistenceFailure() from e
    logger.info("password reset for %s", email)


# -------------------- Member management --------------------

def count_users(db: Session) -> int:
    return db.query(func.count(models.User.userid)).scalar() or 0


def count_users_created_today(db: Session) -> int:
    start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    return (
        db.query(func.count(models.User.userid))
        .filter(models.User.created_at >= start)
        .scalar()
        or 0
    )


def latest_users(db: Session, limit: int = 5) -> List[models.User]:
    return (
        db.query(models.User)
        .order_by(models.User.created_at.desc(), models.User.userid.desc())
        .limit(limit)
        .all()
    )


def signups_per_day(db: Session, days: int = 7) -> schemas.WeekCounts:
    """Signup counts per day for today and the preceding `days - 1` days."""
    start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=days - 1)
    day = func.date(models.User.created_at)
    rows = (
        db.query(day.label("day"), func.count(models.User.userid).label("count"))
        .filter(models.User.created_at >= start)
        .group_by(day)
        .order_by(day)
        .all()
    )
    # SQLite returns the day as text, PostgreSQL as a date
    return schemas.WeekCounts(
        labels=[str(r.day) for r in rows],
        counts=[int(r.count) for r in rows],
    )


def list_members(db: Session, search: str | None = None) -> List[models.User]:
    q = db.query(models.User)
    if search:
        pattern = like_pattern(search)
        q = q.filter(
            or_(
                models.User.displayname.ilike(pattern, escape="\\"),
                models.User.email.ilike(pattern, escape="\\"),
            )
        )
    return q.order_by(models.User.userid).all()


def update_user_role(db: Session, user_id: int, role: models.Role) -> Optional[models.User]:
    user = db.get(models.User, user_id)
    if not user:
        return None
    user.role = models.Role(role).value
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user %s role set to %s", user_id, user.role)
    return user


def delete_user(db: Session, user_id: int) -> bool:
    user = db.get(models.User, user_id)
    if not user:
        return False
    db.delete(user)
    db.commit()
    logger.info("deleted user %s", user_id)
    return True


# -------------------- Payment store --------------------

def replace_payment(db: Session, payment: schemas.PaymentCreate) -> models.Payment:
    """Keep exactly one payment row per email: drop older rows, insert the new one."""
    missing = payment.missing_fields()
    if missing:
        raise ValidationFailure()
    try:
        db.query(models.Payment).filter(models.Payment.email == payment.email).delete(
            synchronize_session=False
        )
        record = models.Payment(**payment.model_dump())
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("payment write failed for %s", payment.email)
        raise PersistenceFailure("could not save payment details") from e
    db.refresh(record)
    logger.info("payment stored for %s (package %s)", record.email, record.package)
    return record


def latest_payment(db: Session, email: str) -> Optional[models.Payment]:
    return (
        db.query(models.Payment)
        .filter(models.Payment.email == email)
        .order_by(models.Payment.payment_date.desc(), models.Payment.id.desc())
        .first()
    )
