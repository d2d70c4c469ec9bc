import enum

from sqlalchemy import Column, Integer, String, DateTime, JSON
from .db import Base
from .utils import utcnow


class Role(str, enum.Enum):
    MEMBER = "Member"
    ADMIN = "Admin"


class User(Base):
    __tablename__ = "users"

    userid = Column(Integer, primary_key=True, index=True)
    displayname = Column(String, nullable=False, index=True)
    surname = Column(String, nullable=True)
    # uniqueness is also pre-checked on signup for a friendlier error
    email = Column(String, nullable=False, unique=True, index=True)
    phone = Column(String, nullable=True)
    # password hash (passlib). Nullable for legacy rows created without one
    password = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.MEMBER.value, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    fullname = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    package = Column(String, nullable=False)
    # card fields are stored as submitted; there is no gateway behind this table
    card_number = Column(String, nullable=False)
    expiry_date = Column(String, nullable=False)
    cvv = Column(String, nullable=False)
    payment_date = Column(DateTime, nullable=False, default=utcnow, index=True)


class SessionRecord(Base):
    __tablename__ = "session"

    sid = Column(String, primary_key=True)
    sess = Column(JSON, nullable=False)
    expire = Column(DateTime, nullable=False, index=True)
