import time
from typing import Optional

import jwt
from passlib.context import CryptContext

from .config import get_settings

# Use pbkdf2_sha256 as default to avoid bcrypt 72-byte limitation in some envs.
# Rounds are pinned so the work factor does not drift with passlib upgrades.
pwd_context = CryptContext(
    schemes=["pbkdf2_sha256", "bcrypt"],
    deprecated="auto",
    pbkdf2_sha256__default_rounds=29000,
)

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    """False for a missing or unrecognised hash as well as a mismatch."""
    if not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def sign_session_id(sid: str, expires_in: Optional[int] = None) -> str:
    settings = get_settings()
    now = int(time.time())
    exp = now + (expires_in or settings.session_ttl_seconds)
    payload = {"sid": sid, "iat": now, "exp": exp}
    return jwt.encode(payload, settings.session_secret, algorithm=ALGORITHM)


def unsign_session_id(token: str) -> Optional[str]:
    """Session id carried by a cookie token, or None if forged or expired."""
    try:
        payload = jwt.decode(token, get_settings().session_secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
    sid = payload.get("sid")
    return sid if isinstance(sid, str) else None
