"""Access guards, attached to routes as FastAPI dependencies.

Page routes redirect when access is denied; API routes answer 401/403.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from . import schemas
from .config import get_settings
from .db import get_db
from .errors import Forbidden, Unauthorized
from .models import Role
from .sessions import read_session


class GuardRedirect(Exception):
    """Raised by page guards; turned into a 303 by the app's exception handler."""

    def __init__(self, url: str):
        super().__init__(url)
        self.url = url


def get_principal(request: Request, db: Session = Depends(get_db)) -> schemas.Principal:
    token = request.cookies.get(get_settings().session_cookie_name)
    snapshot = read_session(db, token)
    if snapshot is None:
        return schemas.Anonymous(token=token)
    return schemas.Authenticated(snapshot=snapshot, token=token)


def require_auth_api(principal: schemas.Principal = Depends(get_principal)) -> schemas.SessionSnapshot:
    """Snapshot of the logged-in user for API routes; 401 when anonymous."""
    if not isinstance(principal, schemas.Authenticated):
        raise HTTPException(status_code=Unauthorized.status_code, detail=Unauthorized.message)
    return principal.snapshot


def require_auth(redirect_to: str = "/"):
    """Page guard: anonymous visitors are redirected to `redirect_to`."""

    def guard(principal: schemas.Principal = Depends(get_principal)) -> schemas.SessionSnapshot:
        if not isinstance(principal, schemas.Authenticated):
            raise GuardRedirect(redirect_to)
        return principal.snapshot

    return guard


def require_role(*roles: Role, login_url: Optional[str] = None, deny_url: Optional[str] = None):
    """Permit only sessions whose role is in `roles`.

    Without URLs this is an API guard (401 anonymous, 403 wrong role). With
    `login_url`/`deny_url` it redirects instead, which is what pages want.
    """
    allowed = {Role(r).value for r in roles}
    is_page = login_url is not None or deny_url is not None

    def guard(principal: schemas.Principal = Depends(get_principal)) -> schemas.SessionSnapshot:
        if not isinstance(principal, schemas.Authenticated):
            if is_page:
                raise GuardRedirect(login_url or "/")
            raise HTTPException(status_code=Unauthorized.status_code, detail=Unauthorized.message)
        if principal.snapshot.role not in allowed:
            if is_page:
                raise GuardRedirect(deny_url or "/")
            raise HTTPException(status_code=Forbidden.status_code, detail=Forbidden.message)
        return principal.snapshot

    return guard


require_admin_api = require_role(Role.ADMIN)
require_admin_page = require_role(Role.ADMIN, login_url="/login", deny_url="/")
require_member_page = require_role(Role.MEMBER, login_url="/login", deny_url="/")
