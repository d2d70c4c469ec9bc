import logging
import os
from contextlib import asynccontextmanager
from typing import List
from urllib.parse import urlencode

from fastapi import FastAPI, Depends, Form, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud, schemas, sessions
from .config import get_settings
from .db import SessionLocal, get_db, init_db
from .errors import (
    AccountNotFound,
    DuplicateEmail,
    InvalidCredentials,
    PersistenceFailure,
    ValidationFailure,
)
from .guards import (
    GuardRedirect,
    get_principal,
    require_admin_api,
    require_admin_page,
    require_auth_api,
    require_member_page,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = SessionLocal()
    try:
        removed = sessions.purge_expired(db)
        logger.info("removed %d expired sessions", removed)
    except SQLAlchemyError:
        logger.exception("could not purge expired sessions")
    finally:
        db.close()
    yield


app = FastAPI(title="Membership Portal", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# UI setup
templates = Jinja2Templates(directory=os.path.join(BASE_DIR, "templates"))
app.mount("/static", StaticFiles(directory=os.path.join(BASE_DIR, "static")), name="static")


@app.exception_handler(GuardRedirect)
async def guard_redirect_handler(request: Request, exc: GuardRedirect):
    return RedirectResponse(url=exc.url, status_code=303)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"message": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err.get("loc", ()) if p != "body") for err in exc.errors()]
    message = "invalid request"
    if any(fields):
        message += ": " + ", ".join(f for f in fields if f)
    return JSONResponse({"message": message}, status_code=422)


def render(request: Request, name: str, context: dict | None = None, status_code: int = 200, user=None):
    ctx = {"user": user, "error": None, "message": None}
    ctx.update(context or {})
    return templates.TemplateResponse(request, name, ctx, status_code=status_code)


def snapshot_of(principal: schemas.Principal):
    return principal.snapshot if isinstance(principal, schemas.Authenticated) else None


@app.get("/health")
async def health():
    return {"status": "ok"}


# -------------------- Pages --------------------

@app.get("/", response_class=HTMLResponse)
def home(request: Request, principal: schemas.Principal = Depends(get_principal)):
    return render(request, "home.html", user=snapshot_of(principal))


@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request, error: str | None = None):
    return render(request, "login.html", {"error": error})


@app.get("/signup", response_class=HTMLResponse)
def signup_page(request: Request):
    return render(request, "signup.html")


@app.get("/reset-password", response_class=HTMLResponse)
def reset_password_page(request: Request):
    return render(request, "reset_password.html")


@app.get("/admin/dashboard", response_class=HTMLResponse)
def admin_dashboard(
    request: Request,
    user: schemas.SessionSnapshot = Depends(require_admin_page),
    db: Session = Depends(get_db),
):
    # Runs in sequence: a sync Session must not be shared across threads.
    # Any failing aggregate still fails the whole page.
    try:
        total = crud.count_users(db)
        today = crud.count_users_created_today(db)
        latest = [schemas.LatestMember.model_validate(u) for u in crud.latest_users(db)]
        week = crud.signups_per_day(db)
    except SQLAlchemyError:
        logger.exception("error rendering dashboard")
        return render(
            request, "error.html", {"error": "could not load the dashboard"}, status_code=500, user=user
        )
    return render(
        request,
        "dashboard.html",
        {
            "totalMembers": total,
            "newMembersToday": today,
            "latestMembers": latest,
            "weekData": week.model_dump(),
        },
        user=user,
    )


@app.get("/admin/members", response_class=HTMLResponse)
def admin_members_page(
    request: Request,
    user: schemas.SessionSnapshot = Depends(require_admin_page),
    db: Session = Depends(get_db),
):
    try:
        members = [schemas.MemberRead.model_validate(u) for u in crud.list_members(db)]
    except SQLAlchemyError:
        logger.exception("error rendering manage page")
        return RedirectResponse(url="/admin/dashboard", status_code=303)
    return render(request, "manage.html", {"members": members}, user=user)


@app.get("/member", response_class=HTMLResponse)
def member_page(request: Request, user: schemas.SessionSnapshot = Depends(require_member_page)):
    return render(request, "member.html", user=user)


# -------------------- Auth forms --------------------

@app.post("/signup")
def signup(
    request: Request,
    username: str = Form(default=""),
    surname: str = Form(default=""),
    email: str = Form(default=""),
    phone: str = Form(default=""),
    password: str = Form(default=""),
    db: Session = Depends(get_db),
):
    logger.info("received signup: %s %s %s", username, surname, email)
    try:
        crud.signup(db, username.strip(), surname.strip(), email.strip(), phone.strip(), password)
    except (DuplicateEmail, ValidationFailure, PersistenceFailure) as e:
        return render(request, "signup.html", {"error": e.message}, status_code=e.status_code)
    return RedirectResponse(url="/login", status_code=303)


@app.post("/login")
def login(
    email: str = Form(default=""),
    password: str = Form(default=""),
    db: Session = Depends(get_db),
):
    try:
        snapshot = crud.login(db, email.strip(), password)
        token = sessions.create_session(db, snapshot)
    except (InvalidCredentials, PersistenceFailure) as e:
        return RedirectResponse(url="/login?" + urlencode({"error": e.message}), status_code=303)
    logger.info("user %s logged in", snapshot.id)
    response = RedirectResponse(url="/", status_code=303)
    sessions.set_session_cookie(response, token)
    return response


@app.post("/reset-password", response_class=HTMLResponse)
def reset_password(
    request: Request,
    email: str = Form(default=""),
    new_password: str = Form(default="", alias="newPassword"),
    db: Session = Depends(get_db),
):
    try:
        crud.reset_password(db, email.strip(), new_password)
    except (ValidationFailure, AccountNotFound, PersistenceFailure) as e:
        return render(request, "reset_password.html", {"error": e.message}, status_code=e.status_code)
    return render(request, "reset_password.html", {"message": "your password has been reset"})


@app.get("/logout")
def logout(principal: schemas.Principal = Depends(get_principal), db: Session = Depends(get_db)):
    sessions.destroy_session(db, principal.token)
    response = RedirectResponse(url="/", status_code=303)
    sessions.clear_session_cookie(response)
    return response


# -------------------- JSON API --------------------

@app.get("/api/user", response_model=schemas.SessionSnapshot)
def api_user(user: schemas.SessionSnapshot = Depends(require_auth_api)):
    return user


@app.get("/api/admin/total-members", dependencies=[Depends(require_admin_api)])
def api_total_members(db: Session = Depends(get_db)):
    try:
        return {"totalMembers": crud.count_users(db)}
    except SQLAlchemyError:
        logger.exception("error fetching total members")
        raise HTTPException(status_code=500, detail="server error")


@app.get("/api/admin/new-members-today", dependencies=[Depends(require_admin_api)])
def api_new_members_today(db: Session = Depends(get_db)):
    try:
        return {"newMembersToday": crud.count_users_created_today(db)}
    except SQLAlchemyError:
        logger.exception("error fetching new members")
        raise HTTPException(status_code=500, detail="server error")


@app.get(
    "/api/admin/latest-members",
    response_model=List[schemas.LatestMember],
    dependencies=[Depends(require_admin_api)],
)
def api_latest_members(db: Session = Depends(get_db)):
    try:
        return crud.latest_users(db)
    except SQLAlchemyError:
        logger.exception("error fetching latest members")
        raise HTTPException(status_code=500, detail="server error")


@app.get(
    "/api/admin/members-week",
    response_model=schemas.WeekCounts,
    dependencies=[Depends(require_admin_api)],
)
def api_members_week(db: Session = Depends(get_db)):
    try:
        return crud.signups_per_day(db)
    except SQLAlchemyError:
        logger.exception("error fetching weekly signups")
        raise HTTPException(status_code=500, detail="server error")


@app.get(
    "/api/admin/members",
    response_model=List[schemas.MemberRead],
    dependencies=[Depends(require_admin_api)],
)
def api_members(search: str = Query("", max_length=100), db: Session = Depends(get_db)):
    try:
        users = crud.list_members(db, search.strip())
    except SQLAlchemyError:
        logger.exception("error fetching members")
        raise HTTPException(status_code=500, detail="server error")
    return [schemas.MemberRead.model_validate(u) for u in users]


@app.put("/api/admin/update-role/{user_id}", dependencies=[Depends(require_admin_api)])
def api_update_role(user_id: int, payload: schemas.RoleUpdate, db: Session = Depends(get_db)):
    try:
        updated = crud.update_user_role(db, user_id, payload.role)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("error updating role for user %s", user_id)
        raise HTTPException(status_code=500, detail="server error")
    if not updated:
        raise HTTPException(status_code=404, detail="user not found")
    return {"success": True}


@app.delete("/api/admin/delete-member/{user_id}", dependencies=[Depends(require_admin_api)])
def api_delete_member(user_id: int, db: Session = Depends(get_db)):
    try:
        ok = crud.delete_user(db, user_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("error deleting user %s", user_id)
        raise HTTPException(status_code=500, detail="server error")
    if not ok:
        raise HTTPException(status_code=404, detail="user not found")
    return {"success": True}


@app.post("/api/payment", response_model=schemas.PaymentResult, response_model_exclude_none=True)
async def api_payment(request: Request, db: Session = Depends(get_db)):
    # Read the body by hand: anything that is not a JSON object counts as
    # missing fields and still gets a {"success": false} answer.
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        payload = {}
    try:
        payment = schemas.PaymentCreate.model_validate(payload)
        await run_in_threadpool(crud.replace_payment, db, payment)
    except ValidationError:
        return schemas.PaymentResult(success=False, message=ValidationFailure.message)
    except (ValidationFailure, PersistenceFailure) as e:
        return schemas.PaymentResult(success=False, message=e.message)
    return schemas.PaymentResult(success=True)


@app.get("/api/membership/me", response_model=schemas.MembershipRead)
def api_membership_me(
    user: schemas.SessionSnapshot = Depends(require_auth_api),
    db: Session = Depends(get_db),
):
    try:
        record = crud.latest_payment(db, user.email)
    except SQLAlchemyError:
        logger.exception("error fetching membership for %s", user.email)
        raise HTTPException(status_code=500, detail="server error")
    if record is None:
        raise HTTPException(status_code=404, detail="membership not found")
    return record


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("portal.main:app", host="0.0.0.0", port=settings.port)
