import logging
import math
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import Cookie, Depends, FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
import psycopg2
import psycopg2.errors
import psycopg2.extras
from pydantic import BaseModel, EmailStr, constr
from dotenv import load_dotenv
from jose import JWTError, jwt
from passlib.hash import bcrypt

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

from backend import app_context
from backend.app.config import get_app_config
from backend.app.entitlements import UserRole
from backend.app.gates import AccessError, require_role


load_dotenv()


def _connect_timeout(raw_value: str) -> int:
    try:
        seconds = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if seconds < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(seconds))


DB_CFG = {
    "host": os.getenv("DB_HOST", "127.0.0.1"),
    "port": int(os.getenv("DB_PORT", "5432")),
    "dbname": os.getenv("DB_NAME", "audivia"),
    "user": os.getenv("DB_USER", "audivia"),
    "password": os.getenv("DB_PASSWORD", "audivia"),
    "connect_timeout": _connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
}

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
SESSION_TTL = timedelta(minutes=int(os.getenv("JWT_EXP_MINUTES", str(60 * 24 * 7))))
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "0").lower() in {"1", "true", "yes"}

logger = logging.getLogger("auth")

_USER_COLUMNS = "id::text AS id, username, email, role, is_active, created_at"
_DUPLICATE_MESSAGES = {
    "users_email_key": "Email already registered",
    "users_username_key": "Username already registered",
}


def get_conn():
    return psycopg2.connect(**DB_CFG)


class UserOut(BaseModel):
    id: str
    username: str
    email: str
    role: UserRole = UserRole.LISTENER
    is_active: bool = True
    created_at: datetime


class RegisterRequest(BaseModel):
    username: constr(strip_whitespace=True, min_length=3, max_length=80)
    email: EmailStr
    password: constr(min_length=8, max_length=256)


class LoginRequest(BaseModel):
    # Accepts either the username or the email address.
    username: str
    password: str


def create_access_token(*, subject: str, expires_delta: Optional[timedelta] = None) -> str:
    issued = datetime.now(timezone.utc)
    claims = {"sub": subject, "iat": issued, "exp": issued + (expires_delta or SESSION_TTL)}
    return jwt.encode(claims, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def _fetch_user_row(where: str, params: tuple, *, with_password: bool = False) -> Optional[Dict[str, Any]]:
    columns = f"{_USER_COLUMNS}, password_hash" if with_password else _USER_COLUMNS
    with get_conn() as conn, conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(f"SELECT {columns} FROM users WHERE {where} LIMIT 1", params)
        row = cur.fetchone()
    return dict(row) if row else None


def get_user_by_id(uid: str) -> Optional[UserOut]:
    row = _fetch_user_row("id = %s", (uid,))
    return UserOut(**row) if row else None


def get_user_with_password(identifier: str) -> Optional[Dict[str, Any]]:
    """Find a login candidate by email or username, preferring an email match."""

    lookup = identifier.strip()
    return _fetch_user_row(
        "LOWER(email) = LOWER(%s) OR LOWER(username) = LOWER(%s) "
        "ORDER BY (LOWER(email) = LOWER(%s)) DESC",
        (lookup, lookup, lookup),
        with_password=True,
    )


def resolve_user_from_session_token(session_token: str) -> Optional[UserOut]:
    """Decode the session JWT; expired, malformed or inactive sessions resolve to ``None``."""

    try:
        claims = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        user_id = str(UUID(str(claims["sub"])))
    except (JWTError, KeyError, ValueError):
        return None

    user = get_user_by_id(user_id)
    return user if user is not None and user.is_active else None


def get_current_user(session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)) -> UserOut:
    user = resolve_user_from_session_token(session_token) if session_token else None
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def get_optional_current_user(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> Optional[UserOut]:
    if not session_token:
        return None
    try:
        return resolve_user_from_session_token(session_token)
    except Exception:
        logger.exception("Unexpected error while resolving optional session token")
        return None


def require_admin(current_user: UserOut = Depends(get_current_user)) -> UserOut:
    try:
        require_role(current_user, UserRole.ADMIN)
    except AccessError as exc:
        raise exc.to_http_exception() from exc
    return current_user


def _start_session(response: Response, user: UserOut) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=create_access_token(subject=user.id),
        max_age=int(SESSION_TTL.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
        path="/",
    )


app_context.configure(
    get_conn=get_conn,
    get_current_user=get_current_user,
    get_optional_current_user=get_optional_current_user,
    require_admin=require_admin,
)

from backend.app.routes.admin import router as admin_router
from backend.app.routes.cart import router as cart_router
from backend.app.routes.catalog import router as catalog_router
from backend.app.routes.discounts import router as discounts_router
from backend.app.routes.library import router as library_router
from backend.app.routes.paypal import router as paypal_router
from backend.app.routes.user import router as user_router

app = FastAPI(title="Audivia API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_app_config().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for _router in (
    catalog_router,
    library_router,
    cart_router,
    paypal_router,
    discounts_router,
    user_router,
    admin_router,
):
    app.include_router(_router)


@app.post("/api/auth/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, response: Response):
    username = payload.username
    email = payload.email.strip().lower()

    with get_conn() as conn, conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(
            "SELECT LOWER(email) = %s AS email_taken FROM users "
            "WHERE LOWER(username) = LOWER(%s) OR LOWER(email) = %s "
            "ORDER BY 1 DESC LIMIT 1",
            (email, username, email),
        )
        clash = cur.fetchone()
        if clash:
            detail = _DUPLICATE_MESSAGES["users_email_key" if clash["email_taken"] else "users_username_key"]
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

        try:
            cur.execute(
                f"INSERT INTO users (username, email, password_hash) VALUES (%s, %s, %s) RETURNING {_USER_COLUMNS}",
                (username, email, bcrypt.hash(payload.password)),
            )
        except psycopg2.errors.UniqueViolation as exc:
            conn.rollback()
            detail = _DUPLICATE_MESSAGES.get(exc.diag.constraint_name, "Username or email already registered")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from exc
        row = cur.fetchone()
        conn.commit()

    if not row:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to create user")

    user = UserOut(**dict(row))
    _start_session(response, user)
    logger.info("User registered", extra={"user_id": user.id})
    return user


@app.post("/api/auth/login", response_model=UserOut)
def login(payload: LoginRequest, response: Response):
    row = get_user_with_password(payload.username)
    password_hash = row.pop("password_hash") if row else None
    if not password_hash or not bcrypt.verify(payload.password, password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    user = UserOut(**row)
    if not user.is_active:
        logger.info("Login refused for disabled account", extra={"user_id": user.id})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    _start_session(response, user)
    return user


@app.post("/api/auth/logout")
def logout(response: Response):
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )
    return {"ok": True}


@app.get("/api/auth/me", response_model=UserOut)
def read_current_user(current_user: UserOut = Depends(get_current_user)):
    return current_user


@app.get("/api/healthz")
def healthz():
    return {"ok": True}
