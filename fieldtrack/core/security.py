"""
Security module: Firebase JWT verification, mock auth and the role guard.

Auth Flow:
1. User logs in via Firebase and gets a JWT
2. Frontend sends the JWT as a Bearer token
3. FastAPI verifies it with the Firebase Admin SDK
4. Backend loads the user row (by firebase_uid) from the entity store
5. Inactive users are rejected
6. Routes receive a user dict and turn it into an ``Actor``

In mock mode a token of the form ``mock-<email>`` logs in as that user.
"""

import logging
import os
from contextlib import contextmanager

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fieldtrack.core.config import settings
from fieldtrack.core.database import get_store
from fieldtrack.core.errors import ConflictError, UpstreamUnavailableError
from fieldtrack.store.base import USERS
from fieldtrack.workflow.machine import Actor
from fieldtrack.workflow.states import Role

logger = logging.getLogger(__name__)

security_scheme = HTTPBearer()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


# ---------------------------------------------------------------------------
# Firebase initialization (lazy)
# ---------------------------------------------------------------------------
_firebase_app = None


def _init_firebase():
    global _firebase_app
    if _firebase_app is not None:
        return
    import firebase_admin
    from firebase_admin import credentials as fb_credentials

    cred_path = settings.FIREBASE_CREDENTIALS_PATH
    if os.path.exists(cred_path):
        _firebase_app = firebase_admin.initialize_app(fb_credentials.Certificate(cred_path))
    else:
        _firebase_app = firebase_admin.initialize_app()


def create_firebase_user(email: str, password: str, name: str) -> str:
    """Create the login for a newly promoted supervisor; returns its uid."""
    _init_firebase()
    from firebase_admin import auth as fb_auth
    from firebase_admin import exceptions as fb_exceptions

    try:
        record = fb_auth.create_user(email=email, password=password, display_name=name)
    except fb_auth.EmailAlreadyExistsError:
        raise ConflictError(f"A login for '{email}' already exists")
    except fb_exceptions.FirebaseError as exc:
        logger.error("Firebase create_user failed for %s: %s", email, exc)
        raise UpstreamUnavailableError("Could not create the supervisor login, please retry")
    return record.uid


def delete_firebase_user(uid: str):
    _init_firebase()
    from firebase_admin import auth as fb_auth
    from firebase_admin import exceptions as fb_exceptions

    try:
        fb_auth.delete_user(uid)
    except fb_exceptions.FirebaseError as exc:
        logger.error("Could not remove orphaned firebase user %s: %s", uid, exc)


@contextmanager
def firebase_login(email: str, password: str, name: str):
    """Create a Firebase login and remove it again if the enclosing block fails."""
    uid = create_firebase_user(email, password, name)
    try:
        yield uid
    except Exception:
        logger.warning("Rolling back firebase user %s for %s", uid, email)
        delete_firebase_user(uid)
        raise


@contextmanager
def mock_login(email: str, password: str, name: str):
    yield f"mock-{email}"


def login_provisioner():
    return firebase_login if settings.AUTH_MODE == "firebase" else mock_login


# ---------------------------------------------------------------------------
# Mock users (local development without Firebase)
# ---------------------------------------------------------------------------
MOCK_USERS = {
    "system-token": {
        "uid": "system",
        "email": "system@fieldtrack.local",
        "role": Role.SYSTEM.value,
        "name": "Scheduler",
        "user_id": "system",
    },
}


def _user_dict(row: dict, uid: str = None) -> dict:
    return {
        "uid": uid or row.get("firebase_uid") or row["id"],
        "email": row["email"],
        "role": row["role"],
        "name": row.get("name", ""),
        "user_id": row["id"],
    }


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
) -> dict:
    """Validate the Bearer token and return the user dict."""
    token = credentials.credentials

    if settings.AUTH_MODE == "mock":
        return _mock_auth(token)

    return _firebase_auth(token)


def _mock_auth(token: str) -> dict:
    user = MOCK_USERS.get(token)
    if user:
        return user

    if token.startswith("mock-"):
        row = get_store().find(USERS, {"email": token[5:].lower(), "is_active": True})
        if row:
            return _user_dict(row)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid token. Only registered users can login.",
    )


def _firebase_auth(token: str) -> dict:
    _init_firebase()
    from firebase_admin import auth as fb_auth

    try:
        decoded = fb_auth.verify_id_token(token)
    except (ValueError, fb_auth.InvalidIdTokenError, fb_auth.ExpiredIdTokenError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired Firebase token",
        )

    uid = decoded["uid"]
    row = get_store().find(USERS, {"firebase_uid": uid})
    if not row:
        logger.warning("Rejected unknown firebase uid %s", uid)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not registered. Contact your program administrator.",
        )
    if not row.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been deactivated.",
        )
    return _user_dict(row, uid=uid)


# ---------------------------------------------------------------------------
# Role guard dependency
# ---------------------------------------------------------------------------
def require_role(allowed_roles: list[str]):
    """
    Usage:
        @router.get("/faculty-only")
        def endpoint(user=Depends(require_role(["faculty", "admin"]))):
    """

    def role_checker(user: dict = Depends(get_current_user)) -> dict:
        if user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user['role']}' not authorized. Required: {allowed_roles}",
            )
        return user

    return role_checker


def actor_of(user: dict) -> Actor:
    return Actor(user_id=user.get("user_id", user.get("uid")), role=Role(user["role"]))
