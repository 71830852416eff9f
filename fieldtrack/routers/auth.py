"""
Auth router: login, profile, first-login password reset.

Rules:
- Only users already in the users table can login
- Firebase mode: the client signs in with the Firebase SDK, then calls /me
- Mock mode: login returns a mock-{email} token for local runs and tests
"""

from fastapi import APIRouter, Depends, HTTPException, status

from fieldtrack.core.config import settings
from fieldtrack.core.database import get_store
from fieldtrack.core.security import get_current_user, get_password_hash, verify_password
from fieldtrack.schemas.auth import PasswordReset, UserLogin, UserResponse
from fieldtrack.store.base import USERS
from fieldtrack.utils.response import success_response

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/login")
async def login(body: UserLogin):
    if settings.AUTH_MODE != "mock":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Use Firebase SDK for login, then call /api/auth/me with JWT.",
        )

    email = body.email.strip().lower()
    user_data = get_store().find(USERS, {"email": email, "is_active": True})
    if not user_data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No registered account found for this email.",
        )

    hashed_pw = user_data.get("password_hash")
    if hashed_pw and not verify_password(body.password, hashed_pw):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    user_response = UserResponse(
        uid=user_data.get("firebase_uid") or user_data["id"],
        email=user_data["email"],
        name=user_data.get("name", ""),
        role=user_data["role"],
        user_id=user_data["id"],
        requires_password_reset=user_data.get("requires_password_reset", False),
    )
    return success_response(
        data={"token": f"mock-{email}", "user": user_response.model_dump()},
        message="Login successful",
    )


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Return current authenticated user profile."""
    return success_response(data=user)


@router.post("/reset-password")
async def reset_password(body: PasswordReset):
    """Replace a temporary password (new supervisors) with one of the user's choosing."""
    store = get_store()
    user_data = store.find(USERS, {"email": body.email.strip().lower()})
    if not user_data:
        raise HTTPException(status_code=404, detail="User not found")

    if not user_data.get("requires_password_reset"):
        raise HTTPException(status_code=400, detail="Password reset not required for this user")

    hashed_pw = user_data.get("password_hash")
    if hashed_pw and not verify_password(body.old_password, hashed_pw):
        raise HTTPException(status_code=401, detail="Invalid old/temporary password")

    store.update(USERS, user_data["id"], {
        "password_hash": get_password_hash(body.new_password),
        "requires_password_reset": False,
    })

    return success_response(
        data={"token": f"mock-{user_data['email']}"},
        message="Password updated successfully. You are now logged in.",
    )
