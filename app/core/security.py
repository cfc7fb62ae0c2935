"""
Security module — Firebase JWT verification + Mock auth + Role guard.

Auth Flow:
1. User logs in via Firebase → gets JWT
2. Frontend sends JWT to FastAPI
3. FastAPI verifies JWT using Firebase Admin SDK
4. Backend fetches the user profile from Supabase (by firebase_uid)
5. Backend rejects inactive users
6. Backend injects: user_id, role, email

Roles: admin, faculty, student, staff.
"""

import logging
import os

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.database import get_supabase

logger = logging.getLogger(__name__)

security_scheme = HTTPBearer()

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
        logger.info("Firebase initialised from %s", cred_path)
    else:
        logger.info("%s not found; using application default credentials", cred_path)
        _firebase_app = firebase_admin.initialize_app()


# ---------------------------------------------------------------------------
# Mock users (local development without Firebase)
# ---------------------------------------------------------------------------
MOCK_USERS = {
    "admin-token": {
        "uid": "admin-firebase-uid",
        "email": "admin@campus.edu",
        "role": "admin",
        "name": "Admin",
        "user_id": "a0000000-0000-0000-0000-000000000001",
    },
}


def _profile(user_data: dict, uid: str) -> dict:
    return {
        "uid": uid,
        "email": user_data.get("email", ""),
        "role": user_data["role"],
        "name": user_data.get("name", ""),
        "user_id": user_data["id"],
    }


def _lookup_user(column: str, value: str) -> dict | None:
    db = get_supabase()
    result = db.table("users").select("*").eq(column, value).limit(1).execute()
    return result.data[0] if result.data else None


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------
async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
) -> dict:
    """Validate the Bearer token and return the caller's profile dict."""
    token = credentials.credentials

    if settings.AUTH_MODE == "mock":
        return _mock_auth(token)

    return _firebase_auth(token)


def _mock_auth(token: str) -> dict:
    """Mock mode: look up token in MOCK_USERS, or "mock-<email>" in the users table."""
    user = MOCK_USERS.get(token)
    if user:
        return user

    if token.startswith("mock-"):
        user_data = _lookup_user("email", token[5:])
        if user_data and user_data.get("is_active", True):
            return _profile(user_data, user_data.get("firebase_uid", user_data["id"]))

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid token",
    )


def _firebase_auth(token: str) -> dict:
    """Firebase mode: verify JWT, fetch profile from Supabase, enforce is_active."""
    _init_firebase()
    from firebase_admin import auth as fb_auth

    try:
        decoded = fb_auth.verify_id_token(token)
    except Exception as e:
        logger.info("Firebase token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired Firebase token",
        )

    uid = decoded["uid"]
    user_data = _lookup_user("firebase_uid", uid)

    if not user_data:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not registered. Contact your institution admin.",
        )

    if not user_data.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been deactivated. Contact your institution admin.",
        )

    profile = _profile(user_data, uid)
    profile["email"] = profile["email"] or decoded.get("email", "")
    return profile


# ---------------------------------------------------------------------------
# Role guard dependency
# ---------------------------------------------------------------------------
def require_role(allowed_roles: list[str]):
    """
    Usage:
        @router.get("/admin-only")
        async def endpoint(user=Depends(require_role(["admin"]))):
    """

    async def role_checker(
        user: dict = Depends(get_current_user),
    ) -> dict:
        if user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user['role']}' not authorized. Required: {allowed_roles}",
            )
        return user

    return role_checker
