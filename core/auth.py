import os
from typing import Optional
from fastapi import Request
from core.config import logger


class AuthError(Exception):
    """Raised when the auth provider rejects a user create/update."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


firebase_enabled = False
try:
    import firebase_admin
    from firebase_admin import auth as fb_auth, credentials as fb_credentials

    FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "")
    FIREBASE_SERVICE_ACCOUNT_JSON = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON", "")
    FIREBASE_SERVICE_ACCOUNT_JSON_PATH = (os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH", "") or "").strip().strip('"').strip("'")

    if not getattr(firebase_admin, "_apps", []):
        if FIREBASE_SERVICE_ACCOUNT_JSON:
            import json
            cred = fb_credentials.Certificate(json.loads(FIREBASE_SERVICE_ACCOUNT_JSON))
            firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None)
        elif FIREBASE_SERVICE_ACCOUNT_JSON_PATH and os.path.isfile(FIREBASE_SERVICE_ACCOUNT_JSON_PATH):
            if not os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
                os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = FIREBASE_SERVICE_ACCOUNT_JSON_PATH
            cred = fb_credentials.Certificate(FIREBASE_SERVICE_ACCOUNT_JSON_PATH)
            firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None)
        else:
            firebase_admin.initialize_app(options={"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None)
    firebase_enabled = True
    logger.info("Firebase Admin initialized")
except Exception as ex:
    logger.warning(f"Firebase Admin not initialized: {ex}")
    fb_auth = None  # type: ignore


ADMIN_ROLES = ("admin", "administrator")


def is_admin_role(role: Optional[str]) -> bool:
    return (role or "").strip().lower() in ADMIN_ROLES


def get_bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def verify_token(token: str) -> Optional[dict]:
    if not token or not firebase_enabled or not fb_auth:
        return None
    try:
        return fb_auth.verify_id_token(token)
    except Exception as ex:
        logger.warning(f"Token verification failed: {ex}")
        return None


def get_uid_from_request(request: Request) -> Optional[str]:
    token = get_bearer_token(request)
    if not token:
        return None
    decoded = verify_token(token)
    if not decoded:
        return None
    return decoded.get("uid")


def get_user_email_from_uid(uid: str) -> Optional[str]:
    try:
        if not firebase_enabled or not fb_auth:
            return None
        user = fb_auth.get_user(uid)
        return (getattr(user, "email", None) or "").lower()
    except Exception as ex:
        logger.warning(f"get_user_email_from_uid failed: {ex}")
        return None


def create_auth_user(email: str, password: str, display_name: Optional[str] = None) -> str:
    """Create the auth account and return its uid."""
    if not firebase_enabled or not fb_auth:
        raise AuthError("auth_disabled", "Authentication provider is not configured")
    try:
        user = fb_auth.create_user(email=email, password=password, display_name=display_name or None)
    except Exception as ex:
        text = str(ex)
        if ex.__class__.__name__ == "EmailAlreadyExistsError" or "EMAIL_EXISTS" in text or "already exists" in text.lower():
            raise AuthError("email_exists", "An account with this e-mail already exists") from ex
        raise AuthError("create_failed", text) from ex
    return user.uid


def update_auth_user(uid: str, email: Optional[str] = None, password: Optional[str] = None):
    """Update e-mail and/or password of an auth account. No-op when both are empty."""
    if not firebase_enabled or not fb_auth:
        raise AuthError("auth_disabled", "Authentication provider is not configured")
    kwargs = {}
    if email:
        kwargs["email"] = email
    if password:
        kwargs["password"] = password
    if not kwargs:
        return None
    try:
        return fb_auth.update_user(uid, **kwargs)
    except Exception as ex:
        logger.warning(f"update_auth_user failed for {uid}: {ex}")
        raise AuthError("update_failed", str(ex)) from ex


def revoke_sessions(uid: str) -> bool:
    try:
        if not firebase_enabled or not fb_auth:
            return False
        fb_auth.revoke_refresh_tokens(uid)
        return True
    except Exception as ex:
        logger.warning(f"revoke_sessions failed for {uid}: {ex}")
        return False
