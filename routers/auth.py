from fastapi import APIRouter, Request, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import httpx

from core.auth import (
    AuthError,
    create_auth_user,
    get_bearer_token,
    revoke_sessions,
    verify_token,
)
from core.config import logger, FIREBASE_WEB_API_KEY
from core.database import get_db
from models.profile import Profile
from utils.profiles import get_or_create_profile
from utils.rate_limit import check_signup_rate_limit
from utils.validation import validate_email, validate_password, client_ip

router = APIRouter(prefix="/api/auth", tags=["auth"])

IDENTITY_TOOLKIT_SIGNIN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"

# Identity Toolkit error codes that mean "wrong e-mail or password"
_BAD_CREDENTIAL_CODES = ("EMAIL_NOT_FOUND", "INVALID_PASSWORD", "INVALID_LOGIN_CREDENTIALS", "INVALID_EMAIL", "USER_DISABLED")


async def _identity_toolkit_sign_in(email: str, password: str) -> tuple[int, dict]:
    async with httpx.AsyncClient(timeout=10.0) as client:
        r = await client.post(
            IDENTITY_TOOLKIT_SIGNIN_URL,
            params={"key": FIREBASE_WEB_API_KEY},
            json={"email": email, "password": password, "returnSecureToken": True},
        )
    try:
        data = r.json()
    except ValueError:
        data = {}
    return r.status_code, data


@router.post("/signup")
async def signup(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    """
    Create an agent account.
    Body: { "email": str, "password": str, "name": str }
    """
    ip = client_ip(request)
    allowed, msg = check_signup_rate_limit(ip)
    if not allowed:
        logger.warning(f"[auth.signup] rate limit exceeded for IP {ip}")
        return JSONResponse({"error": "rate_limited", "message": msg}, status_code=429)

    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    name = str(payload.get("name") or "").strip()

    ok, err = validate_email(email)
    if not ok:
        return JSONResponse({"error": "invalid_email", "message": err}, status_code=400)
    ok, err = validate_password(password)
    if not ok:
        return JSONResponse({"error": "invalid_password", "message": err}, status_code=400)

    try:
        uid = create_auth_user(email, password, display_name=name)
    except AuthError as ex:
        if ex.code == "email_exists":
            return JSONResponse({"error": "email_exists", "message": ex.message}, status_code=409)
        if ex.code == "auth_disabled":
            return JSONResponse({"error": "auth_unavailable"}, status_code=503)
        logger.warning(f"[auth.signup] create failed for {email}: {ex.message}")
        return JSONResponse({"error": "signup_failed", "message": ex.message}, status_code=400)

    prof = get_or_create_profile(db, uid, email=email, name=name)
    logger.info(f"[auth.signup] new account {uid} ({email}) from {ip}")
    return {"ok": True, "uid": uid, "profile": prof.to_dict()}


@router.post("/signin")
async def signin(payload: dict = Body(...)):
    """Exchange e-mail/password for an ID token + refresh token."""
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    if not email or not password:
        return JSONResponse({"error": "missing_credentials"}, status_code=400)
    if not FIREBASE_WEB_API_KEY:
        return JSONResponse({"error": "auth_unavailable"}, status_code=503)

    try:
        status, data = await _identity_toolkit_sign_in(email, password)
    except httpx.HTTPError as ex:
        logger.warning(f"[auth.signin] identity toolkit request failed: {ex}")
        return JSONResponse({"error": "auth_unavailable"}, status_code=503)

    if status != 200:
        code = str(((data or {}).get("error") or {}).get("message") or "")
        if any(code.startswith(c) for c in _BAD_CREDENTIAL_CODES):
            return JSONResponse({"error": "invalid_credentials"}, status_code=401)
        if code.startswith("TOO_MANY_ATTEMPTS"):
            return JSONResponse({"error": "rate_limited", "message": code}, status_code=429)
        logger.warning(f"[auth.signin] sign-in failed ({status}): {code}")
        return JSONResponse({"error": "signin_failed", "message": code}, status_code=401)

    return {
        "uid": data.get("localId"),
        "email": data.get("email") or email,
        "id_token": data.get("idToken"),
        "refresh_token": data.get("refreshToken"),
        "expires_in": int(data.get("expiresIn") or 3600),
    }


@router.post("/signout")
async def signout(request: Request):
    # A missing or expired session is already signed out
    token = get_bearer_token(request)
    decoded = verify_token(token) if token else None
    if decoded and decoded.get("uid"):
        revoke_sessions(decoded["uid"])
    return {"ok": True}


@router.get("/session")
async def session(request: Request, db: Session = Depends(get_db)):
    token = get_bearer_token(request)
    decoded = verify_token(token) if token else None
    if not decoded or not decoded.get("uid"):
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    uid = decoded["uid"]
    email = (decoded.get("email") or "").lower() or None
    prof = db.query(Profile).filter(Profile.id == uid).first() or get_or_create_profile(db, uid, email=email, name=decoded.get("name"))
    return {"uid": uid, "email": prof.email, "profile": prof.to_dict()}
