from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.auth import get_uid_from_request, get_user_email_from_uid, is_admin_role
from core.config import logger, ADMIN_EMAILS, CHECKOUT_URL, SUPPORT_EMAIL
from models.profile import Profile


def get_or_create_profile(db: Session, uid: str, email: Optional[str] = None, name: Optional[str] = None) -> Profile:
    """Fetch the caller's profile row, creating it on first sight."""
    prof = db.query(Profile).filter(Profile.id == uid).first()
    if prof:
        return prof

    email = (email or get_user_email_from_uid(uid) or f"{uid}@temp.invalid").strip().lower()
    if not name and "@" in email:
        name = email.split("@")[0]
    prof = Profile(
        id=uid,
        email=email,
        name=name or "",
        role="admin" if email in ADMIN_EMAILS else "user",
        is_active=True,
        subscription_status="inactive",
    )
    db.add(prof)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(prof)
    logger.info(f"[profiles] created profile for {uid} ({email})")
    return prof


def access_status(prof: Profile) -> dict:
    """Subscription gate: admins always pass; others need an active flag and subscription."""
    is_admin = is_admin_role(prof.role)
    status = (prof.subscription_status or "inactive").strip().lower()
    if is_admin:
        reason = "ok"
    elif prof.is_active is False:
        reason = "suspended"
    elif status != "active":
        reason = "subscription_required"
    else:
        reason = "ok"
    return {
        "allowed": reason == "ok",
        "reason": reason,
        "is_admin": is_admin,
        "subscription_status": status,
        "subscription_expires_at": prof.subscription_expires_at.isoformat() if prof.subscription_expires_at else None,
        "checkout_url": CHECKOUT_URL,
        "support_email": SUPPORT_EMAIL,
    }


def resolve_profile(request: Request, db: Session) -> Tuple[Optional[Profile], Optional[JSONResponse]]:
    uid = get_uid_from_request(request)
    if not uid:
        return None, JSONResponse({"error": "Unauthorized"}, status_code=401)
    return get_or_create_profile(db, uid), None


def require_access(request: Request, db: Session) -> Tuple[Optional[Profile], Optional[JSONResponse]]:
    prof, err = resolve_profile(request, db)
    if err:
        return None, err
    st = access_status(prof)
    if not st["allowed"]:
        return None, JSONResponse({"error": "access_denied", **st}, status_code=403)
    return prof, None
