import csv
import io
import math
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import APIRouter, Body, Request, Depends
from fastapi.responses import JSONResponse, Response
from sqlalchemy import or_, func
from sqlalchemy.orm import Session

from core.auth import AuthError, get_uid_from_request, is_admin_role, update_auth_user
from core.config import logger, ADMIN_ALLOWLIST_IPS, SUBSCRIPTION_PRICE_BRL
from core.database import get_db
from models.profile import Profile
from utils.rate_limit import check_admin_rate_limit
from utils.validation import client_ip, validate_email, MIN_PASSWORD_LENGTH

router = APIRouter(prefix="/api/admin", tags=["admin"])

CSV_HEADER = ["ID", "Nome", "E-mail", "Status", "Criado em"]


# --- Security helpers ---

def _require_admin(request: Request, db: Session) -> Tuple[Optional[Profile], Optional[JSONResponse]]:
    ip = client_ip(request)
    if ADMIN_ALLOWLIST_IPS and ip not in ADMIN_ALLOWLIST_IPS:
        return None, JSONResponse({"error": "forbidden"}, status_code=403)

    allowed, msg = check_admin_rate_limit(ip)
    if not allowed:
        return None, JSONResponse({"error": "rate_limited", "message": msg}, status_code=429)

    uid = get_uid_from_request(request)
    if not uid:
        return None, JSONResponse({"error": "unauthorized"}, status_code=401)
    caller = db.query(Profile).filter(Profile.id == uid).first()
    if not caller or not is_admin_role(caller.role):
        logger.warning(f"[admin] non-admin {uid} from {ip} denied")
        return None, JSONResponse({"error": "forbidden"}, status_code=403)
    return caller, None


def _active_filter():
    return or_(Profile.subscription_status == "active", Profile.is_active.is_(True))


def _pending_filter():
    return or_(Profile.subscription_status == "inactive", Profile.is_active.is_(False))


def _update_credentials(db: Session, user_id: str, email: Optional[str], password: Optional[str]) -> Optional[JSONResponse]:
    """Update the target's auth e-mail/password and mirror the e-mail into its profile."""
    email = (email or "").strip().lower() or None
    password = password or None
    if email:
        ok, err = validate_email(email)
        if not ok:
            return JSONResponse({"error": "invalid_email", "message": err}, status_code=400)
    try:
        update_auth_user(user_id, email=email, password=password)
    except AuthError as ex:
        return JSONResponse({"error": ex.code, "message": ex.message}, status_code=400)

    if email:
        prof = db.query(Profile).filter(Profile.id == user_id).first()
        if prof:
            prof.email = email
            try:
                db.commit()
            except Exception as ex:
                db.rollback()
                logger.warning(f"[admin.credentials] profile e-mail mirror failed for {user_id}: {ex}")
                return JSONResponse({"error": "Failed to save profile"}, status_code=500)
    return None


# --- Endpoints ---

@router.get("/users")
async def admin_users_list(
    request: Request,
    page: int = 1,
    page_size: int = 50,
    q: Optional[str] = None,
    db: Session = Depends(get_db),
):
    _, sec = _require_admin(request, db)
    if sec is not None:
        return sec

    page = max(1, int(page or 1))
    page_size = max(1, min(int(page_size or 50), 200))

    query = db.query(Profile)
    term = (q or "").strip().lower()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(func.lower(Profile.name).like(like), func.lower(Profile.email).like(like)))

    total = query.count()
    rows = (
        query.order_by(Profile.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "users": [p.to_dict() for p in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": max(1, math.ceil(total / page_size)),
    }


@router.get("/stats")
async def admin_stats(request: Request, db: Session = Depends(get_db)):
    _, sec = _require_admin(request, db)
    if sec is not None:
        return sec
    total = db.query(Profile).count()
    active = db.query(Profile).filter(_active_filter()).count()
    pending = db.query(Profile).filter(_pending_filter()).count()
    return {
        "total_users": total,
        "active_users": active,
        "pending_users": pending,
        "estimated_revenue": round(active * SUBSCRIPTION_PRICE_BRL, 2),
    }


@router.post("/users/{user_id}/toggle")
async def admin_toggle_user(user_id: str, request: Request, db: Session = Depends(get_db)):
    caller, sec = _require_admin(request, db)
    if sec is not None:
        return sec
    prof = db.query(Profile).filter(Profile.id == user_id).first()
    if not prof:
        return JSONResponse({"error": "not_found"}, status_code=404)

    prof.is_active = not (prof.is_active is not False)
    try:
        db.commit()
    except Exception as ex:
        db.rollback()
        logger.warning(f"[admin.toggle] failed for {user_id}: {ex}")
        return JSONResponse({"error": "update_failed"}, status_code=500)
    logger.info(f"[admin.toggle] {caller.id} set {user_id} is_active={prof.is_active}")
    return {"id": user_id, "is_active": prof.is_active}


@router.post("/users/{user_id}/update")
async def admin_update_user(user_id: str, request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    """
    Edit a user's name and, when changed, login credentials.
    Body: { "name"?: str, "email"?: str, "password"?: str }
    """
    caller, sec = _require_admin(request, db)
    if sec is not None:
        return sec
    prof = db.query(Profile).filter(Profile.id == user_id).first()
    if not prof:
        return JSONResponse({"error": "not_found"}, status_code=404)

    if "name" in payload:
        prof.name = str(payload.get("name") or "").strip()
        try:
            db.commit()
        except Exception as ex:
            db.rollback()
            logger.warning(f"[admin.update] name update failed for {user_id}: {ex}")
            return JSONResponse({"error": "update_failed"}, status_code=500)

    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    email_changed = bool(email) and email != (prof.email or "").lower()
    password_set = len(password) >= MIN_PASSWORD_LENGTH
    if email_changed or password_set:
        err = _update_credentials(db, user_id, email if email_changed else None, password if password_set else None)
        if err is not None:
            return err
        db.refresh(prof)

    logger.info(f"[admin.update] {caller.id} updated {user_id}")
    return {"ok": True, "user": prof.to_dict()}


@router.post("/credentials")
async def admin_update_credentials(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    """
    Privileged credential update.
    Body: { "userId": str, "email"?: str, "password"?: str }
    """
    caller, sec = _require_admin(request, db)
    if sec is not None:
        return sec
    user_id = str(payload.get("userId") or "").strip()
    if not user_id:
        return JSONResponse({"error": "missing_user_id"}, status_code=400)

    err = _update_credentials(db, user_id, payload.get("email"), payload.get("password"))
    if err is not None:
        return err
    logger.info(f"[admin.credentials] {caller.id} updated credentials of {user_id}")
    return {"ok": True, "message": "Credenciais atualizadas com sucesso"}


@router.get("/users/pending.csv")
async def admin_pending_csv(request: Request, db: Session = Depends(get_db)):
    _, sec = _require_admin(request, db)
    if sec is not None:
        return sec
    rows = db.query(Profile).filter(_pending_filter()).order_by(Profile.created_at.desc()).all()
    if not rows:
        return JSONResponse({"error": "no_pending_users"}, status_code=404)

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for p in rows:
        status = p.subscription_status or ("Suspenso" if p.is_active is False else "Pendente")
        created = p.created_at.strftime("%d/%m/%Y") if p.created_at else ""
        writer.writerow([p.id, p.name or "N/A", p.email or "", status, created])

    filename = f"usuarios_pendentes_{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.csv"
    return Response(
        content=buf.getvalue(),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Access-Control-Expose-Headers": "Content-Disposition",
        },
    )
