from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from typing import Any, Optional
from datetime import datetime, timedelta, timezone
import json
import re

from sqlalchemy import func
from sqlalchemy.orm import Session
from standardwebhooks import Webhook, WebhookVerificationError

from core.config import logger, CAKTO_WEBHOOK_SECRET, SUBSCRIPTION_PERIOD_DAYS
from core.database import get_db
from models.profile import Profile
from models.webhook import WebhookDebug

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

ACTIVATION_EVENTS = {
    "purchase_approved", "paid", "approved", "subscription_renewed",
    "renewed", "active", "order.completed", "charged",
}
DEACTIVATION_EVENTS = {
    "subscription_canceled", "refund", "refunded", "chargeback",
    "canceled", "deleted", "inactive",
}

# Checked in order; the first non-empty string wins
_EMAIL_PATHS = (
    ("customer", "email"),
    ("email",),
    ("customer_email",),
    ("buyer", "email"),
    ("data", "customer", "email"),
    ("data", "email"),
    ("data", "attributes", "customer_email"),
    ("data", "attributes", "email"),
)
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def _dig(payload: Any, path: tuple) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _raw_status(payload: dict) -> str:
    for key in ("status", "event", "eventType", "action"):
        v = payload.get(key)
        if v:
            return str(v).strip().lower()
    return ""


def _first_email_from_payload(payload: dict) -> Optional[str]:
    for path in _EMAIL_PATHS:
        v = _dig(payload, path)
        if isinstance(v, str) and v.strip():
            return v.strip().lower()
    m = _EMAIL_RE.search(json.dumps(payload, ensure_ascii=False))
    return m.group(0).strip().lower() if m else None


def _secret_ok(request: Request, raw_body: bytes, payload: dict) -> bool:
    secret = CAKTO_WEBHOOK_SECRET
    if not secret:
        return True
    if secret.startswith("whsec_"):
        headers = {
            "webhook-id": request.headers.get("webhook-id") or "",
            "webhook-timestamp": request.headers.get("webhook-timestamp") or "",
            "webhook-signature": request.headers.get("webhook-signature") or "",
        }
        try:
            Webhook(secret).verify(data=raw_body, headers=headers)
            return True
        except (WebhookVerificationError, ValueError) as ex:
            logger.warning(f"[webhook.cakto] signature verification failed: {ex}")
            return False
    provided = request.headers.get("x-cakto-secret") or payload.get("secret") or payload.get("cakto_secret") or ""
    return str(provided) == secret


def _set_action(db: Session, audit: WebhookDebug, action: str):
    audit.action_taken = action
    db.commit()


@router.post("/cakto")
async def cakto_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Payment provider events -> subscription status.
    Activation events extend access by SUBSCRIPTION_PERIOD_DAYS; cancellation/refund
    events suspend the account. Every delivery is recorded in webhook_debug.
    """
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body or b"")
    except ValueError as ex:
        logger.warning(f"[webhook.cakto] invalid JSON: {ex}")
        return JSONResponse({"error": "invalid JSON"}, status_code=400)
    if not isinstance(payload, dict):
        return JSONResponse({"error": "invalid JSON"}, status_code=400)

    try:
        raw_status = _raw_status(payload)
        email = _first_email_from_payload(payload)
        processed_email = email or "N/A"
        logger.info(f"[webhook.cakto] received status='{raw_status}' email='{processed_email}'")

        audit = WebhookDebug(provider="cakto", payload=payload, processed_email=processed_email, event_status=raw_status)
        db.add(audit)
        db.commit()

        if not _secret_ok(request, raw_body, payload):
            _set_action(db, audit, "Erro: Secret Inválido")
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        if not email:
            _set_action(db, audit, "Erro: Email não encontrado")
            return JSONResponse({"error": "Email missing"}, status_code=400)

        matches = db.query(Profile).filter(func.lower(Profile.email) == email)

        if raw_status in ACTIVATION_EVENTS:
            expires = datetime.now(timezone.utc) + timedelta(days=SUBSCRIPTION_PERIOD_DAYS)
            updated = matches.update(
                {
                    Profile.subscription_status: "active",
                    Profile.is_active: True,
                    Profile.subscription_expires_at: expires,
                },
                synchronize_session=False,
            )
            db.commit()
            if updated:
                _set_action(db, audit, f"Ativado: {email}")
                logger.info(f"[webhook.cakto] activated {email} until {expires.isoformat()}")
            else:
                _set_action(db, audit, "Erro: Perfil não encontrado no banco")
                logger.warning(f"[webhook.cakto] no profile for {email}")
        elif raw_status in DEACTIVATION_EVENTS:
            matches.update(
                {Profile.subscription_status: "inactive", Profile.is_active: False},
                synchronize_session=False,
            )
            db.commit()
            _set_action(db, audit, "Desativado")
            logger.info(f"[webhook.cakto] deactivated {email}")
        else:
            _set_action(db, audit, f"Ignorado: Status {raw_status}")

        return {"success": True}
    except Exception as ex:
        db.rollback()
        logger.exception(f"[webhook.cakto] processing failed: {ex}")
        return JSONResponse({"error": str(ex)}, status_code=500)
