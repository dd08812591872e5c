from fastapi import APIRouter, Request, Body, Depends, UploadFile, File
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from PIL import Image, ImageOps
import io
import secrets

from core.auth import AuthError, update_auth_user
from core.config import logger
from core.database import get_db
from models.history import PropertyHistory
from utils.profiles import resolve_profile, access_status
from utils.storage import upload_bytes
from utils.validation import validate_password
from utils.watermark import decode_image, ImageDecodeError

router = APIRouter(prefix="/api/account", tags=["account"])

EDITABLE_PROFILE_FIELDS = ("name", "creci", "telefone", "cidade", "estado", "photo_url")

MAX_PHOTO_BYTES = 10 * 1024 * 1024
AVATAR_SIZE = 250
AVATAR_QUALITY = 60
HISTORY_LIMIT = 5


def _square_avatar(raw: bytes) -> bytes:
    img = decode_image(raw).convert("RGB")
    # Center crop to a square, then scale
    img = ImageOps.fit(img, (AVATAR_SIZE, AVATAR_SIZE), method=Image.LANCZOS, centering=(0.5, 0.5))
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=AVATAR_QUALITY)
    return buf.getvalue()


@router.get("/profile")
async def get_profile(request: Request, db: Session = Depends(get_db)):
    prof, err = resolve_profile(request, db)
    if err:
        return err
    return prof.to_dict()


@router.put("/profile")
async def update_profile(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    prof, err = resolve_profile(request, db)
    if err:
        return err

    for field in EDITABLE_PROFILE_FIELDS:
        # Accept the client's camelCase photo key too
        key = field if field in payload else ("photoUrl" if field == "photo_url" and "photoUrl" in payload else None)
        if key is None:
            continue
        value = payload.get(key)
        setattr(prof, field, str(value).strip() if value is not None else None)

    try:
        db.commit()
    except Exception as ex:
        db.rollback()
        logger.warning(f"[account.profile] update failed for {prof.id}: {ex}")
        return JSONResponse({"error": "Failed to save profile"}, status_code=500)
    db.refresh(prof)
    return prof.to_dict()


@router.post("/profile/photo")
async def upload_profile_photo(request: Request, file: UploadFile = File(...), db: Session = Depends(get_db)):
    prof, err = resolve_profile(request, db)
    if err:
        return err

    content = await file.read()
    if len(content) > MAX_PHOTO_BYTES:
        return JSONResponse({"error": "file_too_large", "message": "A imagem é muito grande (máx 10MB)."}, status_code=413)
    if not content:
        return JSONResponse({"error": "empty_file"}, status_code=400)

    try:
        avatar = await run_in_threadpool(_square_avatar, content)
    except ImageDecodeError as ex:
        return JSONResponse({"error": "invalid_image", "message": str(ex)}, status_code=422)

    key = f"users/{prof.id}/avatar/avatar_{secrets.token_urlsafe(8)}.jpg"
    try:
        url = upload_bytes(key, avatar, content_type="image/jpeg")
    except Exception as ex:
        logger.warning(f"[account.photo] upload failed for {prof.id}: {ex}")
        return JSONResponse({"error": "Failed to upload photo"}, status_code=500)

    prof.photo_url = url
    try:
        db.commit()
    except Exception as ex:
        db.rollback()
        logger.warning(f"[account.photo] save failed for {prof.id}: {ex}")
        return JSONResponse({"error": "Failed to save profile"}, status_code=500)
    return {"ok": True, "photoUrl": url}


@router.post("/password")
async def change_password(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    prof, err = resolve_profile(request, db)
    if err:
        return err

    new = str(payload.get("new") or "")
    confirm = str(payload.get("confirm") or "")
    ok, msg = validate_password(new, confirm)
    if not ok:
        return JSONResponse({"error": "invalid_password", "message": msg}, status_code=400)

    try:
        update_auth_user(prof.id, password=new)
    except AuthError as ex:
        return JSONResponse({"error": ex.code, "message": ex.message}, status_code=400)
    logger.info(f"[account.password] password changed for {prof.id}")
    return {"ok": True}


@router.get("/access")
async def get_access(request: Request, db: Session = Depends(get_db)):
    prof, err = resolve_profile(request, db)
    if err:
        return err
    return access_status(prof)


@router.get("/history")
async def get_history(request: Request, db: Session = Depends(get_db)):
    prof, err = resolve_profile(request, db)
    if err:
        return err
    rows = (
        db.query(PropertyHistory)
        .filter(PropertyHistory.user_id == prof.id)
        .order_by(PropertyHistory.created_at.desc())
        .limit(HISTORY_LIMIT)
        .all()
    )
    return {"items": [r.to_item() for r in rows]}
