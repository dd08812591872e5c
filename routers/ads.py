from fastapi import APIRouter, Request, Body, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from core.config import logger
from core.database import get_db
from models.history import PropertyHistory
from utils.copywriter import (
    PLATFORMS,
    CopyGenerationError,
    generate_ads,
    generate_single_ad,
    missing_required_fields,
    normalize_property,
)
from utils.profiles import require_access
from utils.rate_limit import check_generation_rate_limit

router = APIRouter(prefix="/api/ads", tags=["ads"])


def _rate_limited(uid: str):
    allowed, msg = check_generation_rate_limit(uid)
    if allowed:
        return None
    logger.warning(f"[ads] rate limit exceeded for {uid}")
    return JSONResponse({"error": "rate_limited", "message": msg}, status_code=429)


@router.post("/generate")
async def generate(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    """
    Generate listing copy for all platforms and record it in the history.
    Body: { "property": { tipo, cidade, bairro, preco, area, quartos, banheiros, vagas, diferenciais } }
    """
    prof, err = require_access(request, db)
    if err:
        return err

    prop = normalize_property(payload.get("property") or {})
    missing = missing_required_fields(prop)
    if missing:
        return JSONResponse(
            {"error": "missing_fields", "fields": missing, "message": "Preencha pelo menos Tipo, Preço e Cidade."},
            status_code=400,
        )

    limited = _rate_limited(prof.id)
    if limited:
        return limited

    try:
        ads = await run_in_threadpool(generate_ads, prop, prof.to_dict())
    except CopyGenerationError as ex:
        logger.warning(f"[ads.generate] generation failed for {prof.id}: {ex}")
        return JSONResponse({"error": "generation_failed", "message": str(ex)}, status_code=502)

    row = PropertyHistory(user_id=prof.id, property_data=prop, ads_data=ads)
    db.add(row)
    try:
        db.commit()
    except Exception as ex:
        db.rollback()
        logger.warning(f"[ads.generate] history insert failed for {prof.id}: {ex}")
        return JSONResponse({"error": "Failed to save history"}, status_code=500)
    db.refresh(row)

    return {"ads": ads, "history_item": row.to_item()}


@router.post("/regenerate")
async def regenerate(request: Request, payload: dict = Body(...), db: Session = Depends(get_db)):
    """
    Rewrite the copy for one platform, keeping the others.
    Body: { "platform": str, "property": {...}, "ads": {...}, "history_id"?: str }
    """
    prof, err = require_access(request, db)
    if err:
        return err

    platform = str(payload.get("platform") or "").strip().lower()
    if platform not in PLATFORMS:
        return JSONResponse({"error": "invalid_platform", "allowed": list(PLATFORMS)}, status_code=400)

    limited = _rate_limited(prof.id)
    if limited:
        return limited

    prop = normalize_property(payload.get("property") or {})
    try:
        text = await run_in_threadpool(generate_single_ad, platform, prop, prof.to_dict())
    except CopyGenerationError as ex:
        logger.warning(f"[ads.regenerate] {platform} failed for {prof.id}: {ex}")
        return JSONResponse({"error": "generation_failed", "message": str(ex)}, status_code=502)

    ads = {p: str(v) for p, v in (payload.get("ads") or {}).items() if p in PLATFORMS}
    ads[platform] = text

    history_id = str(payload.get("history_id") or "").strip()
    if history_id:
        row = (
            db.query(PropertyHistory)
            .filter(PropertyHistory.id == history_id, PropertyHistory.user_id == prof.id)
            .first()
        )
        if row:
            merged = dict(row.ads_data or {})
            merged[platform] = text
            row.ads_data = merged
            try:
                db.commit()
            except Exception as ex:
                db.rollback()
                logger.warning(f"[ads.regenerate] history update failed for {history_id}: {ex}")

    return {"platform": platform, "text": text, "ads": ads}
