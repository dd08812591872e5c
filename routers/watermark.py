from typing import List, Optional
import io

from fastapi import APIRouter, Request, Depends, UploadFile, File, Form
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.responses import StreamingResponse
from sqlalchemy.orm import Session

from core.config import logger, MAX_FILES
from core.database import get_db
from utils.profiles import require_access
from utils.storage import upload_bytes
from utils.watermark import (
    BATCH_DOWNLOAD_DELAY_MS,
    EXPORT_FORMATS,
    ImageDecodeError,
    export_jpeg_batch,
    export_pdf,
    export_preview,
    export_single,
    export_zip,
    load_logo,
    new_batch_id,
    normalize_settings,
    pdf_export_name,
    single_export_name,
    zip_export_name,
)

router = APIRouter(prefix="/api/watermark", tags=["watermark"])

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # per photo or logo


def _attachment(data: bytes, media_type: str, filename: str) -> StreamingResponse:
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Access-Control-Expose-Headers": "Content-Disposition",
    }
    return StreamingResponse(io.BytesIO(data), media_type=media_type, headers=headers)


def _too_large(name: Optional[str]) -> JSONResponse:
    return JSONResponse(
        {"error": "file_too_large", "file": name, "message": "A imagem é muito grande (máx 10MB)."},
        status_code=413,
    )


def _export_failed(ex: Exception) -> JSONResponse:
    return JSONResponse(
        {"error": "export_failed", "message": f"Erro ao exportar imagens: {ex}"},
        status_code=422,
    )


@router.post("/preview")
async def preview(
    request: Request,
    file: UploadFile = File(...),
    logo: Optional[UploadFile] = File(None),
    position: str = Form("bottom-right"),
    logo_size: float = Form(15.0),
    opacity: float = Form(100.0),
    db: Session = Depends(get_db),
):
    prof, err = require_access(request, db)
    if err:
        return err

    pos, size, op = normalize_settings(position, logo_size, opacity)
    raw = await file.read()
    if len(raw) > MAX_UPLOAD_BYTES:
        return _too_large(file.filename)
    logo_raw = await logo.read() if logo is not None else None
    if logo_raw and len(logo_raw) > MAX_UPLOAD_BYTES:
        return _too_large(logo.filename)
    logo_img = load_logo(logo_raw)
    try:
        out = await run_in_threadpool(export_preview, raw, logo_img, pos, size, op)
    except ImageDecodeError as ex:
        return _export_failed(ex)
    return StreamingResponse(io.BytesIO(out), media_type="image/jpeg")


@router.post("/export")
async def export(
    request: Request,
    files: Optional[List[UploadFile]] = File(None),
    logo: Optional[UploadFile] = File(None),
    position: str = Form("bottom-right"),
    logo_size: float = Form(15.0),
    opacity: float = Form(100.0),
    format: str = Form("zip"),
    index: int = Form(0),
    db: Session = Depends(get_db),
):
    """
    Render photos onto the 3840x2160 export canvas with the logo applied.
    format: single (one JPEG), jpeg (stored files + URLs), zip, pdf.
    """
    prof, err = require_access(request, db)
    if err:
        return err

    files = [f for f in (files or []) if f is not None]
    if not files:
        return JSONResponse({"error": "no_files"}, status_code=400)
    if len(files) > MAX_FILES:
        return JSONResponse({"error": "too_many_files", "max": MAX_FILES}, status_code=400)

    fmt = (format or "").strip().lower()
    if fmt not in EXPORT_FORMATS:
        return JSONResponse({"error": "invalid_format", "allowed": list(EXPORT_FORMATS)}, status_code=400)

    pos, size, op = normalize_settings(position, logo_size, opacity)
    logo_raw = await logo.read() if logo is not None else None
    if logo_raw and len(logo_raw) > MAX_UPLOAD_BYTES:
        return _too_large(logo.filename)
    logo_img = load_logo(logo_raw)
    batch_id = new_batch_id()

    if fmt == "single":
        if index < 0 or index >= len(files):
            return JSONResponse({"error": "invalid_index"}, status_code=400)
        raw = await files[index].read()
        if len(raw) > MAX_UPLOAD_BYTES:
            return _too_large(files[index].filename)
        try:
            out = await run_in_threadpool(export_single, raw, logo_img, pos, size, op)
        except ImageDecodeError as ex:
            return _export_failed(ex)
        return _attachment(out, "image/jpeg", single_export_name(batch_id))

    images = []
    for f in files:
        raw = await f.read()
        if len(raw) > MAX_UPLOAD_BYTES:
            return _too_large(f.filename)
        images.append(raw)
    logger.info(f"[watermark.export] {prof.id} exporting {len(images)} photo(s) as {fmt} (batch {batch_id})")

    try:
        if fmt == "zip":
            out = await run_in_threadpool(export_zip, images, logo_img, pos, size, op)
            return _attachment(out, "application/zip", zip_export_name(batch_id))
        if fmt == "pdf":
            out = await run_in_threadpool(export_pdf, images, logo_img, pos, size, op)
            return _attachment(out, "application/pdf", pdf_export_name(batch_id))
        rendered = await run_in_threadpool(export_jpeg_batch, images, logo_img, pos, size, op, batch_id)
    except ImageDecodeError as ex:
        return _export_failed(ex)

    items = []
    for i, (name, data) in enumerate(rendered, start=1):
        key = f"users/{prof.id}/exports/{batch_id}/imagem-{i}.jpg"
        try:
            url = upload_bytes(key, data, content_type="image/jpeg")
        except Exception as ex:
            logger.warning(f"[watermark.export] upload failed for {key}: {ex}")
            return JSONResponse({"error": "export_failed", "message": "Falha ao salvar as imagens."}, status_code=500)
        items.append({"name": name, "url": url})

    return {"batch_id": batch_id, "files": items, "download_delay_ms": BATCH_DOWNLOAD_DELAY_MS}
