"""
Object storage for avatars and exported photos.
Cloudflare R2 (S3 API) when configured, otherwise files under STATIC_DIR served at /static.
"""
import os
from botocore.exceptions import ClientError
from core.config import s3, R2_BUCKET, R2_PUBLIC_BASE_URL, STATIC_DIR, logger


def _r2_enabled() -> bool:
    return bool(s3 and R2_BUCKET)


def get_presigned_url(key: str, expires_in: int = 3600) -> str:
    """Signed GET URL for a private R2 object; empty string when R2 is off or signing fails."""
    if not _r2_enabled():
        return ""
    try:
        return s3.meta.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": R2_BUCKET, "Key": key},
            ExpiresIn=expires_in,
        )
    except ClientError as ex:
        logger.warning(f"[storage] presign failed for {key}: {ex}")
        return ""


def _save_local(key: str, data: bytes) -> str:
    path = os.path.join(STATIC_DIR, *key.split("/"))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(data)
    logger.info(f"[storage] saved locally: {path}")
    return f"/static/{key}"


def upload_bytes(key: str, data: bytes, content_type: str = "image/jpeg") -> str:
    """Store bytes under key and return a URL the client can fetch."""
    if not _r2_enabled():
        return _save_local(key, data)

    s3.Bucket(R2_BUCKET).put_object(
        Key=key,
        Body=data,
        ContentType=content_type,
        CacheControl="public, max-age=604800",
    )
    if R2_PUBLIC_BASE_URL:
        return f"{R2_PUBLIC_BASE_URL}/{key}"
    # Private bucket: hand out a day-long signed link
    return get_presigned_url(key, expires_in=24 * 60 * 60)
