import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from app.core.config import Settings
from app.core.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "application/pdf": "pdf",
}


@dataclass(frozen=True)
class StoredReferral:
    url: str
    filename: str


def referral_object_name(original_name: str | None, content_type: str) -> str:
    """referrals/<ms timestamp>-<random>.<ext>; the extension follows the upload's name when it has one."""
    ext = ALLOWED_CONTENT_TYPES[content_type]
    if original_name and "." in original_name:
        candidate = original_name.rsplit(".", 1)[-1].lower()
        if candidate.isalnum() and len(candidate) <= 5:
            ext = candidate
    return f"referrals/{int(time.time() * 1000)}-{secrets.token_hex(6)}.{ext}"


def validate_referral(content_type: str | None, size: int, max_bytes: int) -> str:
    if size == 0:
        raise ValidationError("No file provided")
    if size > max_bytes:
        raise ValidationError(f"File size must be less than {max_bytes // (1024 * 1024)}MB", size=size)
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            "File type not supported. Please upload JPG, PNG, or PDF files only.",
            content_type=content_type,
        )
    return content_type


async def store_referral(
    settings: Settings, original_name: str | None, content_type: str | None, data: bytes
) -> StoredReferral:
    """Persist a referral document and return the URL that gets attached to the booking."""
    content_type = validate_referral(content_type, len(data), settings.referral_max_bytes)
    name = referral_object_name(original_name, content_type)
    target = Path(settings.referral_storage_dir) / name

    def _write() -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    await run_in_threadpool(_write)
    logger.info("Stored referral %s (%d bytes)", name, len(data))
    return StoredReferral(url=f"{settings.referral_base_url.rstrip('/')}/{name}", filename=name)
