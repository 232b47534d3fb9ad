from fastapi import APIRouter, Depends, File, UploadFile, status

from app.api.deps import get_settings
from app.api.schemas.booking import ErrorResponse, ReferralUploadResponse
from app.core.config import Settings
from app.services.referral_service import store_referral

router = APIRouter(prefix="/referrals", tags=["referrals"])


@router.post(
    "/upload",
    response_model=ReferralUploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def upload_referral(
    file: UploadFile = File(...),
    app_settings: Settings = Depends(get_settings),
) -> ReferralUploadResponse:
    """Store a referral (JPEG, PNG or PDF, max 10MB). The returned URL goes on the booking."""
    # One byte past the limit is enough to reject oversize files
    data = await file.read(app_settings.referral_max_bytes + 1)
    stored = await store_referral(app_settings, file.filename, file.content_type, data)
    return ReferralUploadResponse(url=stored.url, filename=stored.filename)
