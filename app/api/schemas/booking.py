from pydantic import BaseModel


class ErrorResponse(BaseModel):
    detail: str
    code: str


class ReferralUploadResponse(BaseModel):
    success: bool = True
    url: str
    filename: str
