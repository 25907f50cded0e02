from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class GenerateAgreementResponse(BaseModel):
    document_id: int
    unsigned_path: str


class SignatureUploadResponse(BaseModel):
    signature_image_path: str


class SignAgreementResponse(BaseModel):
    signed_path: str


class AgreementStatusResponse(BaseModel):
    exists: bool
    state: str
    is_signed: bool
    signed_at: Optional[datetime] = None
    unsigned_path: Optional[str] = None
    signed_path: Optional[str] = None


class AgreementVersionResponse(BaseModel):
    path: str
    signed: bool
    created_at: datetime

    model_config = {"from_attributes": True}
