from typing import List, Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from sqlalchemy.orm import Session

from database import get_db
from modules.agreements.dependencies import get_agreement_service
from modules.agreements.schemas import (
    AgreementStatusResponse, AgreementVersionResponse, GenerateAgreementResponse,
    SignAgreementResponse, SignatureUploadResponse
)
from modules.agreements.services.agreement_service import AgreementService
from modules.auth.dependencies import ensure_loan_access, get_current_user
from modules.loans.models import User
from modules.loans.services.loan_service import LoanService

router = APIRouter(tags=["documents"])


def _check_loan(db: Session, loan_id: int, user: User) -> None:
    loan = LoanService.get_loan(db, loan_id)
    ensure_loan_access(user, loan)


def _pdf(data: bytes, filename: str) -> Response:
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f"inline; filename={filename}"}
    )


@router.post("/{loan_id}/generate", response_model=GenerateAgreementResponse)
def generate_agreement(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service)
):
    """Renders a new unsigned agreement; any earlier signature is discarded."""
    _check_loan(db, loan_id, current_user)
    return service.generate_agreement(loan_id)


@router.post("/{loan_id}/signature", response_model=SignatureUploadResponse)
async def upload_signature(
    loan_id: int,
    signature: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service)
):
    _check_loan(db, loan_id, current_user)
    contents = await signature.read()
    return service.upload_signature(loan_id, contents, signature.content_type)


@router.post("/{loan_id}/sign", response_model=SignAgreementResponse)
async def sign_agreement(
    loan_id: int,
    request: Request,
    signature: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service)
):
    """
    Signs the current agreement with the uploaded signature image.
    A signature may also be sent along with this request.
    """
    _check_loan(db, loan_id, current_user)
    if signature is not None:
        contents = await signature.read()
        service.upload_signature(loan_id, contents, signature.content_type)

    signer_ip = request.client.host if request.client else None
    signer_device = request.headers.get("user-agent")
    return service.sign_agreement(loan_id, signer_ip, signer_device)


@router.get("/{loan_id}/status", response_model=AgreementStatusResponse)
def get_status(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service)
):
    _check_loan(db, loan_id, current_user)
    return service.get_status(loan_id)


@router.get("/{loan_id}/unsigned")
def download_unsigned(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service)
):
    _check_loan(db, loan_id, current_user)
    return _pdf(service.get_artifact(loan_id, "unsigned"), f"loan_{loan_id}.pdf")


@router.get("/{loan_id}/signed")
def download_signed(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service)
):
    _check_loan(db, loan_id, current_user)
    return _pdf(service.get_artifact(loan_id, "signed"), f"loan_{loan_id}_signed.pdf")


@router.get("/{loan_id}/document")
def download_current(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service)
):
    # Legacy URL: signed copy when available
    _check_loan(db, loan_id, current_user)
    kind, data = service.get_current_document(loan_id)
    suffix = "_signed" if kind == "signed" else ""
    return _pdf(data, f"loan_{loan_id}{suffix}.pdf")


@router.get("/{loan_id}/versions", response_model=List[AgreementVersionResponse])
def list_versions(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service)
):
    _check_loan(db, loan_id, current_user)
    return service.get_versions(loan_id)
