from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from database import get_db
from modules.agreements.dependencies import get_content_store
from modules.agreements.storage import ContentStore
from modules.auth.dependencies import ensure_loan_access, get_current_user, require_admin
from modules.loans.models import User
from modules.loans.schemas import LoanCreate, LoanResponse
from modules.loans.services.loan_service import LoanService

router = APIRouter(tags=["loans"])


@router.post("", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
def create_loan(
    payload: LoanCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    # Solo el personal puede abrir préstamos a nombre de otro usuario
    user_id = payload.user_id if (payload.user_id and current_user.is_staff) else current_user.id
    return LoanService.create_loan(
        db,
        user_id=user_id,
        amount=payload.amount,
        interest_rate=payload.interest_rate,
        term=payload.term,
        product_type=payload.product_type,
        borrower_id_number=payload.borrower_id_number,
    )


@router.get("", response_model=List[LoanResponse])
def list_loans(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return LoanService.list_loans(db, current_user)


@router.get("/{loan_id}", response_model=LoanResponse)
def get_loan(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    loan = LoanService.get_loan(db, loan_id)
    ensure_loan_access(current_user, loan)
    return loan


@router.delete("/{loan_id}")
def delete_loan(
    loan_id: int,
    db: Session = Depends(get_db),
    store: ContentStore = Depends(get_content_store),
    current_user: User = Depends(require_admin)
):
    removed = LoanService.delete_loan(db, loan_id, store)
    return {"message": "Loan deleted successfully", "removed_files": removed}
