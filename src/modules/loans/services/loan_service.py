import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from modules.agreements.errors import NotFoundError, StorageError, ValidationError
from modules.agreements.storage import ContentStore
from modules.loans.models import Loan, LoanStatus, User

logger = logging.getLogger(__name__)


class LoanService:

    @staticmethod
    def create_loan(
        session: Session,
        user_id: int,
        amount: Decimal,
        interest_rate: Decimal,
        term: int,
        product_type: Optional[str] = None,
        borrower_id_number: Optional[str] = None,
    ) -> Loan:
        """Opens a loan application for an existing user"""
        if session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        if amount is None or Decimal(str(amount)) <= 0:
            raise ValidationError("Loan amount must be positive")
        if term is None or int(term) <= 0:
            raise ValidationError("Loan term must be at least one month")
        if interest_rate is None or Decimal(str(interest_rate)) < 0:
            raise ValidationError("Loan interest rate cannot be negative")

        loan = Loan(
            user_id=user_id,
            amount=amount,
            interest_rate=interest_rate,
            term=term,
            product_type=product_type,
            borrower_id_number=borrower_id_number,
            status=LoanStatus.PENDING,
        )
        session.add(loan)
        session.commit()
        session.refresh(loan)
        logger.info("Created loan %s for user %s", loan.id, user_id)
        return loan

    @staticmethod
    def get_loan(session: Session, loan_id: int) -> Loan:
        loan = session.get(Loan, loan_id)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    @staticmethod
    def list_loans(session: Session, user: User) -> List[Loan]:
        """Staff see every loan; borrowers only their own"""
        query = session.query(Loan)
        if not user.is_staff:
            query = query.filter(Loan.user_id == user.id)
        return query.order_by(Loan.id).all()

    @staticmethod
    def delete_loan(session: Session, loan_id: int, store: ContentStore) -> List[str]:
        """
        Deletes a loan together with its agreement record, then removes every
        artifact that record referenced. Returns the removed paths.
        """
        from modules.agreements.services.tracking_store import DocumentTrackingStore

        loan = LoanService.get_loan(session, loan_id)
        paths = DocumentTrackingStore(session).delete(loan.id)
        session.flush()
        session.delete(loan)
        session.commit()

        removed = []
        for path in paths:
            try:
                store.remove(path)
                removed.append(path)
            except StorageError as e:
                logger.warning("Error deleting %s for loan %s: %s", path, loan_id, e)
        logger.info("Deleted loan %s and %d artifact(s)", loan_id, len(removed))
        return removed
