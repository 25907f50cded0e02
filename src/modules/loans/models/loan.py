from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from enum import Enum as PyEnum
from database import Base

class LoanStatus(PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTIVE = "active"
    CLOSED = "closed"

class Loan(Base):
    __tablename__ = 'loans'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    product_type = Column(String, nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    # Annual percentage, e.g. 12 for 12%
    interest_rate = Column(Numeric(6, 3), nullable=True)
    # Months
    term = Column(Integer, nullable=True)
    status = Column(Enum(LoanStatus), nullable=False, default=LoanStatus.PENDING)
    borrower_id_number = Column(String, nullable=True)
    application_date = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="loans")
