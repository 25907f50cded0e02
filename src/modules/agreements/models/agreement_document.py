from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class AgreementState(PyEnum):
    NO_DOCUMENT = "NO_DOCUMENT"
    UNSIGNED = "UNSIGNED"
    SIGNED = "SIGNED"


class LoanAgreementDocument(Base):
    __tablename__ = 'loan_agreement_documents'

    id = Column(Integer, primary_key=True)
    loan_id = Column(Integer, ForeignKey('loans.id'), unique=True, nullable=False)
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False)

    unsigned_path = Column(String, nullable=True)
    signed_path = Column(String, nullable=True)
    signature_image_path = Column(String, nullable=True)

    is_signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(DateTime, nullable=True)
    signing_ip = Column(String, nullable=True)
    signing_device = Column(String, nullable=True)

    # Bumped by every transition; conditional updates compare against it
    revision = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    versions = relationship(
        "AgreementVersion",
        back_populates="document",
        order_by="AgreementVersion.id",
        cascade="all, delete-orphan"
    )

    @property
    def state(self) -> AgreementState:
        if self.is_signed:
            return AgreementState.SIGNED
        if self.unsigned_path:
            return AgreementState.UNSIGNED
        return AgreementState.NO_DOCUMENT


class AgreementVersion(Base):
    __tablename__ = 'agreement_versions'

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey('loan_agreement_documents.id'), nullable=False)
    path = Column(String, nullable=False)
    signed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    document = relationship("LoanAgreementDocument", back_populates="versions")
