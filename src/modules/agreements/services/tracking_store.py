import logging
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modules.agreements.errors import (
    AlreadySignedError, ConcurrentUpdateError, MissingSignatureError, NotFoundError
)
from modules.agreements.models import AgreementVersion, LoanAgreementDocument

logger = logging.getLogger(__name__)

Doc = LoanAgreementDocument


class DocumentTrackingStore:
    """
    Persists the per-loan agreement state.

    Every transition is a single conditional UPDATE checked against the row as
    it is stored, so two concurrent requests can never both win the same
    transition. The version entry for a transition is written in the same
    transaction.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def get(self, loan_id: int) -> Optional[LoanAgreementDocument]:
        return self.db.execute(select(Doc).where(Doc.loan_id == loan_id)).scalar_one_or_none()

    def require(self, loan_id: int) -> LoanAgreementDocument:
        doc = self.get(loan_id)
        if doc is None:
            raise NotFoundError(f"No agreement has been generated for loan {loan_id}")
        return doc

    def get_or_init(self, loan_id: int, owner_id: int) -> LoanAgreementDocument:
        doc = self.get(loan_id)
        if doc is not None:
            return doc

        doc = Doc(loan_id=loan_id, owner_id=owner_id, is_signed=False, revision=0)
        self.db.add(doc)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created it first
            self.db.rollback()
            doc = self.get(loan_id)
            if doc is None:
                raise
            return doc
        self.db.refresh(doc)
        logger.info("Created agreement tracking record %s for loan %s", doc.id, loan_id)
        return doc

    def _conditional_update(self, loan_id: int, conditions: list, values: dict) -> bool:
        now = datetime.now(timezone.utc)
        stmt = (
            update(Doc)
            .where(Doc.loan_id == loan_id, *conditions)
            .values(revision=Doc.revision + 1, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def _commit_transition(self, doc_id: int, version: Optional[AgreementVersion]) -> LoanAgreementDocument:
        if version is not None:
            version.document_id = doc_id
            self.db.add(version)
        self.db.commit()
        doc = self.db.get(Doc, doc_id)
        self.db.refresh(doc)
        return doc

    def _raise_for_lost_update(self, loan_id: int) -> None:
        self.db.rollback()
        current = self.get(loan_id)
        if current is None:
            raise NotFoundError(f"No agreement has been generated for loan {loan_id}")
        if current.is_signed:
            raise AlreadySignedError(f"Agreement for loan {loan_id} is already signed")
        raise ConcurrentUpdateError(f"Agreement for loan {loan_id} was modified concurrently; retry")

    def record_generated(self, loan_id: int, unsigned_path: str,
                         expected_revision: Optional[int] = None) -> Tuple[LoanAgreementDocument, Optional[str]]:
        """
        Points the record at a fresh unsigned agreement and drops any prior signature.
        Returns the record and the signature image path it no longer references.
        """
        doc = self.require(loan_id)
        revision = doc.revision if expected_revision is None else expected_revision
        previous_signature = doc.signature_image_path
        doc_id = doc.id

        ok = self._conditional_update(
            loan_id,
            [Doc.revision == revision],
            dict(
                unsigned_path=unsigned_path,
                is_signed=False,
                signed_path=None,
                signature_image_path=None,
                signed_at=None,
                signing_ip=None,
                signing_device=None,
            ),
        )
        if not ok:
            self.db.rollback()
            if self.get(loan_id) is None:
                raise NotFoundError(f"No agreement has been generated for loan {loan_id}")
            raise ConcurrentUpdateError(f"Agreement for loan {loan_id} was modified concurrently; retry")

        version = AgreementVersion(path=unsigned_path, signed=False, created_at=datetime.now(timezone.utc))
        return self._commit_transition(doc_id, version), previous_signature

    def record_signature_uploaded(self, loan_id: int,
                                  signature_image_path: str) -> Tuple[LoanAgreementDocument, Optional[str]]:
        """Stores the borrower's signature image. Returns the record and the replaced image path."""
        doc = self.require(loan_id)
        if doc.is_signed:
            raise AlreadySignedError(f"Agreement for loan {loan_id} is already signed")
        previous = doc.signature_image_path
        doc_id = doc.id

        ok = self._conditional_update(
            loan_id,
            [Doc.is_signed.is_(False)],
            dict(signature_image_path=signature_image_path),
        )
        if not ok:
            self._raise_for_lost_update(loan_id)
        return self._commit_transition(doc_id, None), previous

    def record_signed(self, loan_id: int, signed_path: str, signer_ip: Optional[str],
                      signer_device: Optional[str], expected_revision: Optional[int] = None) -> LoanAgreementDocument:
        doc = self.require(loan_id)
        if doc.is_signed:
            raise AlreadySignedError(f"Agreement for loan {loan_id} is already signed")
        if not doc.signature_image_path:
            raise MissingSignatureError(f"No signature image uploaded for loan {loan_id}")
        doc_id = doc.id
        now = datetime.now(timezone.utc)

        conditions = [Doc.is_signed.is_(False), Doc.signature_image_path.isnot(None)]
        if expected_revision is not None:
            conditions.append(Doc.revision == expected_revision)

        ok = self._conditional_update(
            loan_id,
            conditions,
            dict(
                is_signed=True,
                signed_path=signed_path,
                signed_at=now,
                signing_ip=signer_ip,
                signing_device=signer_device,
            ),
        )
        if not ok:
            self._raise_for_lost_update(loan_id)

        version = AgreementVersion(path=signed_path, signed=True, created_at=now)
        return self._commit_transition(doc_id, version)

    def get_status(self, loan_id: int) -> dict:
        doc = self.get(loan_id)
        if doc is None:
            return {
                "exists": False,
                "state": "NO_DOCUMENT",
                "is_signed": False,
                "signed_at": None,
                "unsigned_path": None,
                "signed_path": None,
            }
        return {
            "exists": True,
            "state": doc.state.value,
            "is_signed": doc.is_signed,
            "signed_at": doc.signed_at,
            "unsigned_path": doc.unsigned_path,
            "signed_path": doc.signed_path,
        }

    def get_versions(self, loan_id: int) -> List[AgreementVersion]:
        return list(self.require(loan_id).versions)

    def referenced_paths(self) -> Set[str]:
        rows = self.db.execute(
            select(Doc.unsigned_path, Doc.signed_path, Doc.signature_image_path)
        ).all()
        return {path for row in rows for path in row if path}

    def delete(self, loan_id: int) -> List[str]:
        """
        Marks the record (and its version log) for deletion and returns every
        artifact path it references. The caller commits.
        """
        doc = self.get(loan_id)
        if doc is None:
            return []
        paths = [doc.unsigned_path, doc.signed_path, doc.signature_image_path]
        paths += [v.path for v in doc.versions]
        self.db.delete(doc)
        seen = []
        for p in paths:
            if p and p not in seen:
                seen.append(p)
        return seen
