import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from modules.agreements.errors import (
    AgreementError, AlreadySignedError, MissingSignatureError, NotFoundError,
    StorageError, UnsupportedImageFormat, ValidationError
)
from modules.agreements.models import AgreementVersion
from modules.agreements.services.compositor import SignatureCompositor, check_image
from modules.agreements.services.renderer import AgreementRenderer
from modules.agreements.services.tracking_store import DocumentTrackingStore
from modules.agreements.storage import SIGNATURES, SIGNED, ContentStore
from modules.loans.services.loan_service import LoanService
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

SIGNATURE_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}

ARTIFACT_KINDS = ("unsigned", "signed")


class AgreementService:
    """Generates, signs and serves loan agreements."""

    def __init__(self, session: Session, store: ContentStore, renderer: AgreementRenderer,
                 compositor: SignatureCompositor, max_signature_bytes: int):
        self.session = session
        self.store = store
        self.renderer = renderer
        self.compositor = compositor
        self.max_signature_bytes = max_signature_bytes
        self.tracking = DocumentTrackingStore(session)
        self.notifications = NotificationService(NotificationRepository(session))

    @classmethod
    def from_settings(cls, session: Session, store: ContentStore) -> "AgreementService":
        renderer = AgreementRenderer(store, settings.lender_name, settings.branding_asset_path)
        compositor = SignatureCompositor(store, settings.max_signature_bytes, settings.lender_signature_asset_path)
        return cls(session, store, renderer, compositor, settings.max_signature_bytes)

    def _discard(self, path: Optional[str]) -> None:
        if not path:
            return
        try:
            self.store.remove(path)
        except StorageError as e:
            logger.warning("Could not delete artifact %s: %s", path, e)

    def _notify(self, create, **kwargs) -> None:
        try:
            create(**kwargs)
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Failed to store agreement notification %s", kwargs)

    def generate_agreement(self, loan_id: int) -> dict:
        """
        Renders a fresh unsigned agreement and resets the tracking record to it.
        Any previous signature is invalidated.
        """
        # 1) Load collaborators
        loan = LoanService.get_loan(self.session, loan_id)
        user = loan.user
        if user is None:
            raise NotFoundError(f"Borrower for loan {loan_id} not found")

        # 2) Render and persist the file before touching the record
        unsigned_path = self.renderer.generate(loan, user)

        # 3) Record the transition
        try:
            doc = self.tracking.get_or_init(loan.id, user.id)
            was_signed = doc.is_signed
            doc, replaced_signature = self.tracking.record_generated(
                loan.id, unsigned_path, expected_revision=doc.revision
            )
        except (AgreementError, SQLAlchemyError):
            self._discard(unsigned_path)
            raise

        # The old signature image is no longer referenced by the record
        self._discard(replaced_signature)

        if was_signed:
            logger.warning("Regenerated agreement for loan %s; previous signature invalidated", loan.id)
        logger.info("Generated agreement %s for loan %s at %s", doc.id, loan.id, unsigned_path)

        self._notify(
            self.notifications.create_agreement_generated_notification,
            user_id=user.id, loan_id=loan.id
        )
        return {"document_id": doc.id, "unsigned_path": unsigned_path}

    def upload_signature(self, loan_id: int, image_bytes: bytes, mime_type: Optional[str]) -> dict:
        ext = SIGNATURE_MIME_TYPES.get((mime_type or "").lower())
        if ext is None:
            raise UnsupportedImageFormat(f"Only PNG/JPEG images allowed, got {mime_type!r}")
        check_image(f"signature{ext}", image_bytes, self.max_signature_bytes)

        doc = self.tracking.require(loan_id)
        if doc.is_signed:
            raise AlreadySignedError(f"Agreement for loan {loan_id} is already signed")

        path = f"{SIGNATURES}/loan_{loan_id}_{uuid4().hex[:12]}{ext}"
        self.store.write(path, image_bytes)
        try:
            doc, previous = self.tracking.record_signature_uploaded(loan_id, path)
        except (AgreementError, SQLAlchemyError):
            self._discard(path)
            raise

        if previous and previous != path:
            self._discard(previous)
        logger.info("Stored signature image for loan %s at %s", loan_id, path)
        return {"signature_image_path": path}

    def sign_agreement(self, loan_id: int, signer_ip: Optional[str], signer_device: Optional[str]) -> dict:
        # 1) Guards against the stored state
        doc = self.tracking.require(loan_id)
        if doc.is_signed:
            logger.warning("Rejected second signing attempt for loan %s", loan_id)
            raise AlreadySignedError(f"Agreement for loan {loan_id} is already signed")
        if not doc.signature_image_path:
            raise MissingSignatureError(f"No signature image uploaded for loan {loan_id}")
        if not doc.unsigned_path:
            raise NotFoundError(f"No unsigned agreement on record for loan {loan_id}")
        seen_revision = doc.revision

        # 2) Compose the signed copy
        now = datetime.now(timezone.utc)
        signed_path = f"{SIGNED}/loan_{loan_id}_{uuid4().hex[:12]}_signed.pdf"
        stamp = f"Signed electronically {now:%Y-%m-%d %H:%M} UTC from {signer_ip or 'unknown address'}"
        self.compositor.sign(doc.unsigned_path, doc.signature_image_path, signed_path, stamp=stamp)

        # 3) Record it; the loser of a race removes its own file
        try:
            doc = self.tracking.record_signed(
                loan_id, signed_path, signer_ip, signer_device, expected_revision=seen_revision
            )
        except (AgreementError, SQLAlchemyError):
            self._discard(signed_path)
            raise

        logger.info("Loan %s agreement signed from %s", loan_id, signer_ip)
        self._notify(
            self.notifications.create_agreement_signed_notification,
            user_id=doc.owner_id, loan_id=loan_id
        )
        return {"signed_path": signed_path}

    def get_status(self, loan_id: int) -> dict:
        return self.tracking.get_status(loan_id)

    def get_artifact(self, loan_id: int, kind: str) -> bytes:
        if kind not in ARTIFACT_KINDS:
            raise ValidationError(f"Unknown artifact kind {kind!r}; expected one of {ARTIFACT_KINDS}")
        doc = self.tracking.get(loan_id)
        path = None
        if doc is not None:
            path = doc.unsigned_path if kind == "unsigned" else doc.signed_path
        if not path:
            raise NotFoundError(f"{kind.capitalize()} agreement not found for loan {loan_id}")
        if not self.store.exists(path):
            raise NotFoundError(f"{kind.capitalize()} agreement file is missing for loan {loan_id}")
        return self.store.read(path)

    def get_current_document(self, loan_id: int) -> Tuple[str, bytes]:
        """The signed agreement when there is one, otherwise the unsigned one."""
        doc = self.tracking.require(loan_id)
        kind = "signed" if doc.is_signed and doc.signed_path else "unsigned"
        return kind, self.get_artifact(loan_id, kind)

    def get_versions(self, loan_id: int) -> List[AgreementVersion]:
        return self.tracking.get_versions(loan_id)
