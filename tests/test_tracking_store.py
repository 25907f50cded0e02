import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from modules.agreements.errors import (
    AlreadySignedError, ConcurrentUpdateError, MissingSignatureError, NotFoundError
)
from modules.agreements.models import AgreementState
from modules.agreements.services.tracking_store import DocumentTrackingStore
from modules.loans.models import Loan, User, UserRole


@pytest.fixture
def loan(make_user, make_loan):
    return make_loan(make_user())


@pytest.fixture
def tracking(session):
    return DocumentTrackingStore(session)


def _generated(tracking, loan, path="unsigned/loan_1_a.pdf"):
    tracking.get_or_init(loan.id, loan.user_id)
    doc, _ = tracking.record_generated(loan.id, path)
    return doc


def test_get_or_init_returns_same_record(tracking, loan):
    first = tracking.get_or_init(loan.id, loan.user_id)
    second = tracking.get_or_init(loan.id, loan.user_id)

    assert first.id == second.id
    assert first.state == AgreementState.NO_DOCUMENT
    assert first.is_signed is False


def test_record_generated_sets_unsigned_state(tracking, loan):
    doc = _generated(tracking, loan)

    assert doc.state == AgreementState.UNSIGNED
    assert doc.unsigned_path == "unsigned/loan_1_a.pdf"
    assert doc.revision == 1
    assert [v.path for v in doc.versions] == ["unsigned/loan_1_a.pdf"]


def test_regenerate_after_signing_resets_signed_fields(tracking, loan):
    _generated(tracking, loan)
    tracking.record_signature_uploaded(loan.id, "signatures/loan_1.png")
    tracking.record_signed(loan.id, "signed/loan_1_signed.pdf", "10.0.0.1", "pytest")

    doc, replaced = tracking.record_generated(loan.id, "unsigned/loan_1_b.pdf")

    assert replaced == "signatures/loan_1.png"
    assert doc.is_signed is False
    assert doc.signed_path is None
    assert doc.signed_at is None
    assert doc.signature_image_path is None
    assert doc.signing_ip is None
    assert doc.unsigned_path == "unsigned/loan_1_b.pdf"


def test_sign_records_signer_metadata(tracking, loan):
    _generated(tracking, loan)
    tracking.record_signature_uploaded(loan.id, "signatures/loan_1.png")

    doc = tracking.record_signed(loan.id, "signed/loan_1_signed.pdf", "10.0.0.1", "Mozilla/5.0")

    assert doc.state == AgreementState.SIGNED
    assert doc.signed_at is not None
    assert doc.signing_ip == "10.0.0.1"
    assert doc.signing_device == "Mozilla/5.0"
    assert [v.signed for v in doc.versions] == [False, True]


def test_second_sign_is_rejected_and_record_unchanged(tracking, loan):
    _generated(tracking, loan)
    tracking.record_signature_uploaded(loan.id, "signatures/loan_1.png")
    first = tracking.record_signed(loan.id, "signed/first.pdf", "10.0.0.1", "a")
    signed_at, revision = first.signed_at, first.revision

    with pytest.raises(AlreadySignedError):
        tracking.record_signed(loan.id, "signed/second.pdf", "10.0.0.2", "b")

    doc = tracking.require(loan.id)
    assert doc.signed_path == "signed/first.pdf"
    assert doc.signed_at == signed_at
    assert doc.revision == revision
    assert len(doc.versions) == 2


def test_sign_without_signature_image_is_rejected(tracking, loan):
    _generated(tracking, loan)
    with pytest.raises(MissingSignatureError):
        tracking.record_signed(loan.id, "signed/x.pdf", None, None)
    assert tracking.require(loan.id).is_signed is False


def test_signature_upload_after_signing_is_rejected(tracking, loan):
    _generated(tracking, loan)
    tracking.record_signature_uploaded(loan.id, "signatures/a.png")
    tracking.record_signed(loan.id, "signed/x.pdf", None, None)

    with pytest.raises(AlreadySignedError):
        tracking.record_signature_uploaded(loan.id, "signatures/b.png")
    assert tracking.require(loan.id).signature_image_path == "signatures/a.png"


def test_signature_reupload_returns_previous_path(tracking, loan):
    _generated(tracking, loan)
    tracking.record_signature_uploaded(loan.id, "signatures/a.png")
    doc, previous = tracking.record_signature_uploaded(loan.id, "signatures/b.png")

    assert previous == "signatures/a.png"
    assert doc.signature_image_path == "signatures/b.png"


def test_stale_revision_is_a_concurrent_update(tracking, loan):
    doc = _generated(tracking, loan)
    seen = doc.revision
    tracking.record_signature_uploaded(loan.id, "signatures/a.png")

    with pytest.raises(ConcurrentUpdateError):
        tracking.record_signed(loan.id, "signed/x.pdf", None, None, expected_revision=seen)
    with pytest.raises(ConcurrentUpdateError):
        tracking.record_generated(loan.id, "unsigned/other.pdf", expected_revision=seen)
    assert tracking.require(loan.id).is_signed is False


def test_transitions_on_missing_record_raise_not_found(tracking, loan):
    with pytest.raises(NotFoundError):
        tracking.record_generated(loan.id, "unsigned/a.pdf")
    with pytest.raises(NotFoundError):
        tracking.record_signature_uploaded(loan.id, "signatures/a.png")
    with pytest.raises(NotFoundError):
        tracking.get_versions(loan.id)


def test_status_without_record(tracking):
    status = tracking.get_status(999)
    assert status["exists"] is False
    assert status["state"] == "NO_DOCUMENT"
    assert status["is_signed"] is False


def test_referenced_paths_and_delete(tracking, session, loan):
    _generated(tracking, loan, "unsigned/old.pdf")
    tracking.record_generated(loan.id, "unsigned/new.pdf")
    tracking.record_signature_uploaded(loan.id, "signatures/a.png")

    assert tracking.referenced_paths() == {"unsigned/new.pdf", "signatures/a.png"}

    paths = tracking.delete(loan.id)
    session.commit()
    assert set(paths) == {"unsigned/old.pdf", "unsigned/new.pdf", "signatures/a.png"}
    assert tracking.get(loan.id) is None


def test_only_one_of_two_racing_signers_wins(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with Session() as setup:
        user = User(first_name="Jane", last_name="Doe", email="race@mail.com", password_hash="x",
                    role=UserRole.CUSTOMER, is_active=True)
        setup.add(user)
        setup.flush()
        loan = Loan(user_id=user.id, amount=1000, interest_rate=12, term=12)
        setup.add(loan)
        setup.commit()
        loan_id, user_id = loan.id, user.id
        store = DocumentTrackingStore(setup)
        store.get_or_init(loan_id, user_id)
        store.record_generated(loan_id, "unsigned/a.pdf")
        store.record_signature_uploaded(loan_id, "signatures/a.png")

    first, second = Session(), Session()
    try:
        a, b = DocumentTrackingStore(first), DocumentTrackingStore(second)
        # Both requests have loaded the unsigned record
        revision = a.require(loan_id).revision
        assert b.require(loan_id).is_signed is False

        a.record_signed(loan_id, "signed/a.pdf", "10.0.0.1", "a", expected_revision=revision)
        with pytest.raises(AlreadySignedError):
            b.record_signed(loan_id, "signed/b.pdf", "10.0.0.2", "b", expected_revision=revision)

        doc = b.require(loan_id)
        assert doc.signed_path == "signed/a.pdf"
        assert [v.path for v in doc.versions if v.signed] == ["signed/a.pdf"]
    finally:
        first.close()
        second.close()
        engine.dispose()
