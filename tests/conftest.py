"""Shared fixtures: in-memory database, temporary content store and model factories."""

import os
import tempfile

# Must be set before anything imports config
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_ROOT", tempfile.mkdtemp(prefix="agreements_test_"))
os.environ.setdefault("SEED_DEMO_DATA", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import io
import itertools
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from PIL import Image as PILImage
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import create_tables  # noqa: F401  registers every model with Base
from database import Base, get_db
from modules.agreements.dependencies import get_content_store
from modules.agreements.services.agreement_service import AgreementService
from modules.agreements.services.compositor import SignatureCompositor
from modules.agreements.services.renderer import AgreementRenderer
from modules.agreements.storage import LocalContentStore
from modules.auth.services.auth_service import AuthService
from modules.loans.models import Loan, User, UserRole

MAX_SIGNATURE_BYTES = 2 * 1024 * 1024

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def store(tmp_path):
    return LocalContentStore(str(tmp_path / "storage"))


_emails = itertools.count(1)


@pytest.fixture
def make_user(session):
    def _make(first_name="Jane", last_name="Doe", role=UserRole.CUSTOMER, **extra) -> User:
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=extra.pop("email", f"user{next(_emails)}@mail.com"),
            password_hash=extra.pop("password_hash", "not-a-real-hash"),
            role=role,
            is_active=True,
            **extra
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
    return _make


@pytest.fixture
def make_loan(session):
    def _make(user, amount=Decimal("1000"), interest_rate=Decimal("12"), term=12, **extra) -> Loan:
        loan = Loan(user_id=user.id, amount=amount, interest_rate=interest_rate, term=term, **extra)
        session.add(loan)
        session.commit()
        session.refresh(loan)
        return loan
    return _make


def make_image_bytes(fmt="PNG", size=(240, 80)) -> bytes:
    img = PILImage.new("RGB", size, "white")
    for x in range(20, size[0] - 20):
        img.putpixel((x, size[1] // 2), (0, 0, 128))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG")


@pytest.fixture
def renderer(store):
    return AgreementRenderer(store, "Pockett Loan")


@pytest.fixture
def compositor(store):
    return SignatureCompositor(store, MAX_SIGNATURE_BYTES)


@pytest.fixture
def agreement_service(session, store, renderer, compositor):
    return AgreementService(session, store, renderer, compositor, MAX_SIGNATURE_BYTES)


@pytest.fixture
def client(store):
    from main import app

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_content_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = AuthService.create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}
    return _headers
