import hashlib
import io
from types import SimpleNamespace
from decimal import Decimal

import pytest
from PyPDF2 import PdfReader

from conftest import MAX_SIGNATURE_BYTES, make_image_bytes
from modules.agreements.errors import NotFoundError, UnsupportedImageFormat, ValidationError
from modules.agreements.services.compositor import SignatureCompositor, check_image


@pytest.fixture
def unsigned_path(renderer):
    loan = SimpleNamespace(id=1, amount=Decimal("1000"), interest_rate=Decimal("12"), term=12,
                           product_type=None, borrower_id_number=None)
    borrower = SimpleNamespace(first_name="Jane", last_name="Doe", email=None, phone_number=None, address=None)
    return renderer.generate(loan, borrower)


def _last_page_has_images(pdf_bytes: bytes) -> bool:
    page = PdfReader(io.BytesIO(pdf_bytes)).pages[-1]
    return "/XObject" in page["/Resources"]


def test_sign_never_modifies_source(store, compositor, unsigned_path, png_bytes):
    store.write("signatures/sig.png", png_bytes)
    before = hashlib.sha256(store.read(unsigned_path)).hexdigest()

    out = compositor.sign(unsigned_path, "signatures/sig.png", "signed/out.pdf")

    assert out == "signed/out.pdf"
    assert hashlib.sha256(store.read(unsigned_path)).hexdigest() == before
    assert store.read(out) != store.read(unsigned_path)


def test_sign_overlays_image_on_last_page(store, compositor, unsigned_path, jpeg_bytes):
    store.write("signatures/sig.jpg", jpeg_bytes)
    source = store.read(unsigned_path)
    assert not _last_page_has_images(source)

    signed = store.read(compositor.sign(unsigned_path, "signatures/sig.jpg", "signed/out.pdf", stamp="Signed"))

    assert _last_page_has_images(signed)
    assert len(PdfReader(io.BytesIO(signed)).pages) == len(PdfReader(io.BytesIO(source)).pages)


def test_lender_signature_asset_is_overlaid(store, unsigned_path, png_bytes, tmp_path):
    lender = tmp_path / "lender.png"
    lender.write_bytes(png_bytes)
    compositor = SignatureCompositor(store, MAX_SIGNATURE_BYTES, lender_signature_path=str(lender))

    signed = store.read(compositor.sign(unsigned_path, None, "signed/lender_only.pdf"))
    assert _last_page_has_images(signed)


def test_missing_source_raises_not_found(store, compositor, png_bytes):
    store.write("signatures/sig.png", png_bytes)
    with pytest.raises(NotFoundError):
        compositor.sign("unsigned/missing.pdf", "signatures/sig.png", "signed/out.pdf")
    assert not store.exists("signed/out.pdf")


def test_gif_signature_is_unsupported(store, compositor, unsigned_path):
    store.write("signatures/sig.gif", b"GIF89a....")
    with pytest.raises(UnsupportedImageFormat):
        compositor.sign(unsigned_path, "signatures/sig.gif", "signed/out.pdf")
    assert not store.exists("signed/out.pdf")


def test_output_cannot_replace_source(compositor, unsigned_path):
    with pytest.raises(ValidationError):
        compositor.sign(unsigned_path, None, unsigned_path)


def test_check_image_rejects_mismatched_content():
    with pytest.raises(UnsupportedImageFormat):
        check_image("sig.png", make_image_bytes("JPEG"), MAX_SIGNATURE_BYTES)


def test_check_image_rejects_oversized_file(png_bytes):
    with pytest.raises(ValidationError, match="exceeds"):
        check_image("sig.png", png_bytes, max_bytes=len(png_bytes) - 1)


def test_check_image_rejects_valid_header_with_corrupt_body():
    corrupt = b"\x89PNG\r\n\x1a\n" + b"garbage" * 50
    with pytest.raises(UnsupportedImageFormat):
        check_image("sig.png", corrupt, MAX_SIGNATURE_BYTES)


def test_corrupt_lender_asset_is_a_typed_error(store, unsigned_path, tmp_path):
    lender = tmp_path / "lender.png"
    lender.write_bytes(b"\x89PNG\r\n\x1a\n" + b"garbage" * 50)
    compositor = SignatureCompositor(store, MAX_SIGNATURE_BYTES, lender_signature_path=str(lender))

    with pytest.raises(UnsupportedImageFormat):
        compositor.sign(unsigned_path, None, "signed/out.pdf")
    assert not store.exists("signed/out.pdf")
