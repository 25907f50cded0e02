import io
import logging
import os
from typing import Optional

from PIL import Image as PILImage
from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from modules.agreements.errors import NotFoundError, UnsupportedImageFormat, ValidationError
from modules.agreements.services.renderer import BORROWER_SIGNATURE_BOX, LENDER_SIGNATURE_BOX, MARGIN
from modules.agreements.storage import ContentStore

logger = logging.getLogger(__name__)

# Magic bytes per accepted extension
IMAGE_SIGNATURES = {
    ".png": b"\x89PNG\r\n\x1a\n",
    ".jpg": b"\xff\xd8\xff",
    ".jpeg": b"\xff\xd8\xff",
}


def check_image(filename: str, data: bytes, max_bytes: int) -> None:
    """Rejects anything that is not a PNG/JPEG of acceptable size."""
    ext = os.path.splitext(filename)[1].lower()
    if ext not in IMAGE_SIGNATURES:
        raise UnsupportedImageFormat(f"Signature image must be .png, .jpg or .jpeg, got {ext or 'no extension'}")
    if not data:
        raise ValidationError("Signature image is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"Signature image exceeds {max_bytes // (1024 * 1024)} MB")
    if not data.startswith(IMAGE_SIGNATURES[ext]):
        raise UnsupportedImageFormat(f"Signature image content does not match {ext}")
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            img.load()
    except (OSError, SyntaxError) as e:
        raise UnsupportedImageFormat(f"Signature image could not be decoded: {e}")


def _image_reader(data: bytes) -> ImageReader:
    try:
        return ImageReader(io.BytesIO(data))
    except OSError as e:
        raise UnsupportedImageFormat(f"Signature image could not be decoded: {e}")


class SignatureCompositor:
    """Overlays signature images onto the last page of an existing agreement."""

    def __init__(self, store: ContentStore, max_image_bytes: int, lender_signature_path: Optional[str] = None):
        self.store = store
        self.max_image_bytes = max_image_bytes
        self.lender_signature_path = lender_signature_path

    def _lender_image(self) -> Optional[ImageReader]:
        path = self.lender_signature_path
        if not path:
            return None
        if not os.path.exists(path):
            logger.warning("Lender signature asset not found at %s; leaving lender line blank", path)
            return None
        with open(path, "rb") as f:
            data = f.read()
        check_image(path, data, self.max_image_bytes)
        return _image_reader(data)

    def _build_overlay(self, width: float, height: float, borrower: Optional[ImageReader],
                       lender: Optional[ImageReader], stamp: Optional[str]) -> bytes:
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=(width, height))
        for image, (x, y, w, h) in ((lender, LENDER_SIGNATURE_BOX), (borrower, BORROWER_SIGNATURE_BOX)):
            if image is not None:
                c.drawImage(image, x, y, width=w, height=h, preserveAspectRatio=True, anchor="c", mask="auto")
        if stamp:
            c.setFont("Helvetica", 7)
            c.setFillGray(0.35)
            c.drawRightString(width - MARGIN, MARGIN - 16, stamp)
        c.showPage()
        c.save()
        return buf.getvalue()

    def sign(self, source_pdf_path: str, signature_image_path: Optional[str], output_path: str,
             stamp: Optional[str] = None) -> str:
        """
        Composes a signed copy of ``source_pdf_path`` into ``output_path``.

        The source is only read. The result is built fully in memory and written
        with a single atomic store write.
        """
        if output_path == source_pdf_path:
            raise ValidationError("Signed output must not overwrite the source agreement")

        # 1) Load inputs
        if not self.store.exists(source_pdf_path):
            raise NotFoundError(f"Agreement not found: {source_pdf_path}")
        source_bytes = self.store.read(source_pdf_path)

        borrower = None
        if signature_image_path:
            if not self.store.exists(signature_image_path):
                raise NotFoundError(f"Signature image not found: {signature_image_path}")
            image_bytes = self.store.read(signature_image_path)
            check_image(signature_image_path, image_bytes, self.max_image_bytes)
            borrower = _image_reader(image_bytes)
        lender = self._lender_image()

        # 2) Merge overlay onto the last page
        try:
            reader = PdfReader(io.BytesIO(source_bytes))
            pages = reader.pages
            if not pages:
                raise ValidationError(f"Agreement has no pages: {source_pdf_path}")
        except PdfReadError as e:
            raise ValidationError(f"Agreement is not a readable PDF: {e}")

        writer = PdfWriter()
        last = len(pages) - 1
        for i, page in enumerate(pages):
            if i == last:
                width = float(page.mediabox.width)
                height = float(page.mediabox.height)
                try:
                    overlay_bytes = self._build_overlay(width, height, borrower, lender, stamp)
                except OSError as e:
                    raise UnsupportedImageFormat(f"Signature image could not be decoded: {e}")
                page.merge_page(PdfReader(io.BytesIO(overlay_bytes)).pages[0])
            writer.add_page(page)

        out = io.BytesIO()
        writer.write(out)

        # 3) Single write of the composed result
        self.store.write(output_path, out.getvalue())
        logger.info("Composed signed agreement %s from %s", output_path, source_pdf_path)
        return output_path
