import io
import logging
import os
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Tuple
from uuid import uuid4
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Flowable, Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from modules.agreements.errors import ValidationError
from modules.agreements.storage import UNSIGNED, ContentStore

logger = logging.getLogger(__name__)

NOT_PROVIDED = "Not provided"
CENTS = Decimal("0.01")

# Page geometry shared with the signature compositor
PAGE_SIZE = A4
MARGIN = 54
SIGNATURE_BLOCK_HEIGHT = 130
_COLUMN_WIDTH = (PAGE_SIZE[0] - 2 * MARGIN) / 2
_SIGNATURE_LINE_Y = MARGIN + 60
_IMAGE_W, _IMAGE_H = 180, 56

# (x, y, width, height) in points on the last page
LENDER_SIGNATURE_BOX = (MARGIN + (_COLUMN_WIDTH - _IMAGE_W) / 2, _SIGNATURE_LINE_Y + 4, _IMAGE_W, _IMAGE_H)
BORROWER_SIGNATURE_BOX = (
    MARGIN + _COLUMN_WIDTH + (_COLUMN_WIDTH - _IMAGE_W) / 2, _SIGNATURE_LINE_Y + 4, _IMAGE_W, _IMAGE_H
)

OBLIGATIONS_TEXT = (
    "The Borrower agrees to repay the Loan in full according to the repayment schedule. "
    "Late or missed payments may result in penalties as provided by law."
)
DEFAULT_TEXT = (
    "In the event of default, the Lender may demand immediate repayment of the outstanding "
    "balance, and take necessary legal action."
)
GOVERNING_LAW_TEXT = (
    "This Agreement shall be governed by and construed in accordance with the laws of the "
    "jurisdiction in which the Lender operates."
)


def _to_decimal(value, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Loan {field} is not a number: {value!r}")


def compute_repayment(principal: Decimal, annual_rate: Decimal, term_months: int) -> Tuple[Decimal, Decimal]:
    """
    Monthly installment and total repayment of an amortizing loan.

    ``annual_rate`` is a percentage (12 means 12% a year). Amounts are rounded
    half-up to cents; the total is the rounded installment times the term.
    """
    monthly_rate = annual_rate / Decimal(100) / Decimal(12)
    if monthly_rate == 0:
        monthly = principal / Decimal(term_months)
    else:
        monthly = principal * monthly_rate / (1 - (1 + monthly_rate) ** -term_months)
    monthly = monthly.quantize(CENTS, rounding=ROUND_HALF_UP)
    return monthly, (monthly * term_months).quantize(CENTS, rounding=ROUND_HALF_UP)


def _money(value: Decimal) -> str:
    return f"${value:,.2f}"


def _text(value) -> str:
    if value is None:
        return NOT_PROVIDED
    s = str(value).strip()
    return escape(s) if s else NOT_PROVIDED


class _SignatureBlock(Flowable):
    """
    Two-column signature block pinned to the bottom of the last page.

    It claims whatever height is left in the frame so its drawing origin is
    always the bottom margin, which keeps the signature boxes at fixed
    coordinates for the compositor.
    """

    def __init__(self, lender_name: str, borrower_name: str):
        super().__init__()
        self.lender_name = lender_name
        self.borrower_name = borrower_name

    def wrap(self, availWidth, availHeight):
        self.width = availWidth
        self.height = max(availHeight, SIGNATURE_BLOCK_HEIGHT)
        return self.width, self.height

    def draw(self):
        c = self.canv
        # Draw relative to the page margins, not the frame padding
        ox, oy = c.absolutePosition(0, 0)
        c.translate(MARGIN - ox, MARGIN - oy)
        line_y = _SIGNATURE_LINE_Y - MARGIN
        columns = (
            (0, "Lender Representative", self.lender_name),
            (_COLUMN_WIDTH, "Borrower", self.borrower_name),
        )
        for x, label, name in columns:
            center = x + _COLUMN_WIDTH / 2
            c.setFont("Helvetica", 11)
            c.drawCentredString(center, line_y, "_" * 30)
            c.setFont("Helvetica-Bold", 10)
            c.drawCentredString(center, line_y - 14, label)
            c.setFont("Helvetica", 10)
            c.drawCentredString(center, line_y - 28, name)
            c.drawCentredString(center, line_y - 48, "Date: ________________")


class AgreementRenderer:
    """Renders the unsigned loan agreement for a (loan, borrower) pair."""

    def __init__(self, store: ContentStore, lender_name: str, branding_asset_path: Optional[str] = None):
        self.store = store
        self.lender_name = lender_name
        self.branding_asset_path = branding_asset_path

        styles = getSampleStyleSheet()
        self.s_title = ParagraphStyle("Title", parent=styles["Heading1"], fontSize=18, alignment=1, spaceAfter=6)
        self.s_sub = ParagraphStyle("Sub", parent=styles["BodyText"], fontSize=11, alignment=1, spaceAfter=12)
        self.s_section = ParagraphStyle("Section", parent=styles["Heading2"], fontSize=12, spaceBefore=10, spaceAfter=4)
        self.s_body = ParagraphStyle("Body", parent=styles["BodyText"], fontSize=10.5, leading=14)

    @staticmethod
    def validate(loan, user) -> None:
        if loan is None or getattr(loan, "id", None) is None:
            raise ValidationError("Loan identifier is required")
        if user is None:
            raise ValidationError("Borrower is required")
        if getattr(loan, "amount", None) is None:
            raise ValidationError("Loan amount is required")
        if getattr(loan, "term", None) is None:
            raise ValidationError("Loan term is required")
        if getattr(loan, "interest_rate", None) is None:
            raise ValidationError("Loan interest rate is required")
        if _to_decimal(loan.amount, "amount") <= 0:
            raise ValidationError("Loan amount must be positive")
        if int(loan.term) <= 0:
            raise ValidationError("Loan term must be at least one month")
        if _to_decimal(loan.interest_rate, "interest rate") < 0:
            raise ValidationError("Loan interest rate cannot be negative")
        if not (getattr(user, "first_name", None) or "").strip() or not (getattr(user, "last_name", None) or "").strip():
            raise ValidationError("Borrower first and last name are required")

    def _branding_image(self) -> Optional[Image]:
        path = self.branding_asset_path
        if not path:
            return None
        if not os.path.exists(path):
            logger.warning("Branding asset not found at %s; rendering without logo", path)
            return None
        try:
            img = Image(path)
            scale = min(120.0 / img.imageWidth, 60.0 / img.imageHeight, 1.0)
            img.drawWidth = img.imageWidth * scale
            img.drawHeight = img.imageHeight * scale
            return img
        except OSError as e:
            logger.warning("Branding asset %s could not be loaded: %s", path, e)
            return None

    def render(self, loan, user, generated_on: Optional[date] = None) -> bytes:
        self.validate(loan, user)
        generated_on = generated_on or datetime.now(timezone.utc).date()

        principal = _to_decimal(loan.amount, "amount")
        rate = _to_decimal(loan.interest_rate, "interest rate")
        term = int(loan.term)
        monthly, total = compute_repayment(principal, rate, term)
        borrower_name = escape(f"{user.first_name.strip()} {user.last_name.strip()}")

        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=PAGE_SIZE,
            leftMargin=MARGIN,
            rightMargin=MARGIN,
            topMargin=MARGIN,
            bottomMargin=MARGIN,
            title=f"Loan Agreement #{loan.id}",
        )

        story: list = []

        # Header
        logo = self._branding_image()
        if logo:
            story += [logo, Spacer(1, 8)]
        story.append(Paragraph("LOAN AGREEMENT", self.s_title))
        story.append(Paragraph(f"Date: {generated_on.strftime('%d %B %Y')}", self.s_sub))

        # Parties
        story.append(Paragraph("LENDER", self.s_section))
        story.append(Paragraph(escape(self.lender_name), self.s_body))

        story.append(Paragraph("BORROWER", self.s_section))
        story.append(Paragraph(f"<b>Name:</b> {borrower_name}", self.s_body))
        story.append(Paragraph(f"<b>ID Number:</b> {_text(getattr(loan, 'borrower_id_number', None))}", self.s_body))
        story.append(Paragraph(f"<b>Email:</b> {_text(getattr(user, 'email', None))}", self.s_body))
        story.append(Paragraph(f"<b>Phone:</b> {_text(getattr(user, 'phone_number', None))}", self.s_body))
        story.append(Paragraph(f"<b>Address:</b> {_text(getattr(user, 'address', None))}", self.s_body))

        # Loan terms
        story.append(Paragraph("LOAN DETAILS", self.s_section))
        rows = [
            ["Item", "Value"],
            ["Product", _text(getattr(loan, "product_type", None))],
            ["Principal Amount", _money(principal)],
            ["Term", f"{term} months"],
            ["Interest Rate", f"{rate:.2f}% per annum"],
            ["Repayment Schedule", "Monthly installments"],
            ["Monthly Payment", _money(monthly)],
            ["Total Repayment", _money(total)],
        ]
        table = Table(rows, colWidths=[doc.width * 0.45, doc.width * 0.55])
        table.setStyle(TableStyle([
            ("FONT", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#F3F4F6")),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#D1D5DB")),
            ("FONT", (0, -1), (-1, -1), "Helvetica-Bold"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        story += [table, Spacer(1, 6)]

        # Boilerplate
        for title, text in (
            ("BORROWER OBLIGATIONS", OBLIGATIONS_TEXT),
            ("DEFAULT", DEFAULT_TEXT),
            ("GOVERNING LAW", GOVERNING_LAW_TEXT),
        ):
            story.append(Paragraph(title, self.s_section))
            story.append(Paragraph(text, self.s_body))

        story.append(Spacer(1, 12))
        story.append(_SignatureBlock(self.lender_name, f"{user.first_name.strip()} {user.last_name.strip()}"))

        doc.build(story)
        return buf.getvalue()

    @staticmethod
    def unsigned_path_for(loan_id) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        return f"{UNSIGNED}/loan_{loan_id}_{stamp}_{uuid4().hex[:8]}.pdf"

    def generate(self, loan, user) -> str:
        """Renders the agreement and writes it to the content store; returns its path."""
        pdf_bytes = self.render(loan, user)
        path = self.unsigned_path_for(loan.id)
        self.store.write(path, pdf_bytes)
        logger.info("Rendered agreement for loan %s to %s (%d bytes)", loan.id, path, len(pdf_bytes))
        return path
