"""
Receipt document model and PDF rendering.

A receipt is an ordered list of content blocks built from a ledger entry and
the two resolved parties. The block order is the layout contract; the
renderer only decides how each block looks on the page.
"""

import io
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen.canvas import Canvas

from .ledger import TransactionRecord


DISCLAIMER = "This is a computer-generated receipt and does not require a signature."
TIMESTAMP_FORMAT = "%d %B %Y, %H:%M:%S UTC"


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


@dataclass(frozen=True)
class PartyIdentity:
    """Who sent or received the money, as printed on the receipt"""
    name: str
    account_number: str
    account_type: str


def placeholder_party(account_number: Optional[str]) -> PartyIdentity:
    """Identity used when the counterparty account cannot be resolved"""
    return PartyIdentity("External Account", account_number or "N/A", "External")


@dataclass(frozen=True)
class HeaderBlock:
    bank_name: str
    title: str = "PROOF OF PAYMENT"


@dataclass(frozen=True)
class StatusBadgeBlock:
    status: str


@dataclass(frozen=True)
class TransactionBlock:
    transaction_id: str
    timestamp: str
    reference: str
    amount: str
    description: str = ""
    fee: Optional[str] = None


@dataclass(frozen=True)
class PartyBlock:
    role: str  # "Sender" or "Recipient"
    party: PartyIdentity


@dataclass(frozen=True)
class VerificationCodeBlock:
    payload: str
    caption: str = "Scan to verify"


@dataclass(frozen=True)
class FooterBlock:
    disclaimer: str
    support_contact: str
    generated_at: str


ContentBlock = Union[
    HeaderBlock, StatusBadgeBlock, TransactionBlock, PartyBlock,
    VerificationCodeBlock, FooterBlock
]


@dataclass
class ReceiptDocument:
    """Renderer-independent receipt content"""
    transaction_id: str
    title: str
    blocks: List[ContentBlock] = field(default_factory=list)

    def find(self, block_type: type) -> List[ContentBlock]:
        return [b for b in self.blocks if isinstance(b, block_type)]


class ReceiptBuilder:
    """Builds the ordered block list for a ledger entry"""

    def __init__(self, bank_name: str, support_contact: str, verification_base_url: str):
        self.bank_name = bank_name
        self.support_contact = support_contact
        self.verification_base_url = verification_base_url.rstrip("/")

    def verification_url(self, transaction_id: str) -> str:
        return f"{self.verification_base_url}/{transaction_id}"

    def verification_payload(self, record: TransactionRecord) -> str:
        """Compact JSON encoded into the receipt's verification code"""
        return json.dumps({
            "transaction_id": record.transaction_id,
            "amount": record.money.plain(),
            "date": record.created_at.isoformat(),
            "reference": record.reference,
            "verification_url": self.verification_url(record.transaction_id),
        }, sort_keys=True, separators=(",", ":"))

    def build(
        self,
        record: TransactionRecord,
        sender: PartyIdentity,
        recipient: PartyIdentity,
        generated_at: Optional[datetime] = None
    ) -> ReceiptDocument:
        generated_at = generated_at or datetime.now(timezone.utc)
        fee = record.fee_money.format() if record.fee else None

        blocks: List[ContentBlock] = [
            HeaderBlock(bank_name=self.bank_name),
            StatusBadgeBlock(status=record.status.value.upper()),
            TransactionBlock(
                transaction_id=record.transaction_id,
                timestamp=format_timestamp(record.created_at),
                reference=record.reference,
                amount=record.money.format(),
                description=record.description,
                fee=fee
            ),
            PartyBlock(role="Sender", party=sender),
            PartyBlock(role="Recipient", party=recipient),
            VerificationCodeBlock(payload=self.verification_payload(record)),
            FooterBlock(
                disclaimer=DISCLAIMER,
                support_contact=f"For support, contact: {self.support_contact}",
                generated_at=f"Generated on: {format_timestamp(generated_at)}"
            ),
        ]
        return ReceiptDocument(
            transaction_id=record.transaction_id,
            title=f"Proof of Payment - {record.transaction_id}",
            blocks=blocks
        )


class ReportLabRenderer:
    """Draws a ReceiptDocument onto a single A4 page"""

    content_type = "application/pdf"

    def __init__(self, watermark_text: Optional[str] = None, primary_color=(0.17, 0.24, 0.31)):
        self.watermark_text = watermark_text
        self.primary_color = primary_color

    def render(self, document: ReceiptDocument) -> bytes:
        buffer = io.BytesIO()
        # invariant=1 pins the PDF id and creation date
        canvas = Canvas(buffer, pagesize=A4, invariant=1)
        canvas.setTitle(document.title)
        canvas.setSubject(f"Proof of payment for transaction {document.transaction_id}")

        page_width, page_height = A4
        y = page_height - 2 * cm

        if self.watermark_text:
            self._draw_watermark(canvas, self.watermark_text)

        for block in document.blocks:
            y = self._draw_block(canvas, block, y)

        canvas.showPage()
        canvas.save()
        return buffer.getvalue()

    def _draw_block(self, canvas: Canvas, block: ContentBlock, y: float) -> float:
        if isinstance(block, HeaderBlock):
            return self._draw_header(canvas, block, y)
        if isinstance(block, StatusBadgeBlock):
            return self._draw_status(canvas, block, y)
        if isinstance(block, TransactionBlock):
            return self._draw_transaction(canvas, block, y)
        if isinstance(block, PartyBlock):
            return self._draw_party(canvas, block, y)
        if isinstance(block, VerificationCodeBlock):
            return self._draw_verification_code(canvas, block, y)
        if isinstance(block, FooterBlock):
            return self._draw_footer(canvas, block, y)
        raise TypeError(f"Unsupported receipt block: {type(block).__name__}")

    def _draw_header(self, canvas: Canvas, block: HeaderBlock, y: float) -> float:
        page_width, _ = A4
        canvas.setFillColorRGB(*self.primary_color)
        canvas.setFont("Helvetica-Bold", 22)
        canvas.drawCentredString(page_width / 2, y, block.bank_name)

        y -= 0.9 * cm
        canvas.setFont("Helvetica-Bold", 14)
        canvas.drawCentredString(page_width / 2, y, block.title)
        canvas.setFillColorRGB(0, 0, 0)

        y -= 0.4 * cm
        canvas.setStrokeColorRGB(*self.primary_color)
        canvas.line(2 * cm, y, page_width - 2 * cm, y)
        return y - 1 * cm

    def _draw_status(self, canvas: Canvas, block: StatusBadgeBlock, y: float) -> float:
        page_width, _ = A4
        if block.status == "COMPLETED":
            canvas.setFillColorRGB(0.16, 0.6, 0.3)
        elif block.status == "FAILED":
            canvas.setFillColorRGB(0.8, 0.2, 0.2)
        else:
            canvas.setFillColorRGB(0.85, 0.6, 0.1)

        canvas.roundRect(page_width / 2 - 2.5 * cm, y - 0.3 * cm, 5 * cm, 0.9 * cm, 4, fill=True, stroke=False)
        canvas.setFillColorRGB(1, 1, 1)
        canvas.setFont("Helvetica-Bold", 11)
        canvas.drawCentredString(page_width / 2, y, block.status)
        canvas.setFillColorRGB(0, 0, 0)
        return y - 1.3 * cm

    def _draw_section_title(self, canvas: Canvas, title: str, y: float) -> float:
        canvas.setFont("Helvetica-Bold", 12)
        canvas.setFillColorRGB(*self.primary_color)
        canvas.drawString(2 * cm, y, title)
        canvas.setFillColorRGB(0, 0, 0)
        return y - 0.6 * cm

    def _draw_row(self, canvas: Canvas, label: str, value: str, y: float) -> float:
        canvas.setFont("Helvetica", 10)
        canvas.drawString(2.5 * cm, y, f"{label}:")
        canvas.setFont("Helvetica-Bold", 10)
        canvas.drawString(7 * cm, y, value)
        return y - 0.5 * cm

    def _draw_transaction(self, canvas: Canvas, block: TransactionBlock, y: float) -> float:
        y = self._draw_section_title(canvas, "Transaction Details", y)
        y = self._draw_row(canvas, "Transaction ID", block.transaction_id, y)
        y = self._draw_row(canvas, "Date & Time", block.timestamp, y)
        y = self._draw_row(canvas, "Reference", block.reference, y)
        if block.description:
            y = self._draw_row(canvas, "Description", block.description, y)
        y = self._draw_row(canvas, "Amount", block.amount, y)
        if block.fee:
            y = self._draw_row(canvas, "Fee", block.fee, y)
        return y - 0.5 * cm

    def _draw_party(self, canvas: Canvas, block: PartyBlock, y: float) -> float:
        y = self._draw_section_title(canvas, f"{block.role} Information", y)
        y = self._draw_row(canvas, "Name", block.party.name, y)
        y = self._draw_row(canvas, "Account Number", block.party.account_number, y)
        y = self._draw_row(canvas, "Account Type", block.party.account_type.title(), y)
        return y - 0.5 * cm

    def _draw_verification_code(self, canvas: Canvas, block: VerificationCodeBlock, y: float) -> float:
        page_width, _ = A4
        size = 4 * cm

        widget = QrCodeWidget(block.payload)
        widget.barLevel = "M"
        x0, y0, x1, y1 = widget.getBounds()
        drawing = Drawing(size, size, transform=[size / (x1 - x0), 0, 0, size / (y1 - y0), 0, 0])
        drawing.add(widget)

        renderPDF.draw(drawing, canvas, page_width / 2 - size / 2, y - size)
        y -= size + 0.4 * cm

        canvas.setFont("Helvetica", 9)
        canvas.drawCentredString(page_width / 2, y, block.caption)
        return y - 1 * cm

    def _draw_footer(self, canvas: Canvas, block: FooterBlock, y: float) -> float:
        page_width, _ = A4
        y = min(y, 3 * cm)
        canvas.setFont("Helvetica-Oblique", 8)
        canvas.setFillColorRGB(0.4, 0.4, 0.4)
        for line in (block.disclaimer, block.support_contact, block.generated_at):
            canvas.drawCentredString(page_width / 2, y, line)
            y -= 0.4 * cm
        canvas.setFillColorRGB(0, 0, 0)
        return y

    def _draw_watermark(self, canvas: Canvas, text: str) -> None:
        """Draw watermark text diagonally across page."""
        page_width, page_height = A4

        canvas.saveState()
        canvas.setFont("Helvetica-Bold", 60)
        canvas.setFillColorRGB(0.93, 0.93, 0.93)
        canvas.translate(page_width / 2, page_height / 2)
        canvas.rotate(45)
        canvas.drawCentredString(0, 0, text.upper())
        canvas.restoreState()
