"""
Tests for receipt document building and PDF rendering
"""

import json
import pytest
from datetime import datetime, timezone

from core_payments.documents import (
    FooterBlock, HeaderBlock, PartyBlock, PartyIdentity, ReceiptBuilder,
    ReportLabRenderer, StatusBadgeBlock, TransactionBlock, VerificationCodeBlock,
    format_timestamp, placeholder_party
)
from core_payments.ledger import EntryDirection, TransactionRecord, TransactionStatus


CREATED = datetime(2025, 3, 1, 9, 30, 15, tzinfo=timezone.utc)


def make_record(**overrides):
    data = dict(
        transaction_id="YB12345678ABCDEF0",
        account_id="ACC1",
        direction=EntryDirection.DEBIT,
        amount=-25000,
        reference="rent",
        counterparty_account_number="1000000002",
        balance_after=75000,
        created_at=CREATED,
        description="Payment to 1000000002"
    )
    data.update(overrides)
    return TransactionRecord(**data)


SENDER = PartyIdentity("Alice Dlamini", "1000000001", "savings")
RECIPIENT = PartyIdentity("Bob Mokoena", "1000000002", "checking")


class TestReceiptBuilder:

    def setup_method(self):
        self.builder = ReceiptBuilder(
            "YourBank", "support@yourbank.com | +27 11 123 4567", "https://yourbank.com/verify/"
        )

    def test_block_order(self):
        document = self.builder.build(make_record(), SENDER, RECIPIENT)
        assert [type(b) for b in document.blocks] == [
            HeaderBlock, StatusBadgeBlock, TransactionBlock, PartyBlock, PartyBlock,
            VerificationCodeBlock, FooterBlock
        ]
        sender_block, recipient_block = document.find(PartyBlock)
        assert sender_block.role == "Sender" and sender_block.party == SENDER
        assert recipient_block.role == "Recipient" and recipient_block.party == RECIPIENT

    def test_transaction_block_content(self):
        document = self.builder.build(make_record(), SENDER, RECIPIENT)
        block = document.find(TransactionBlock)[0]

        assert block.transaction_id == "YB12345678ABCDEF0"
        assert block.amount == "R250.00"
        assert block.reference == "rent"
        assert block.timestamp == "01 March 2025, 09:30:15 UTC"
        assert block.fee is None

    def test_fee_shown_when_nonzero(self):
        document = self.builder.build(make_record(fee=500), SENDER, RECIPIENT)
        assert document.find(TransactionBlock)[0].fee == "R5.00"

    def test_status_badge_reflects_record(self):
        completed = self.builder.build(make_record(), SENDER, RECIPIENT)
        pending = self.builder.build(make_record(status=TransactionStatus.PENDING), SENDER, RECIPIENT)
        assert completed.find(StatusBadgeBlock)[0].status == "COMPLETED"
        assert pending.find(StatusBadgeBlock)[0].status == "PENDING"

    def test_verification_payload(self):
        document = self.builder.build(make_record(), SENDER, RECIPIENT)
        payload = json.loads(document.find(VerificationCodeBlock)[0].payload)

        assert payload == {
            "transaction_id": "YB12345678ABCDEF0",
            "amount": "250.00",
            "date": CREATED.isoformat(),
            "reference": "rent",
            "verification_url": "https://yourbank.com/verify/YB12345678ABCDEF0",
        }

    def test_footer(self):
        generated = datetime(2025, 3, 2, 8, 0, 0, tzinfo=timezone.utc)
        document = self.builder.build(make_record(), SENDER, RECIPIENT, generated_at=generated)
        footer = document.find(FooterBlock)[0]

        assert "does not require a signature" in footer.disclaimer
        assert footer.support_contact == "For support, contact: support@yourbank.com | +27 11 123 4567"
        assert footer.generated_at == "Generated on: 02 March 2025, 08:00:00 UTC"


class TestHelpers:

    def test_placeholder_party(self):
        assert placeholder_party("9999999999") == PartyIdentity("External Account", "9999999999", "External")
        assert placeholder_party(None).account_number == "N/A"

    def test_naive_timestamps_treated_as_utc(self):
        assert format_timestamp(datetime(2025, 1, 5, 7, 8, 9)) == "05 January 2025, 07:08:09 UTC"


class TestReportLabRenderer:

    def setup_method(self):
        self.builder = ReceiptBuilder("YourBank", "support@yourbank.com", "https://yourbank.com/verify")
        self.document = self.builder.build(
            make_record(), SENDER, RECIPIENT, generated_at=datetime(2025, 3, 2, tzinfo=timezone.utc)
        )

    def test_renders_pdf(self):
        content = ReportLabRenderer(watermark_text="YourBank").render(self.document)
        assert content.startswith(b"%PDF")
        assert len(content) > 1000

    def test_rendering_is_deterministic(self):
        renderer = ReportLabRenderer()
        assert renderer.render(self.document) == renderer.render(self.document)

    def test_unknown_block_rejected(self):
        self.document.blocks.append(object())
        with pytest.raises(TypeError):
            ReportLabRenderer().render(self.document)
