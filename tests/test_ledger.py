"""
Tests for the transaction ledger
"""

import pytest
from datetime import datetime, timezone, timedelta

from core_payments.currency import Currency
from core_payments.storage import InMemoryStorage
from core_payments.ledger import (
    EntryDirection, TransactionLedger, TransactionRecord, TransactionStatus
)
from core_payments.errors import (
    DuplicateTransactionIdError, TransactionNotFoundError, ValidationError
)


BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_entry(transaction_id, account_id="ACC1", amount=-1000, minutes=0, **kwargs):
    direction = EntryDirection.DEBIT if amount < 0 else EntryDirection.CREDIT
    return TransactionRecord(
        transaction_id=transaction_id,
        account_id=account_id,
        direction=direction,
        amount=amount,
        reference="rent",
        counterparty_account_number="1000000002",
        balance_after=5000,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **kwargs
    )


class TestTransactionRecord:

    def test_sign_must_match_direction(self):
        with pytest.raises(ValueError):
            TransactionRecord(
                transaction_id="T1", account_id="A", direction=EntryDirection.DEBIT,
                amount=100, reference="x", counterparty_account_number="1",
                balance_after=0, created_at=BASE_TIME
            )
        with pytest.raises(ValueError):
            make_entry("T2", amount=0)

    def test_can_generate_proof_follows_status(self):
        assert make_entry("T1").can_generate_proof
        assert not make_entry("T2", status=TransactionStatus.PENDING).can_generate_proof
        assert not make_entry("T3", status=TransactionStatus.FAILED).can_generate_proof

    def test_dict_round_trip_preserves_fields(self):
        entry = make_entry("T1", currency=Currency.USD, fee=50, pair_transaction_id="T2")
        restored = TransactionRecord.from_dict(entry.to_dict())
        assert restored == entry


class TestTransactionLedger:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.ledger = TransactionLedger(self.storage)

    def test_record_and_find(self):
        self.ledger.record_entry(make_entry("T1"))

        assert self.ledger.exists("T1")
        assert not self.ledger.exists("T2")
        found = self.ledger.find_by_transaction_id("T1")
        assert found.amount == -1000
        assert found.direction == EntryDirection.DEBIT
        assert self.ledger.find_by_transaction_id("missing") is None

    def test_duplicate_id_rejected(self):
        self.ledger.record_entry(make_entry("T1"))
        with pytest.raises(DuplicateTransactionIdError):
            self.ledger.record_entry(make_entry("T1", amount=-5))
        assert self.ledger.find_by_transaction_id("T1").amount == -1000

    def test_list_by_account_newest_first_with_pagination(self):
        for i in range(25):
            self.ledger.record_entry(make_entry(f"T{i:02d}", minutes=i))
        self.ledger.record_entry(make_entry("OTHER", account_id="ACC2"))

        page = self.ledger.list_by_account("ACC1", page=1, limit=10)
        assert page.total == 25
        assert page.total_pages == 3
        assert [e.transaction_id for e in page.entries][:2] == ["T24", "T23"]

        last = self.ledger.list_by_account("ACC1", page=3, limit=10)
        assert [e.transaction_id for e in last.entries] == ["T04", "T03", "T02", "T01", "T00"]

        beyond = self.ledger.list_by_account("ACC1", page=4, limit=10)
        assert beyond.entries == []

    def test_list_by_account_set(self):
        self.ledger.record_entry(make_entry("A1", account_id="ACC1", minutes=1))
        self.ledger.record_entry(make_entry("B1", account_id="ACC2", amount=300, minutes=2))
        self.ledger.record_entry(make_entry("C1", account_id="ACC3", minutes=3))

        page = self.ledger.list_by_account_set(["ACC1", "ACC2"])
        assert [e.transaction_id for e in page.entries] == ["B1", "A1"]

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 101), (-1, 5)])
    def test_invalid_paging_rejected(self, page, limit):
        with pytest.raises(ValidationError):
            self.ledger.list_by_account("ACC1", page=page, limit=limit)

    def test_mark_proof_generated_is_only_mutation(self):
        self.ledger.record_entry(make_entry("T1"))
        before = self.ledger.find_by_transaction_id("T1")

        self.ledger.mark_proof_generated("T1")
        after = self.ledger.find_by_transaction_id("T1")

        assert after.proof_generated
        before.proof_generated = True
        assert after == before

    def test_mark_unknown_transaction(self):
        with pytest.raises(TransactionNotFoundError):
            self.ledger.mark_proof_generated("missing")
