"""
Transaction Ledger

Append-only record of money movements. Each committed transfer writes
exactly two entries (a debit on the sender, a credit on the recipient) whose
signed amounts sum to zero. Entries are immutable once recorded; the proof
flag is the only field that may change afterwards.
"""

from datetime import datetime
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional
from enum import Enum

from .currency import Money, Currency
from .storage import StorageInterface, DuplicateRecordError
from .errors import (
    DuplicateTransactionIdError, TransactionNotFoundError, ValidationError
)


MAX_PAGE_LIMIT = 100


class EntryDirection(Enum):
    """Side of a transfer an entry records"""
    DEBIT = "debit"    # Money left the account
    CREDIT = "credit"  # Money arrived in the account


class TransactionStatus(Enum):
    """Lifecycle status of a ledger entry"""
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


@dataclass
class TransactionRecord:
    """
    One side of a transfer as seen from a single account
    """
    transaction_id: str
    account_id: str
    direction: EntryDirection
    amount: int  # Signed minor units: negative for debits
    reference: str
    counterparty_account_number: str
    balance_after: int
    created_at: datetime
    currency: Currency = Currency.ZAR
    fee: int = 0
    status: TransactionStatus = TransactionStatus.COMPLETED
    proof_generated: bool = False
    description: str = ""
    pair_transaction_id: Optional[str] = None

    def __post_init__(self):
        if self.amount == 0:
            raise ValueError("Entry amount cannot be zero")

        if self.direction == EntryDirection.DEBIT and self.amount > 0:
            raise ValueError("Debit entries carry a negative amount")

        if self.direction == EntryDirection.CREDIT and self.amount < 0:
            raise ValueError("Credit entries carry a positive amount")

        if self.fee < 0:
            raise ValueError("Fee cannot be negative")

    @property
    def can_generate_proof(self) -> bool:
        """Receipts are only issued for completed movements"""
        return self.status == TransactionStatus.COMPLETED

    @property
    def money(self) -> Money:
        """Magnitude of the movement as Money"""
        return Money.from_minor_units(abs(self.amount), self.currency)

    @property
    def fee_money(self) -> Money:
        return Money.from_minor_units(self.fee, self.currency)

    def to_dict(self) -> Dict:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['direction'] = self.direction.value
        result['status'] = self.status.value
        result['currency'] = self.currency.code
        result['created_at'] = self.created_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> 'TransactionRecord':
        """Create instance from dictionary"""
        return cls(
            transaction_id=data['transaction_id'],
            account_id=data['account_id'],
            direction=EntryDirection(data['direction']),
            amount=int(data['amount']),
            reference=data['reference'],
            counterparty_account_number=data['counterparty_account_number'],
            balance_after=int(data['balance_after']),
            created_at=datetime.fromisoformat(data['created_at']),
            currency=Currency[data['currency']],
            fee=int(data.get('fee', 0)),
            status=TransactionStatus(data['status']),
            proof_generated=bool(data.get('proof_generated', False)),
            description=data.get('description', ""),
            pair_transaction_id=data.get('pair_transaction_id')
        )


@dataclass
class LedgerPage:
    """One page of ledger entries, newest first"""
    entries: List[TransactionRecord]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit


class TransactionLedger:
    """
    Append-only store of transaction entries keyed by transaction id
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.entries_table = "transactions"

    def record_entry(self, entry: TransactionRecord) -> TransactionRecord:
        """
        Append an entry to the ledger

        Raises:
            DuplicateTransactionIdError: If the transaction id is already used
        """
        try:
            self.storage.insert(self.entries_table, entry.transaction_id, entry.to_dict())
        except DuplicateRecordError:
            raise DuplicateTransactionIdError(
                f"Transaction id {entry.transaction_id} already exists"
            )
        return entry

    def find_by_transaction_id(self, transaction_id: str) -> Optional[TransactionRecord]:
        """Get entry by transaction id"""
        data = self.storage.load(self.entries_table, transaction_id)
        if data:
            return TransactionRecord.from_dict(data)
        return None

    def require(self, transaction_id: str) -> TransactionRecord:
        """Get entry by transaction id or raise TransactionNotFoundError"""
        entry = self.find_by_transaction_id(transaction_id)
        if not entry:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return entry

    def exists(self, transaction_id: str) -> bool:
        return self.storage.exists(self.entries_table, transaction_id)

    def list_by_account(self, account_id: str, page: int = 1, limit: int = 10) -> LedgerPage:
        """Entries of one account, newest first"""
        return self.list_by_account_set([account_id], page=page, limit=limit)

    def list_by_account_set(
        self,
        account_ids: Iterable[str],
        page: int = 1,
        limit: int = 10
    ) -> LedgerPage:
        """
        Entries belonging to any of the given accounts, newest first

        Raises:
            ValidationError: If page < 1 or limit is outside 1..100
        """
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if limit < 1 or limit > MAX_PAGE_LIMIT:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_LIMIT}")

        wanted = set(account_ids)
        entries = [
            TransactionRecord.from_dict(data)
            for data in self.storage.load_all(self.entries_table)
            if data['account_id'] in wanted
        ]
        entries.sort(key=lambda e: (e.created_at, e.transaction_id), reverse=True)

        start = (page - 1) * limit
        return LedgerPage(
            entries=entries[start:start + limit],
            page=page,
            limit=limit,
            total=len(entries)
        )

    def mark_proof_generated(self, transaction_id: str) -> TransactionRecord:
        """
        Flag that a receipt has been produced for the entry

        Raises:
            TransactionNotFoundError: If the entry does not exist
        """
        entry = self.require(transaction_id)
        if not entry.proof_generated:
            entry.proof_generated = True
            self.storage.save(self.entries_table, transaction_id, entry.to_dict())
        return entry
