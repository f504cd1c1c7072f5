"""
Transfer Processing Module

Moves money between two stored accounts. A transfer debits the sender,
credits the recipient and appends one ledger entry for each side inside a
single atomic storage unit, so either all four writes land or none do.

Concurrency: both accounts are locked in ascending id order (bounded wait),
balances are re-read under the locks, and account writes carry an expected
version. Transfers on disjoint account pairs never contend.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .accounts import Account, AccountStore
from .currency import Money
from .errors import (
    AccountNotFoundError, ConflictError, DuplicateTransactionIdError,
    InsufficientFundsError, LockTimeoutError, ValidationError, VersionConflictError
)
from .ids import TransactionIdGenerator
from .ledger import EntryDirection, TransactionLedger, TransactionRecord, TransactionStatus
from .notifications import NotificationDispatcher
from .storage import DuplicateRecordError, StorageInterface
from .logging_config import get_logger, log_action


MAX_REFERENCE_LENGTH = 100


class AccountLockManager:
    """Per-account mutexes acquired in a global order"""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @contextmanager
    def hold(self, account_ids: Iterable[str], timeout: float):
        """
        Hold the locks of all given accounts for the duration of the block

        Raises:
            LockTimeoutError: If the locks are not all acquired within timeout
        """
        ordered = sorted(set(account_ids))
        deadline = time.monotonic() + timeout
        acquired: List[threading.Lock] = []
        try:
            for account_id in ordered:
                lock = self._lock_for(account_id)
                remaining = max(0.0, deadline - time.monotonic())
                if not lock.acquire(timeout=remaining):
                    raise LockTimeoutError(
                        f"Timed out after {timeout}s waiting for account {account_id}"
                    )
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


@dataclass
class TransferResult:
    """Outcome of a committed transfer"""
    debit_transaction_id: str
    credit_transaction_id: str
    sender_balance: int
    beneficiary_balance: int
    amount: Money
    reference: str
    created_at: datetime


class TransferEngine:
    """
    Executes account-to-account transfers
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        ledger: TransactionLedger,
        id_generator: Optional[TransactionIdGenerator] = None,
        locks: Optional[AccountLockManager] = None,
        notifier: Optional[NotificationDispatcher] = None,
        max_attempts: int = 5,
        lock_timeout: float = 5.0
    ):
        self.storage = storage
        self.accounts = accounts
        self.ledger = ledger
        self.id_generator = id_generator or TransactionIdGenerator()
        self.locks = locks or AccountLockManager()
        self.notifier = notifier
        self.max_attempts = max_attempts
        self.lock_timeout = lock_timeout
        self.logger = get_logger("payments.transfers")

    def execute_transfer(
        self,
        from_account_id: str,
        to_account_number: str,
        amount: Money,
        reference: str
    ) -> TransferResult:
        """
        Transfer amount from an account (by id) to an account (by number)

        Args:
            from_account_id: Sender account id
            to_account_number: Recipient account number
            amount: Positive amount in the accounts' currency
            reference: Free-text payment reference

        Returns:
            TransferResult with both transaction ids and new balances

        Raises:
            ValidationError: Bad amount, reference, currency or self-transfer
            AccountNotFoundError: Sender or recipient does not exist
            InsufficientFundsError: Sender balance below amount
            LockTimeoutError: Accounts stayed locked beyond the timeout
            ConflictError: Id or version conflicts persisted past retries
        """
        reference = self._validate(amount, reference)

        sender = self.accounts.require_account(from_account_id)
        recipient = self.accounts.get_account_by_number(to_account_number)
        if not recipient:
            raise AccountNotFoundError(f"Account number {to_account_number} not found")

        if sender.id == recipient.id:
            raise ValidationError("Cannot transfer to the same account")

        for account in (sender, recipient):
            if account.currency != amount.currency:
                raise ValidationError(
                    f"Amount currency {amount.currency.code} does not match "
                    f"account {account.account_number} currency {account.currency.code}"
                )

        minor_units = amount.to_minor_units()
        if sender.balance < minor_units:
            raise InsufficientFundsError(sender.id, sender.balance, minor_units)

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            with self.locks.hold([sender.id, recipient.id], self.lock_timeout):
                try:
                    result, sender, recipient = self._commit(
                        sender.id, recipient.id, minor_units, amount, reference
                    )
                except (DuplicateTransactionIdError, DuplicateRecordError, VersionConflictError) as e:
                    last_error = e
                    log_action(
                        self.logger, "warning", f"Transfer attempt {attempt} rolled back: {e}",
                        owner_id=sender.owner_id, action="transfer_retry", resource=sender.id
                    )
                    continue
            break
        else:
            raise ConflictError(
                f"Transfer could not be committed after {self.max_attempts} attempts: {last_error}"
            )

        log_action(
            self.logger, "info",
            f"Transfer committed: {amount.to_string()} to {recipient.account_number}",
            owner_id=sender.owner_id, action="transfer", resource=result.debit_transaction_id,
            extra={
                "credit_transaction_id": result.credit_transaction_id,
                "from_account": sender.account_number,
                "to_account": recipient.account_number,
                "amount": minor_units,
            }
        )

        self._notify(sender, recipient, amount, reference, result)
        return result

    def _validate(self, amount: Money, reference: str) -> str:
        if not isinstance(amount, Money):
            raise ValidationError("Amount must be a Money value")
        if not amount.is_positive():
            raise ValidationError("Amount must be greater than zero")
        if reference is None or not reference.strip():
            raise ValidationError("Reference is required")
        reference = reference.strip()
        if len(reference) > MAX_REFERENCE_LENGTH:
            raise ValidationError(f"Reference cannot exceed {MAX_REFERENCE_LENGTH} characters")
        return reference

    def _commit(self, sender_id: str, recipient_id: str, minor_units: int,
                amount: Money, reference: str):
        """One attempt: re-read under locks, then write both sides atomically"""
        sender = self.accounts.require_account(sender_id)
        recipient = self.accounts.require_account(recipient_id)

        if sender.balance < minor_units:
            raise InsufficientFundsError(sender.id, sender.balance, minor_units)

        debit_id = self.id_generator.generate_unique(self.ledger.exists, self.max_attempts)
        credit_id = self.id_generator.generate_unique(
            lambda tx_id: tx_id == debit_id or self.ledger.exists(tx_id), self.max_attempts
        )
        now = datetime.now(timezone.utc)

        with self.storage.atomic():
            sender_version, recipient_version = sender.version, recipient.version
            sender.balance -= minor_units
            recipient.balance += minor_units
            self.accounts.save_account(sender, sender_version)
            self.accounts.save_account(recipient, recipient_version)

            self.ledger.record_entry(TransactionRecord(
                transaction_id=debit_id,
                account_id=sender.id,
                direction=EntryDirection.DEBIT,
                amount=-minor_units,
                reference=reference,
                counterparty_account_number=recipient.account_number,
                balance_after=sender.balance,
                created_at=now,
                currency=amount.currency,
                status=TransactionStatus.COMPLETED,
                description=f"Payment to {recipient.account_number}",
                pair_transaction_id=credit_id
            ))
            self.ledger.record_entry(TransactionRecord(
                transaction_id=credit_id,
                account_id=recipient.id,
                direction=EntryDirection.CREDIT,
                amount=minor_units,
                reference=reference,
                counterparty_account_number=sender.account_number,
                balance_after=recipient.balance,
                created_at=now,
                currency=amount.currency,
                status=TransactionStatus.COMPLETED,
                description=f"Received from {sender.account_number}",
                pair_transaction_id=debit_id
            ))

        result = TransferResult(
            debit_transaction_id=debit_id,
            credit_transaction_id=credit_id,
            sender_balance=sender.balance,
            beneficiary_balance=recipient.balance,
            amount=amount,
            reference=reference,
            created_at=now
        )
        return result, sender, recipient

    def _notify(self, sender: Account, recipient: Account, amount: Money,
                reference: str, result: TransferResult) -> None:
        if not self.notifier:
            return
        try:
            self.notifier.notify_transfer(
                sender, recipient, amount, reference,
                debit_transaction_id=result.debit_transaction_id,
                credit_transaction_id=result.credit_transaction_id
            )
        except Exception as e:
            log_action(
                self.logger, "error", f"Could not queue transfer notifications: {e}",
                owner_id=sender.owner_id, action="dispatch_failure",
                resource=result.debit_transaction_id
            )
