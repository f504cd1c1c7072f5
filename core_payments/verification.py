"""
Public receipt verification.

Anyone holding a receipt can look its transaction id up. A successful lookup
returns only the facts printed on the receipt; unknown ids and internal
failures look identical to the caller and are told apart in the logs.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .accounts import AccountStore, OwnerDirectory
from .ledger import EntryDirection, TransactionLedger
from .logging_config import get_logger, log_action


logger = get_logger("payments.verification")

NOT_VERIFIED_MESSAGE = "Transaction could not be verified"


@dataclass
class VerificationResult:
    valid: bool
    transaction_id: Optional[str] = None
    amount: Optional[str] = None  # Plain decimal, as in the receipt QR code
    currency: Optional[str] = None
    date: Optional[datetime] = None
    reference: Optional[str] = None
    sender_name: Optional[str] = None
    sender_account_number: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.valid:
            return {"valid": False, "message": self.message}
        return {
            "valid": True,
            "transaction": {
                "transaction_id": self.transaction_id,
                "amount": self.amount,
                "currency": self.currency,
                "date": self.date.isoformat() if self.date else None,
                "reference": self.reference,
                "sender_name": self.sender_name,
                "sender_account_number": self.sender_account_number,
            }
        }


class VerificationService:
    """Read-only lookup of receipt facts by transaction id"""

    def __init__(self, ledger: TransactionLedger, accounts: AccountStore, owners: OwnerDirectory):
        self.ledger = ledger
        self.accounts = accounts
        self.owners = owners

    def verify(self, transaction_id: str) -> VerificationResult:
        try:
            record = self.ledger.find_by_transaction_id(transaction_id)
            if record is None:
                log_action(
                    logger, "info", "Verification of unknown transaction",
                    action="verify", resource=transaction_id
                )
                return VerificationResult(valid=False, message=NOT_VERIFIED_MESSAGE)

            # The sender is the owning account of a debit, the counterparty of a credit
            if record.direction == EntryDirection.DEBIT:
                sender = self.accounts.get_account(record.account_id)
                sender_number = sender.account_number if sender else None
            else:
                sender = self.accounts.get_account_by_number(record.counterparty_account_number)
                sender_number = record.counterparty_account_number

            sender_name = "External Account"
            if sender:
                owner = self.owners.get_owner(sender.owner_id)
                sender_name = owner.name if owner else sender.name

            return VerificationResult(
                valid=True,
                transaction_id=record.transaction_id,
                amount=record.money.plain(),
                currency=record.currency.code,
                date=record.created_at,
                reference=record.reference,
                sender_name=sender_name,
                sender_account_number=sender_number
            )
        except Exception as e:
            log_action(
                logger, "error", f"Verification failed: {e}",
                action="verify", resource=transaction_id
            )
            return VerificationResult(valid=False, message=NOT_VERIFIED_MESSAGE)
