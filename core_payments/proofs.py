"""
Proof of Payment Module

Turns ledger entries into downloadable receipts. Every render writes a new
artifact and flags the entry as having a proof; batch rendering reports a
result per transaction and never lets one failure stop the rest.
"""

import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from .accounts import Account, AccountStore, OwnerDirectory
from .artifacts import ArtifactStore
from .documents import (
    PartyIdentity, ReceiptBuilder, ReceiptDocument, ReportLabRenderer, placeholder_party
)
from .errors import AccessDeniedError, NotFoundError, PaymentError, RenderError, ValidationError
from .ledger import EntryDirection, TransactionLedger, TransactionRecord
from .logging_config import get_logger, log_action


logger = get_logger("payments.proofs")

BATCH_LOOKUP_ERROR = "Transaction not found or access denied"


@dataclass
class RenderedProof:
    """A rendered receipt and the name it was stored under"""
    transaction_id: str
    document_bytes: bytes
    file_name: str
    content_type: str = "application/pdf"


@dataclass
class ProofBatchItem:
    transaction_id: str
    success: bool
    file_name: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ProofStatus:
    transaction_id: str
    proof_generated: bool
    can_generate_proof: bool
    status: str
    amount: int
    currency: str
    date: datetime
    reference: str


@dataclass
class HistoryRow:
    """Ledger entry enriched for the transaction history listing"""
    transaction_id: str
    account_id: str
    account_number: str
    direction: str
    amount: int
    currency: str
    reference: str
    description: str
    counterparty_account_number: str
    balance_after: int
    status: str
    date: datetime
    proof_generated: bool
    can_generate_proof: bool


@dataclass
class HistoryPage:
    rows: List[HistoryRow]
    page: int
    limit: int
    total: int
    total_pages: int


class ProofOfPaymentGenerator:
    """
    Renders receipts for ledger entries
    """

    def __init__(
        self,
        ledger: TransactionLedger,
        accounts: AccountStore,
        owners: OwnerDirectory,
        artifacts: ArtifactStore,
        builder: ReceiptBuilder,
        renderer: Optional[ReportLabRenderer] = None,
        max_batch: int = 10,
        clock: Optional[Callable[[], float]] = None
    ):
        self.ledger = ledger
        self.accounts = accounts
        self.owners = owners
        self.artifacts = artifacts
        self.builder = builder
        self.renderer = renderer or ReportLabRenderer(watermark_text=builder.bank_name)
        self.max_batch = max_batch
        self._clock = clock or time.time

    def resolve_parties(self, record: TransactionRecord) -> Tuple[PartyIdentity, PartyIdentity]:
        """
        Sender and recipient of an entry.

        The owning account is the sender of a debit and the recipient of a
        credit; an unresolvable counterparty becomes the external placeholder.
        """
        owning = self.accounts.get_account(record.account_id)
        owning_party = self._identity(owning) if owning else placeholder_party(None)

        counterparty = self.accounts.get_account_by_number(record.counterparty_account_number)
        if counterparty:
            counterparty_party = self._identity(counterparty)
        else:
            counterparty_party = placeholder_party(record.counterparty_account_number)

        if record.direction == EntryDirection.DEBIT:
            return owning_party, counterparty_party
        return counterparty_party, owning_party

    def build_document(self, record: TransactionRecord) -> ReceiptDocument:
        sender, recipient = self.resolve_parties(record)
        return self.builder.build(record, sender, recipient)

    def render(self, transaction_id: str) -> RenderedProof:
        """
        Render and store a receipt for a transaction

        Raises:
            TransactionNotFoundError: If the transaction does not exist
            RenderError: If the document cannot be produced or stored
        """
        record = self.ledger.require(transaction_id)

        try:
            document = self.build_document(record)
            content = self.renderer.render(document)
        except Exception as e:
            log_action(
                logger, "error", f"Receipt rendering failed: {e}",
                action="render_proof", resource=transaction_id
            )
            raise RenderError(f"Could not render receipt for {transaction_id}") from e

        file_name = self._store(transaction_id, content)
        self.ledger.mark_proof_generated(transaction_id)

        log_action(
            logger, "info", "Proof of payment generated",
            action="render_proof", resource=transaction_id,
            extra={"file_name": file_name, "size": len(content)}
        )
        return RenderedProof(
            transaction_id=transaction_id,
            document_bytes=content,
            file_name=file_name,
            content_type=self.renderer.content_type
        )

    def render_many(
        self,
        transaction_ids: Sequence[str],
        max_batch: Optional[int] = None,
        owner_id: Optional[str] = None
    ) -> List[ProofBatchItem]:
        """
        Render receipts for several transactions

        The whole call is rejected before any rendering when the batch is
        larger than the limit. Otherwise each id gets its own result; an empty
        batch yields no results. When owner_id is given, ids not owned by that
        owner fail individually with the same error as unknown ids.
        """
        limit = max_batch if max_batch is not None else self.max_batch
        if len(transaction_ids) > limit:
            raise ValidationError(f"Maximum {limit} transactions allowed per batch")

        results = []
        for transaction_id in transaction_ids:
            try:
                if owner_id is not None:
                    self.authorize(transaction_id, owner_id)
                proof = self.render(transaction_id)
                results.append(ProofBatchItem(transaction_id, True, file_name=proof.file_name))
            except (NotFoundError, AccessDeniedError):
                results.append(ProofBatchItem(transaction_id, False, error=BATCH_LOOKUP_ERROR))
            except PaymentError as e:
                results.append(ProofBatchItem(transaction_id, False, error=str(e)))
        return results

    def authorize(self, transaction_id: str, owner_id: str) -> TransactionRecord:
        """
        Raises:
            TransactionNotFoundError: If the transaction does not exist
            AccessDeniedError: If the entry's account is not owned by owner_id
        """
        record = self.ledger.require(transaction_id)
        account = self.accounts.get_account(record.account_id)
        if not account or account.owner_id != owner_id:
            raise AccessDeniedError(f"Transaction {transaction_id} does not belong to caller")
        return record

    def proof_status(self, transaction_id: str, owner_id: str) -> ProofStatus:
        record = self.authorize(transaction_id, owner_id)
        return ProofStatus(
            transaction_id=record.transaction_id,
            proof_generated=record.proof_generated,
            can_generate_proof=record.can_generate_proof,
            status=record.status.value,
            amount=record.amount,
            currency=record.currency.code,
            date=record.created_at,
            reference=record.reference
        )

    def history_for_owner(self, owner_id: str, page: int = 1, limit: int = 10) -> HistoryPage:
        """Entries across all of an owner's accounts, newest first"""
        accounts = {a.id: a for a in self.accounts.list_owner_accounts(owner_id)}
        ledger_page = self.ledger.list_by_account_set(accounts.keys(), page=page, limit=limit)

        rows = [
            HistoryRow(
                transaction_id=entry.transaction_id,
                account_id=entry.account_id,
                account_number=accounts[entry.account_id].account_number,
                direction=entry.direction.value,
                amount=entry.amount,
                currency=entry.currency.code,
                reference=entry.reference,
                description=entry.description,
                counterparty_account_number=entry.counterparty_account_number,
                balance_after=entry.balance_after,
                status=entry.status.value,
                date=entry.created_at,
                proof_generated=entry.proof_generated,
                can_generate_proof=entry.can_generate_proof
            )
            for entry in ledger_page.entries
        ]
        return HistoryPage(
            rows=rows,
            page=ledger_page.page,
            limit=ledger_page.limit,
            total=ledger_page.total,
            total_pages=ledger_page.total_pages
        )

    def _identity(self, account: Account) -> PartyIdentity:
        owner = self.owners.get_owner(account.owner_id)
        return PartyIdentity(
            name=owner.name if owner else account.name,
            account_number=account.account_number,
            account_type=account.account_type.value
        )

    def _store(self, transaction_id: str, content: bytes, attempts: int = 3) -> str:
        last_error: Optional[Exception] = None
        for _ in range(attempts):
            file_name = (
                f"proof_{transaction_id}_{int(self._clock() * 1000)}_{secrets.token_hex(4)}.pdf"
            )
            try:
                self.artifacts.put(file_name, content)
                return file_name
            except FileExistsError as e:
                last_error = e
            except OSError as e:
                raise RenderError(f"Could not store receipt for {transaction_id}: {e}") from e
        raise RenderError(f"Could not allocate an artifact name for {transaction_id}: {last_error}")
