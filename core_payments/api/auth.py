"""
System wiring and authentication dependencies
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..accounts import AccountStore, OwnerDirectory
from ..artifacts import ArtifactStore, LocalArtifactStore
from ..config import PaymentsConfig, get_config
from ..currency import Currency
from ..documents import ReceiptBuilder, ReportLabRenderer
from ..errors import (
    AccessDeniedError, ConflictError, InsufficientFundsError, NotFoundError,
    PaymentError, RenderError, ValidationError
)
from ..ids import TransactionIdGenerator
from ..ledger import TransactionLedger
from ..notifications import (
    InAppChannelProvider, LogChannelProvider, NotificationDispatcher, WebhookChannelProvider
)
from ..proofs import ProofOfPaymentGenerator
from ..retention import RetentionJanitor
from ..storage import StorageInterface, create_storage
from ..transfers import AccountLockManager, TransferEngine
from ..verification import VerificationService


class PaymentsSystem:
    """Payments core with all components initialized"""

    def __init__(
        self,
        settings: Optional[PaymentsConfig] = None,
        storage: Optional[StorageInterface] = None,
        artifacts: Optional[ArtifactStore] = None
    ):
        self.config = settings or get_config()
        cfg = self.config

        # Initialize storage
        self.storage = storage or create_storage(
            cfg.storage_backend, cfg.database_path, timeout=cfg.database_timeout_seconds
        )
        self.artifacts = artifacts or LocalArtifactStore(cfg.artifact_dir)

        # Initialize core components
        self.accounts = AccountStore(self.storage)
        self.owners = OwnerDirectory(
            self.storage, self.accounts, default_currency=Currency[cfg.default_currency.upper()]
        )
        self.ledger = TransactionLedger(self.storage)

        self.in_app_notifications = InAppChannelProvider(self.storage)
        providers = [LogChannelProvider(), self.in_app_notifications]
        if cfg.notification_webhook_url:
            providers.append(WebhookChannelProvider(
                cfg.notification_webhook_url, timeout=cfg.notification_timeout_seconds
            ))
        self.notifier = NotificationDispatcher(
            owners=self.owners,
            providers=providers,
            timeout=cfg.notification_timeout_seconds,
            max_workers=cfg.notification_workers
        )

        self.transfer_engine = TransferEngine(
            self.storage, self.accounts, self.ledger,
            id_generator=TransactionIdGenerator(cfg.transaction_id_prefix),
            locks=AccountLockManager(),
            notifier=self.notifier,
            max_attempts=cfg.transfer_max_attempts,
            lock_timeout=cfg.lock_timeout_seconds
        )

        builder = ReceiptBuilder(cfg.bank_name, cfg.support_contact, cfg.verification_base_url)
        self.proofs = ProofOfPaymentGenerator(
            self.ledger, self.accounts, self.owners, self.artifacts, builder,
            renderer=ReportLabRenderer(watermark_text=cfg.bank_name),
            max_batch=cfg.max_bulk_batch
        )
        self.verification = VerificationService(self.ledger, self.accounts, self.owners)
        self.janitor = RetentionJanitor(
            self.artifacts,
            retention_days=cfg.retention_days,
            hour=cfg.janitor_hour,
            minute=cfg.janitor_minute
        )

    def shutdown(self) -> None:
        if self.janitor.running:
            self.janitor.stop()
        self.notifier.shutdown()
        self.storage.close()


# Global payments system instance, created on first use
_payments_system: Optional[PaymentsSystem] = None


def get_payments_system() -> PaymentsSystem:
    global _payments_system
    if _payments_system is None:
        _payments_system = PaymentsSystem()
    return _payments_system


def set_payments_system(system: Optional[PaymentsSystem]) -> None:
    """Install (or clear, with None) the global system instance"""
    global _payments_system
    _payments_system = system


# JWT Security
security = HTTPBearer(auto_error=False)


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> str:
    """Dependency that validates JWT and returns the owner id"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    cfg = get_config()
    try:
        payload = jwt.decode(credentials.credentials, cfg.jwt_secret, algorithms=[cfg.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


def to_http_exception(error: PaymentError) -> HTTPException:
    """Map a payment error to the HTTP status it surfaces as"""
    if isinstance(error, (ValidationError, InsufficientFundsError)):
        status_code = 400
    elif isinstance(error, AccessDeniedError):
        status_code = 403
    elif isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, ConflictError):
        status_code = 409
    elif isinstance(error, RenderError):
        status_code = 500
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=str(error))
