"""
Transfer Notification Module

Tells both parties about a committed transfer. Delivery runs on a worker
pool so the transfer path never waits on a channel; every provider call is
bounded by a timeout and failures are logged, never raised to the caller.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from .accounts import Account, OwnerDirectory
from .currency import Money
from .errors import DispatchFailure
from .storage import StorageInterface
from .logging_config import get_logger, log_action


logger = get_logger("payments.notifications")


class NotificationChannel(Enum):
    """Delivery channels"""
    LOG = "log"
    IN_APP = "in_app"
    WEBHOOK = "webhook"


class NotificationType(Enum):
    PAYMENT_SENT = "payment_sent"
    PAYMENT_RECEIVED = "payment_received"


@dataclass
class TransferNotification:
    """One message about a transfer, addressed to one owner"""
    id: str
    recipient_id: str
    notification_type: NotificationType
    title: str
    message: str
    amount: int
    currency: str
    reference: str
    created_at: datetime
    transaction_id: Optional[str] = None
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['notification_type'] = self.notification_type.value
        result['created_at'] = self.created_at.isoformat()
        return result


class ChannelProvider(ABC):
    """Abstract base class for notification channel providers"""

    channel: NotificationChannel

    @abstractmethod
    async def send(self, notification: TransferNotification) -> bool:
        """Send notification via this channel. Raises DispatchFailure on error."""
        pass


class LogChannelProvider(ChannelProvider):
    """Logging channel provider for development"""

    channel = NotificationChannel.LOG

    def __init__(self, logger=None):
        self.logger = logger or get_logger("payments.notifications.log")

    async def send(self, notification: TransferNotification) -> bool:
        """Log the notification instead of actually sending"""
        self.logger.info(
            f"{notification.title} to {notification.recipient_id}: {notification.message}"
        )
        return True


class InAppChannelProvider(ChannelProvider):
    """In-app notification provider using storage"""

    channel = NotificationChannel.IN_APP

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table = "in_app_notifications"

    async def send(self, notification: TransferNotification) -> bool:
        """Store notification for in-app display"""
        data = notification.to_dict()
        data["read"] = False
        try:
            self.storage.save(self.table, notification.id, data)
        except Exception as e:
            raise DispatchFailure(f"In-app notification storage failed: {e}") from e
        return True

    def list_for_recipient(self, recipient_id: str) -> List[Dict[str, Any]]:
        """Stored notifications for an owner, newest first"""
        rows = self.storage.find(self.table, {"recipient_id": recipient_id})
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)


class WebhookChannelProvider(ChannelProvider):
    """Webhook channel provider for external integrations"""

    channel = NotificationChannel.WEBHOOK

    def __init__(self, url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def send(self, notification: TransferNotification) -> bool:
        """Send notification via webhook POST"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=notification.to_dict())
        except httpx.HTTPError as e:
            raise DispatchFailure(f"Webhook send failed: {e}") from e

        if response.status_code >= 300:
            raise DispatchFailure(f"Webhook returned HTTP {response.status_code}")
        return True


class NotificationDispatcher:
    """
    Fans transfer notifications out to every registered provider.

    `notify_transfer` returns a Future immediately; its result is a summary
    dict of delivered and failed provider calls.
    """

    def __init__(
        self,
        owners: Optional[OwnerDirectory] = None,
        providers: Optional[List[ChannelProvider]] = None,
        timeout: float = 5.0,
        max_workers: int = 4
    ):
        self.owners = owners
        self.providers: List[ChannelProvider] = list(providers) if providers else [LogChannelProvider()]
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def register_provider(self, provider: ChannelProvider) -> None:
        self.providers.append(provider)

    def notify_transfer(
        self,
        sender_account: Account,
        recipient_account: Account,
        amount: Money,
        reference: str,
        debit_transaction_id: Optional[str] = None,
        credit_transaction_id: Optional[str] = None
    ) -> Future:
        """Queue "payment sent" and "payment received" messages"""
        notifications = [
            self._build(
                recipient_id=sender_account.owner_id,
                notification_type=NotificationType.PAYMENT_SENT,
                title="Payment Sent",
                message=(
                    f"You have successfully sent {amount.format()} "
                    f"to account {recipient_account.account_number}"
                ),
                amount=amount,
                reference=reference,
                transaction_id=debit_transaction_id
            ),
            self._build(
                recipient_id=recipient_account.owner_id,
                notification_type=NotificationType.PAYMENT_RECEIVED,
                title="Payment Received",
                message=(
                    f"You have received {amount.format()} "
                    f"from account {sender_account.account_number}"
                ),
                amount=amount,
                reference=reference,
                transaction_id=credit_transaction_id
            ),
        ]
        return self._executor.submit(self._deliver, notifications)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _build(self, recipient_id: str, notification_type: NotificationType, title: str,
               message: str, amount: Money, reference: str,
               transaction_id: Optional[str]) -> TransferNotification:
        profile = self.owners.get_owner(recipient_id) if self.owners else None
        return TransferNotification(
            id=str(uuid.uuid4()),
            recipient_id=recipient_id,
            notification_type=notification_type,
            title=title,
            message=message,
            amount=amount.to_minor_units(),
            currency=amount.currency.code,
            reference=reference,
            created_at=datetime.now(timezone.utc),
            transaction_id=transaction_id,
            recipient_email=profile.email if profile else None,
            recipient_phone=profile.phone if profile else None
        )

    def _deliver(self, notifications: List[TransferNotification]) -> Dict[str, int]:
        return asyncio.run(self._deliver_async(notifications))

    async def _deliver_async(self, notifications: List[TransferNotification]) -> Dict[str, int]:
        summary = {"delivered": 0, "failed": 0}
        for notification in notifications:
            for provider in self.providers:
                try:
                    await asyncio.wait_for(provider.send(notification), timeout=self.timeout)
                    summary["delivered"] += 1
                except asyncio.TimeoutError:
                    summary["failed"] += 1
                    self._log_failure(notification, provider, f"timed out after {self.timeout}s")
                except Exception as e:
                    summary["failed"] += 1
                    self._log_failure(notification, provider, str(e))
        return summary

    def _log_failure(self, notification: TransferNotification, provider: ChannelProvider,
                     reason: str) -> None:
        log_action(
            logger, "warning", f"Notification dispatch failed: {reason}",
            owner_id=notification.recipient_id, action="dispatch_failure",
            resource=notification.transaction_id,
            extra={"channel": provider.channel.value, "type": notification.notification_type.value}
        )
