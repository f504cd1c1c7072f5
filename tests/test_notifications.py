"""
Tests for transfer notifications

Tests channel providers and the dispatcher's fire-and-forget contract:
messages for both parties, bounded provider calls, failures swallowed.
"""

import pytest
import asyncio
import json
import time
from datetime import datetime, timezone
from decimal import Decimal

import httpx

from core_payments.accounts import AccountStore, OwnerDirectory
from core_payments.currency import Money, Currency
from core_payments.errors import DispatchFailure
from core_payments.storage import InMemoryStorage
from core_payments.notifications import (
    ChannelProvider,
    InAppChannelProvider,
    LogChannelProvider,
    NotificationChannel,
    NotificationDispatcher,
    NotificationType,
    TransferNotification,
    WebhookChannelProvider,
)


class MockChannelProvider(ChannelProvider):
    """Mock channel provider for testing"""

    channel = NotificationChannel.LOG

    def __init__(self, should_fail: bool = False, delay: float = 0.0):
        self.should_fail = should_fail
        self.delay = delay
        self.sent_notifications = []

    async def send(self, notification: TransferNotification) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.should_fail:
            raise DispatchFailure("provider down")
        self.sent_notifications.append(notification)
        return True


def make_notification(**overrides):
    data = dict(
        id="n1",
        recipient_id="alice",
        notification_type=NotificationType.PAYMENT_SENT,
        title="Payment Sent",
        message="You have successfully sent R250.00 to account 1234567890",
        amount=25000,
        currency="ZAR",
        reference="rent",
        created_at=datetime.now(timezone.utc),
        transaction_id="YB1"
    )
    data.update(overrides)
    return TransferNotification(**data)


class TestChannelProviders:

    def test_log_provider(self, caplog):
        provider = LogChannelProvider()
        with caplog.at_level("INFO", logger="payments.notifications.log"):
            assert asyncio.run(provider.send(make_notification())) is True
        assert "Payment Sent to alice" in caplog.text

    def test_in_app_provider_stores_notification(self):
        storage = InMemoryStorage()
        provider = InAppChannelProvider(storage)

        asyncio.run(provider.send(make_notification()))

        stored = provider.list_for_recipient("alice")
        assert len(stored) == 1
        assert stored[0]["notification_type"] == "payment_sent"
        assert stored[0]["read"] is False
        assert provider.list_for_recipient("bob") == []

    def test_webhook_provider_posts_payload(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        provider = WebhookChannelProvider(
            "https://hooks.example.com/payments", transport=httpx.MockTransport(handler)
        )
        assert asyncio.run(provider.send(make_notification())) is True
        assert captured["url"] == "https://hooks.example.com/payments"
        assert captured["payload"]["transaction_id"] == "YB1"
        assert captured["payload"]["notification_type"] == "payment_sent"

    def test_webhook_provider_raises_on_error_status(self):
        provider = WebhookChannelProvider(
            "https://hooks.example.com/payments",
            transport=httpx.MockTransport(lambda request: httpx.Response(503))
        )
        with pytest.raises(DispatchFailure):
            asyncio.run(provider.send(make_notification()))


class TestNotificationDispatcher:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.accounts = AccountStore(self.storage)
        self.owners = OwnerDirectory(self.storage, self.accounts)
        _, self.alice = self.owners.onboard("alice", "Alice", email="alice@example.com")
        _, self.bob = self.owners.onboard("bob", "Bob", phone="+27110000000")
        self.amount = Money(Decimal("250.00"), Currency.ZAR)

    def test_notifies_both_parties(self):
        provider = MockChannelProvider()
        dispatcher = NotificationDispatcher(self.owners, [provider])

        future = dispatcher.notify_transfer(self.alice, self.bob, self.amount, "rent", "YBD", "YBC")
        summary = future.result(timeout=5)
        dispatcher.shutdown()

        assert summary == {"delivered": 2, "failed": 0}
        sent, received = provider.sent_notifications
        assert sent.recipient_id == "alice"
        assert sent.message == f"You have successfully sent R250.00 to account {self.bob.account_number}"
        assert sent.recipient_email == "alice@example.com"
        assert sent.transaction_id == "YBD"
        assert received.recipient_id == "bob"
        assert received.message == f"You have received R250.00 from account {self.alice.account_number}"
        assert received.recipient_phone == "+27110000000"
        assert received.notification_type == NotificationType.PAYMENT_RECEIVED

    def test_returns_before_delivery_completes(self):
        provider = MockChannelProvider(delay=0.3)
        dispatcher = NotificationDispatcher(self.owners, [provider])

        start = time.monotonic()
        future = dispatcher.notify_transfer(self.alice, self.bob, self.amount, "rent")
        assert time.monotonic() - start < 0.2

        future.result(timeout=5)
        dispatcher.shutdown()
        assert len(provider.sent_notifications) == 2

    def test_failures_logged_not_raised(self, caplog):
        good = MockChannelProvider()
        bad = MockChannelProvider(should_fail=True)
        dispatcher = NotificationDispatcher(self.owners, [bad, good])

        with caplog.at_level("WARNING", logger="payments.notifications"):
            summary = dispatcher.notify_transfer(self.alice, self.bob, self.amount, "rent").result(timeout=5)
        dispatcher.shutdown()

        assert summary == {"delivered": 2, "failed": 2}
        assert len(good.sent_notifications) == 2
        assert "Notification dispatch failed" in caplog.text

    def test_slow_provider_times_out(self):
        slow = MockChannelProvider(delay=2.0)
        dispatcher = NotificationDispatcher(self.owners, [slow], timeout=0.1)

        summary = dispatcher.notify_transfer(self.alice, self.bob, self.amount, "rent").result(timeout=5)
        dispatcher.shutdown()

        assert summary == {"delivered": 0, "failed": 2}
        assert slow.sent_notifications == []

    def test_in_app_delivery_end_to_end(self):
        in_app = InAppChannelProvider(self.storage)
        dispatcher = NotificationDispatcher(self.owners, [in_app])
        dispatcher.notify_transfer(self.alice, self.bob, self.amount, "rent").result(timeout=5)
        dispatcher.shutdown()

        assert in_app.list_for_recipient("bob")[0]["title"] == "Payment Received"
