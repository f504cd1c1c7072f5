"""
Account Management Module

Stores customer accounts and owner profiles. Balances are integer minor units
and every write goes through an optimistic version check so a stale copy of
an account can never overwrite a newer one.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from enum import Enum
import secrets
import threading
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord, DuplicateRecordError
from .errors import (
    AccountNotFoundError, ValidationError, VersionConflictError
)
from .logging_config import get_logger, log_action


logger = get_logger("payments.accounts")


class AccountType(Enum):
    """Customer account products"""
    SAVINGS = "savings"
    CHECKING = "checking"


@dataclass
class OwnerProfile(StorageRecord):
    """Name and contact details of an account owner"""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class Account(StorageRecord):
    """
    Customer account holding a non-negative balance in minor units
    """
    owner_id: str
    account_number: str
    account_type: AccountType
    name: str
    balance: int = 0
    currency: Currency = Currency.ZAR
    is_primary: bool = False
    version: int = 0

    def __post_init__(self):
        if self.balance < 0:
            raise ValueError("Account balance cannot be negative")

    @property
    def balance_money(self) -> Money:
        """Balance as Money"""
        return Money.from_minor_units(self.balance, self.currency)


class AccountStore:
    """
    Persists accounts and resolves them by id or account number.

    Account numbers are kept in a separate index table written with
    `insert`, so two accounts can never claim the same number.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.accounts_table = "accounts"
        self.numbers_table = "account_numbers"
        self._open_lock = threading.Lock()

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.accounts_table, account_id)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def require_account(self, account_id: str) -> Account:
        """Get account by ID or raise AccountNotFoundError"""
        account = self.get_account(account_id)
        if not account:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by account number"""
        index = self.storage.load(self.numbers_table, account_number)
        if index:
            return self.get_account(index['account_id'])
        return None

    def list_owner_accounts(self, owner_id: str) -> List[Account]:
        """Get all accounts for an owner, primary first"""
        accounts_data = self.storage.find(self.accounts_table, {"owner_id": owner_id})
        accounts = [self._account_from_dict(data) for data in accounts_data]
        accounts.sort(key=lambda a: (not a.is_primary, a.created_at))
        return accounts

    def save_account(self, account: Account, expected_version: int) -> Account:
        """
        Write an account if its stored version still equals expected_version.

        The saved account carries version expected_version + 1.

        Raises:
            AccountNotFoundError: If the account does not exist
            VersionConflictError: If the account changed since it was read
        """
        current = self.storage.load(self.accounts_table, account.id)
        if current is None:
            raise AccountNotFoundError(f"Account {account.id} not found")

        if current['version'] != expected_version:
            raise VersionConflictError(
                f"Account {account.id} is at version {current['version']}, "
                f"expected {expected_version}"
            )

        if account.balance < 0:
            raise ValidationError("Account balance cannot be negative")

        account.version = expected_version + 1
        account.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.accounts_table, account.id, self._account_to_dict(account))
        return account

    def open_account(
        self,
        owner_id: str,
        account_type: AccountType,
        name: str,
        opening_balance: int = 0,
        currency: Currency = Currency.ZAR,
        is_primary: bool = False
    ) -> Account:
        """
        Open a new account with a freshly generated account number

        Args:
            owner_id: ID of account owner
            account_type: Savings or checking
            name: Account name/description
            opening_balance: Initial balance in minor units
            currency: Account currency
            is_primary: Whether this is the owner's primary account

        Returns:
            Created Account object
        """
        if opening_balance < 0:
            raise ValidationError("Opening balance cannot be negative")

        with self._open_lock:
            if is_primary and any(a.is_primary for a in self.list_owner_accounts(owner_id)):
                raise ValidationError(f"Owner {owner_id} already has a primary account")

            now = datetime.now(timezone.utc)
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                owner_id=owner_id,
                account_number="",
                account_type=account_type,
                name=name,
                balance=opening_balance,
                currency=currency,
                is_primary=is_primary
            )

            with self.storage.atomic():
                account.account_number = self._claim_account_number(account.id)
                self.storage.save(self.accounts_table, account.id, self._account_to_dict(account))

        log_action(
            logger, "info", "Account opened",
            owner_id=owner_id, action="open_account", resource=account.id,
            extra={"account_type": account_type.value, "primary": is_primary}
        )
        return account

    def close_account(self, account_id: str) -> None:
        """
        Close (remove) a secondary account with a zero balance

        Raises:
            AccountNotFoundError: If the account does not exist
            ValidationError: If the account is primary or still holds funds
        """
        account = self.require_account(account_id)

        if account.is_primary:
            raise ValidationError("Primary account cannot be closed")

        if account.balance != 0:
            raise ValidationError(
                f"Cannot close account with non-zero balance: {account.balance_money.to_string()}"
            )

        with self.storage.atomic():
            self.storage.delete(self.accounts_table, account.id)
            self.storage.delete(self.numbers_table, account.account_number)

        log_action(
            logger, "info", "Account closed",
            owner_id=account.owner_id, action="close_account", resource=account.id
        )

    def _claim_account_number(self, account_id: str) -> str:
        """Reserve a unique ten-digit account number starting with 1"""
        while True:
            number = "1" + "".join(str(secrets.randbelow(10)) for _ in range(9))
            try:
                self.storage.insert(self.numbers_table, number, {"account_id": account_id})
                return number
            except DuplicateRecordError:
                continue

    def _account_to_dict(self, account: Account) -> Dict:
        """Convert Account to dictionary for storage"""
        result = account.to_dict()
        result['account_type'] = account.account_type.value
        result['currency'] = account.currency.code
        return result

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            owner_id=data['owner_id'],
            account_number=data['account_number'],
            account_type=AccountType(data['account_type']),
            name=data['name'],
            balance=int(data['balance']),
            currency=Currency[data['currency']],
            is_primary=data['is_primary'],
            version=int(data['version'])
        )


class OwnerDirectory:
    """Owner profiles and onboarding"""

    def __init__(self, storage: StorageInterface, accounts: AccountStore,
                 default_currency: Currency = Currency.ZAR):
        self.storage = storage
        self.accounts = accounts
        self.default_currency = default_currency
        self.owners_table = "owners"

    def register_owner(
        self,
        owner_id: str,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None
    ) -> OwnerProfile:
        """Create or replace an owner profile"""
        if not name or not name.strip():
            raise ValidationError("Owner name is required")

        now = datetime.now(timezone.utc)
        existing = self.get_owner(owner_id)
        profile = OwnerProfile(
            id=owner_id,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            name=name.strip(),
            email=email,
            phone=phone
        )
        self.storage.save(self.owners_table, owner_id, profile.to_dict())
        return profile

    def get_owner(self, owner_id: str) -> Optional[OwnerProfile]:
        """Get owner profile by ID"""
        data = self.storage.load(self.owners_table, owner_id)
        if data:
            return OwnerProfile.from_dict(data)
        return None

    def onboard(
        self,
        owner_id: str,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        opening_balance: int = 0,
        currency: Optional[Currency] = None,
        account_type: AccountType = AccountType.SAVINGS
    ) -> Tuple[OwnerProfile, Account]:
        """Register an owner and open their primary account"""
        profile = self.register_owner(owner_id, name, email=email, phone=phone)
        account = self.accounts.open_account(
            owner_id=owner_id,
            account_type=account_type,
            name=f"{profile.name} Primary",
            opening_balance=opening_balance,
            currency=currency or self.default_currency,
            is_primary=True
        )
        return profile, account
