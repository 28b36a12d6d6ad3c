"""
Account Service Module

Opens bank accounts and owns the balance mutation primitive used by the
transfer and loan workflows. Balances are Decimal and never negative.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from enum import Enum
import time

from .audit import AuditLog, AuditOperation
from .currency import Currency, AmountLike, to_amount
from .errors import NotFoundError, InvalidStateError, InsufficientFundsError
from .roles import Actor
from .storage import StorageInterface, StorageRecord, ACCOUNTS_TABLE, parse_datetime, parse_decimal
from .users import UserRegistry
from .logging_config import get_logger, log_action


ACCOUNT_NUMBER_DIGITS = 10


class AccountType(Enum):
    """Account product types"""
    SAVINGS = "savings"
    CHECKING = "checking"
    PERSONAL = "personal"
    CORPORATE = "corporate"


class AccountStatus(Enum):
    """Account lifecycle states"""
    ACTIVE = "active"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


@dataclass
class Account(StorageRecord):
    """
    Bank account. The record id is the account number.
    """
    account_number: str
    account_type: AccountType
    owner_id: str                # Owner identification, weak reference to a user
    currency: Currency
    balance: Decimal = Decimal('0.00')
    status: AccountStatus = AccountStatus.ACTIVE
    opened_by: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data['currency'] = self.currency.code
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Account':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            account_number=data['account_number'],
            account_type=AccountType(data['account_type']),
            owner_id=data['owner_id'],
            currency=Currency.from_code(data['currency']),
            balance=parse_decimal(data['balance']),
            status=AccountStatus(data['status']),
            opened_by=data.get('opened_by')
        )


def clock_account_number() -> str:
    """Last ten digits of the current millisecond clock"""
    return str(time.time_ns() // 1_000_000)[-ACCOUNT_NUMBER_DIGITS:]


class AccountService:
    """
    Opens accounts and mutates balances
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_log: AuditLog,
        users: UserRegistry,
        number_source: Callable[[], str] = clock_account_number,
        max_number_attempts: int = 20
    ):
        self.storage = storage
        self.audit_log = audit_log
        self.users = users
        self.number_source = number_source
        self.max_number_attempts = max_number_attempts
        self.table_name = ACCOUNTS_TABLE
        self.logger = get_logger("bank_ops.accounts")

    def open_account(
        self,
        owner_id: str,
        account_type: AccountType,
        currency: Currency,
        opened_by: Actor
    ) -> Account:
        """
        Open a new zero-balance account

        Args:
            owner_id: Identification of the account owner
            account_type: Product type
            currency: Account currency
            opened_by: Employee or analyst opening the account

        Raises:
            NotFoundError: Owner unknown
            InvalidStateError: Owner not active, or no free account number found
        """
        with self.storage.atomic():
            owner = self.users.get_by_identification(owner_id)
            if not owner:
                raise NotFoundError(f"Owner {owner_id} not found")
            if not owner.is_active:
                raise InvalidStateError("Cannot open an account for an inactive or blocked user")

            account_number = self._generate_account_number()
            now = datetime.now(timezone.utc)
            account = Account(
                id=account_number,
                created_at=now,
                updated_at=now,
                account_number=account_number,
                account_type=account_type,
                owner_id=owner_id,
                currency=currency,
                opened_by=opened_by.user_id
            )
            self.storage.insert(self.table_name, account.id, account.to_dict())

            self.audit_log.record(
                AuditOperation.ACCOUNT_OPENED,
                opened_by,
                account_number,
                {
                    "owner_id": owner_id,
                    "account_type": account_type.value,
                    "currency": currency.code,
                    "initial_balance": account.balance,
                    "status": account.status.value
                }
            )

        log_action(
            self.logger, "info", f"Account {account_number} opened",
            user_id=opened_by.user_id, role=opened_by.role.value,
            action="open_account", resource=f"account:{account_number}"
        )
        return account

    def _generate_account_number(self) -> str:
        """
        Time-derived account number, re-checked for uniqueness.
        A taken number is bumped by one before the next check.
        """
        candidate = self.number_source()
        for _ in range(self.max_number_attempts):
            if not self.storage.exists(self.table_name, candidate):
                return candidate
            candidate = str((int(candidate) + 1) % 10 ** ACCOUNT_NUMBER_DIGITS).zfill(ACCOUNT_NUMBER_DIGITS)
        raise InvalidStateError("Could not generate a unique account number, try again")

    def adjust_balance(self, account_number: str, delta: AmountLike) -> Decimal:
        """
        Add delta (positive or negative) to an account balance

        Returns:
            The new balance

        Raises:
            NotFoundError: Account missing
            InsufficientFundsError: The balance would become negative
        """
        delta = to_amount(delta)

        with self.storage.atomic():
            account = self.get_account(account_number)
            if not account:
                raise NotFoundError(f"Account {account_number} not found")

            new_balance = account.balance + delta
            if new_balance < Decimal('0'):
                raise InsufficientFundsError(
                    f"Insufficient funds in account {account_number}: "
                    f"balance {account.balance}, requested {-delta}"
                )

            account.balance = new_balance
            account.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table_name, account.id, account.to_dict())

        self.logger.debug(f"Balance of {account_number} adjusted by {delta} to {new_balance}")
        return new_balance

    def set_status(self, account_number: str, status: AccountStatus, actor: Actor) -> Account:
        """
        Change account status

        Any transition is accepted, including reactivating a cancelled account.
        """
        with self.storage.atomic():
            account = self.get_account(account_number)
            if not account:
                raise NotFoundError(f"Account {account_number} not found")

            old_status = account.status
            account.status = status
            account.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table_name, account.id, account.to_dict())

            self.audit_log.record(
                AuditOperation.ACCOUNT_STATUS_CHANGED,
                actor,
                account_number,
                {"old_status": old_status.value, "new_status": status.value}
            )

        if old_status == AccountStatus.CANCELLED and status != AccountStatus.CANCELLED:
            log_action(
                self.logger, "warning", f"Cancelled account {account_number} reopened",
                user_id=actor.user_id, role=actor.role.value,
                action="set_account_status", resource=f"account:{account_number}"
            )
        return account

    def get_account(self, account_number: str) -> Optional[Account]:
        """Get account by number"""
        data = self.storage.load(self.table_name, account_number)
        if data:
            return Account.from_dict(data)
        return None

    def list_by_owner(self, owner_id: str) -> List[Account]:
        """Accounts held by an owner, newest first"""
        accounts = [Account.from_dict(d) for d in self.storage.find(self.table_name, {"owner_id": owner_id})]
        return sorted(accounts, key=lambda a: a.created_at, reverse=True)

    def list_accounts(self) -> List[Account]:
        """All accounts, newest first"""
        accounts = [Account.from_dict(d) for d in self.storage.load_all(self.table_name)]
        return sorted(accounts, key=lambda a: a.created_at, reverse=True)
