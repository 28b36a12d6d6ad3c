"""
Transfer Workflow Module

State machine for transfers between accounts:

    create ──► executed
       │
       └────► pending_approval ──► executed | rejected | expired

Corporate transfers above the approval threshold are held for a supervisor.
A held transfer expires once it has waited longer than the expiry window;
expiry happens either through the sweep or inline when someone tries to
approve it. Every operation runs as one unit of work on the store, audit
entry included.
"""

from decimal import Decimal
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Any
from enum import Enum
import uuid

from .accounts import AccountService, Account
from .audit import AuditLog, AuditOperation
from .currency import AmountLike, to_positive_amount, format_amount
from .errors import (
    BankingError, NotFoundError, InvalidStateError, InsufficientFundsError,
    ExpiredError, ValidationError
)
from .roles import Actor, SYSTEM_ACTOR
from .storage import StorageInterface, StorageRecord, TRANSFERS_TABLE, parse_datetime, parse_decimal
from .logging_config import get_logger, log_action


APPROVAL_THRESHOLD = Decimal("5000000")
EXPIRY_WINDOW = timedelta(milliseconds=3_600_000)

DEFAULT_REJECTION_REASON = "Rejected by supervisor"
HOLD_REASON = "Amount exceeds approval threshold"
EXPIRY_REASON = "Expired without approval within the approval window"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransferStatus(Enum):
    """Transfer states"""
    EXECUTED = "executed"
    PENDING_APPROVAL = "pending_approval"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass
class TransferPolicy:
    """
    Business policy switches for the transfer workflow

    reserve_funds_on_hold: when False (default) a held transfer does not
    touch balances and funds are checked again at approval time, so the
    source may spend them in the meantime. When True the amount is debited
    at hold time and given back on rejection or expiry.
    """
    reserve_funds_on_hold: bool = False


@dataclass
class Transfer(StorageRecord):
    """Transfer between two accounts"""
    source_account: str
    destination_account: str
    amount: Decimal
    status: TransferStatus
    creator_id: str
    is_corporate: bool = False
    memo: Optional[str] = None
    approved_at: Optional[datetime] = None    # Supervisor decision time, approve or reject
    approver_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    expired_at: Optional[datetime] = None
    reserved_amount: Decimal = Decimal('0.00')

    @property
    def is_pending(self) -> bool:
        return self.status == TransferStatus.PENDING_APPROVAL

    def elapsed(self, now: datetime) -> timedelta:
        return now - self.created_at

    def is_past_window(self, now: datetime) -> bool:
        """Strictly longer than the expiry window since creation"""
        return self.elapsed(now) > EXPIRY_WINDOW

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transfer':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            source_account=data['source_account'],
            destination_account=data['destination_account'],
            amount=parse_decimal(data['amount']),
            status=TransferStatus(data['status']),
            creator_id=data['creator_id'],
            is_corporate=data.get('is_corporate', False),
            memo=data.get('memo'),
            approved_at=parse_datetime(data.get('approved_at')),
            approver_id=data.get('approver_id'),
            rejection_reason=data.get('rejection_reason'),
            expired_at=parse_datetime(data.get('expired_at')),
            reserved_amount=parse_decimal(data.get('reserved_amount')) or Decimal('0.00')
        )


class TransferWorkflow:
    """
    Transfer creation, approval, rejection and expiry
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountService,
        audit_log: AuditLog,
        policy: Optional[TransferPolicy] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.accounts = accounts
        self.audit_log = audit_log
        self.policy = policy or TransferPolicy()
        self.clock = clock
        self.table_name = TRANSFERS_TABLE
        self.logger = get_logger("bank_ops.transfers")

    def create_transfer(
        self,
        source_account: str,
        destination_account: str,
        amount: AmountLike,
        creator: Actor,
        is_corporate: bool = False,
        memo: Optional[str] = None
    ) -> Transfer:
        """
        Create a transfer, executing it immediately unless it needs approval

        Args:
            source_account: Account to debit
            destination_account: Account to credit
            amount: Positive amount
            creator: User creating the transfer
            is_corporate: Corporate transfers above the threshold are held
            memo: Free text concept

        Returns:
            Transfer in executed or pending_approval status

        Raises:
            ValidationError: Non-positive amount or same source and destination
            NotFoundError: Source or destination missing
            InvalidStateError: Source not active
            InsufficientFundsError: Source balance below amount
        """
        try:
            amount = to_positive_amount(amount)
            if source_account == destination_account:
                raise ValidationError("Source and destination accounts must be different")

            with self.storage.atomic():
                source = self._require_account(source_account, "Source")
                if not source.is_active:
                    raise InvalidStateError(f"Source account {source_account} is blocked or cancelled")
                self._require_account(destination_account, "Destination")

                requires_approval = is_corporate and amount > APPROVAL_THRESHOLD

                now = self.clock()
                transfer = Transfer(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    source_account=source_account,
                    destination_account=destination_account,
                    amount=amount,
                    status=TransferStatus.PENDING_APPROVAL if requires_approval else TransferStatus.EXECUTED,
                    creator_id=creator.user_id,
                    is_corporate=is_corporate,
                    memo=memo
                )

                if requires_approval:
                    detail = {
                        "amount": amount,
                        "source_account": source_account,
                        "destination_account": destination_account,
                        "reason": HOLD_REASON
                    }
                    if self.policy.reserve_funds_on_hold:
                        balance_before = self._debit(source_account, amount)
                        transfer.reserved_amount = amount
                        detail.update({
                            "reserved_amount": amount,
                            "source_balance_before": balance_before,
                            "source_balance_after": balance_before - amount
                        })
                    self.storage.insert(self.table_name, transfer.id, transfer.to_dict())
                    self.audit_log.record(AuditOperation.TRANSFER_HELD, creator, transfer.id, detail)
                else:
                    detail = self._move_funds(source_account, destination_account, amount)
                    self.storage.insert(self.table_name, transfer.id, transfer.to_dict())
                    self.audit_log.record(AuditOperation.TRANSFER_EXECUTED, creator, transfer.id, detail)

        except BankingError as e:
            self._log_refusal("create_transfer", creator, source_account, e)
            raise

        log_action(
            self.logger, "info",
            f"Transfer {transfer.id} {transfer.status.value} for {format_amount(amount, source.currency)}",
            user_id=creator.user_id, role=creator.role.value, action="create_transfer",
            resource=f"transfer:{transfer.id}",
            extra={"amount": str(amount), "source": source_account, "destination": destination_account}
        )
        return transfer

    def approve_transfer(self, transfer_id: str, approver: Actor) -> Transfer:
        """
        Approve a held transfer and move the funds

        A transfer past its window is marked expired (and audited) as part
        of the attempt; the expiry is kept and ExpiredError is raised.

        Raises:
            NotFoundError: Transfer missing
            InvalidStateError: Not pending, or source not active
            ExpiredError: Approval window closed
            InsufficientFundsError: Source cannot cover the amount any more
        """
        expired = False
        try:
            with self.storage.atomic():
                transfer = self._require_pending(transfer_id)
                now = self.clock()

                if transfer.is_past_window(now):
                    self._expire(transfer, approver, now)
                    expired = True
                else:
                    source = self._require_account(transfer.source_account, "Source")
                    if not source.is_active:
                        raise InvalidStateError(
                            f"Source account {transfer.source_account} is blocked or cancelled"
                        )

                    if transfer.reserved_amount > Decimal('0'):
                        detail = self._release_reservation(transfer)
                    else:
                        detail = self._move_funds(
                            transfer.source_account, transfer.destination_account, transfer.amount
                        )

                    transfer.status = TransferStatus.EXECUTED
                    transfer.approved_at = now
                    transfer.approver_id = approver.user_id
                    transfer.updated_at = now
                    self.storage.save(self.table_name, transfer.id, transfer.to_dict())

                    detail["approver_id"] = approver.user_id
                    self.audit_log.record(AuditOperation.TRANSFER_APPROVED, approver, transfer.id, detail)

            if expired:
                raise ExpiredError(f"Transfer {transfer_id} expired waiting for approval")

        except BankingError as e:
            self._log_refusal("approve_transfer", approver, transfer_id, e)
            raise

        log_action(
            self.logger, "info", f"Transfer {transfer_id} approved",
            user_id=approver.user_id, role=approver.role.value,
            action="approve_transfer", resource=f"transfer:{transfer_id}"
        )
        return transfer

    def reject_transfer(self, transfer_id: str, approver: Actor,
                        reason: Optional[str] = None) -> Transfer:
        """
        Reject a held transfer

        Expiry is not checked: a transfer past its window that has not been
        swept yet can still be rejected.
        """
        reason = reason or DEFAULT_REJECTION_REASON
        try:
            with self.storage.atomic():
                transfer = self._require_pending(transfer_id)
                now = self.clock()

                detail = {
                    "reason": reason,
                    "amount": transfer.amount,
                    "source_account": transfer.source_account,
                    "destination_account": transfer.destination_account,
                    "approver_id": approver.user_id
                }
                if transfer.reserved_amount > Decimal('0'):
                    detail.update(self._refund_reservation(transfer))

                transfer.status = TransferStatus.REJECTED
                transfer.approved_at = now
                transfer.approver_id = approver.user_id
                transfer.rejection_reason = reason
                transfer.updated_at = now
                self.storage.save(self.table_name, transfer.id, transfer.to_dict())

                self.audit_log.record(AuditOperation.TRANSFER_REJECTED, approver, transfer.id, detail)

        except BankingError as e:
            self._log_refusal("reject_transfer", approver, transfer_id, e)
            raise

        log_action(
            self.logger, "info", f"Transfer {transfer_id} rejected",
            user_id=approver.user_id, role=approver.role.value,
            action="reject_transfer", resource=f"transfer:{transfer_id}",
            extra={"reason": reason}
        )
        return transfer

    def sweep_expired(self) -> int:
        """
        Expire every held transfer that is past its approval window

        Each transfer is re-read and transitioned in its own unit of work,
        so one that was approved, rejected or expired in the meantime is
        skipped. Safe to call repeatedly.

        Returns:
            Number of transfers expired by this call
        """
        expired_count = 0
        for candidate in self.list_pending():
            with self.storage.atomic():
                transfer = self.get_transfer(candidate.id)
                if not transfer or not transfer.is_pending:
                    continue
                now = self.clock()
                if not transfer.is_past_window(now):
                    continue
                self._expire(transfer, SYSTEM_ACTOR, now)
                expired_count += 1

        if expired_count:
            log_action(
                self.logger, "info", f"Expired {expired_count} pending transfers",
                user_id=SYSTEM_ACTOR.user_id, role=SYSTEM_ACTOR.role.value,
                action="sweep_expired", extra={"expired": expired_count}
            )
        return expired_count

    def get_transfer(self, transfer_id: str) -> Optional[Transfer]:
        """Get transfer by ID"""
        data = self.storage.load(self.table_name, transfer_id)
        if data:
            return Transfer.from_dict(data)
        return None

    def list_pending(self) -> List[Transfer]:
        """Transfers awaiting approval, oldest first"""
        found = self.storage.find(self.table_name, {"status": TransferStatus.PENDING_APPROVAL.value})
        return sorted((Transfer.from_dict(d) for d in found), key=lambda t: t.created_at)

    def list_by_account(self, account_number: str) -> List[Transfer]:
        """Transfers debiting or crediting an account, newest first"""
        transfers = [
            Transfer.from_dict(d) for d in self.storage.load_all(self.table_name)
            if account_number in (d['source_account'], d['destination_account'])
        ]
        return sorted(transfers, key=lambda t: t.created_at, reverse=True)

    def list_by_creator(self, creator_id: str) -> List[Transfer]:
        """Transfers created by a user, newest first"""
        found = self.storage.find(self.table_name, {"creator_id": creator_id})
        return sorted((Transfer.from_dict(d) for d in found), key=lambda t: t.created_at, reverse=True)

    def _require_account(self, account_number: str, label: str) -> Account:
        account = self.accounts.get_account(account_number)
        if not account:
            raise NotFoundError(f"{label} account {account_number} not found")
        return account

    def _require_pending(self, transfer_id: str) -> Transfer:
        transfer = self.get_transfer(transfer_id)
        if not transfer:
            raise NotFoundError(f"Transfer {transfer_id} not found")
        if not transfer.is_pending:
            raise InvalidStateError(
                f"Transfer {transfer_id} is {transfer.status.value}, not pending approval"
            )
        return transfer

    def _debit(self, account_number: str, amount: Decimal) -> Decimal:
        """Debit an account, returning the balance before the debit"""
        account = self._require_account(account_number, "Source")
        if account.balance < amount:
            raise InsufficientFundsError(f"Insufficient funds in source account {account_number}")
        self.accounts.adjust_balance(account_number, -amount)
        return account.balance

    def _move_funds(self, source_account: str, destination_account: str,
                    amount: Decimal) -> Dict[str, Any]:
        """Debit source and credit destination, returning the balance snapshot"""
        destination = self._require_account(destination_account, "Destination")
        source_before = self._debit(source_account, amount)
        destination_after = self.accounts.adjust_balance(destination_account, amount)

        return {
            "amount": amount,
            "source_account": source_account,
            "destination_account": destination_account,
            "source_balance_before": source_before,
            "source_balance_after": source_before - amount,
            "destination_balance_before": destination.balance,
            "destination_balance_after": destination_after
        }

    def _release_reservation(self, transfer: Transfer) -> Dict[str, Any]:
        """Credit the destination with funds reserved at hold time"""
        destination = self._require_account(transfer.destination_account, "Destination")
        destination_after = self.accounts.adjust_balance(transfer.destination_account, transfer.reserved_amount)
        released = transfer.reserved_amount
        transfer.reserved_amount = Decimal('0.00')

        return {
            "amount": transfer.amount,
            "source_account": transfer.source_account,
            "destination_account": transfer.destination_account,
            "released_reservation": released,
            "destination_balance_before": destination.balance,
            "destination_balance_after": destination_after
        }

    def _refund_reservation(self, transfer: Transfer) -> Dict[str, Any]:
        """Give reserved funds back to the source"""
        refunded = transfer.reserved_amount
        source_after = self.accounts.adjust_balance(transfer.source_account, refunded)
        transfer.reserved_amount = Decimal('0.00')
        return {
            "refunded_amount": refunded,
            "source_balance_before": source_after - refunded,
            "source_balance_after": source_after
        }

    def _expire(self, transfer: Transfer, actor: Actor, now: datetime) -> None:
        """Move a pending transfer to expired and audit it"""
        detail = {
            "reason": EXPIRY_REASON,
            "expired_at": now,
            "creator_id": transfer.creator_id,
            "amount": transfer.amount,
            "elapsed_ms": int(transfer.elapsed(now) / timedelta(milliseconds=1))
        }
        if transfer.reserved_amount > Decimal('0'):
            detail.update(self._refund_reservation(transfer))

        transfer.status = TransferStatus.EXPIRED
        transfer.expired_at = now
        transfer.updated_at = now
        self.storage.save(self.table_name, transfer.id, transfer.to_dict())

        self.audit_log.record(AuditOperation.TRANSFER_EXPIRED, actor, transfer.id, detail)

    def _log_refusal(self, action: str, actor: Actor, resource: str, error: BankingError) -> None:
        log_action(
            self.logger, "warning", f"{action} refused: {error}",
            user_id=actor.user_id, role=actor.role.value, action=action,
            resource=resource, extra={"error": type(error).__name__}
        )
