"""
Loan Workflow Module

Loan origination state machine:

    underwriting ──► approved ──► disbursed
         │
         └────────► rejected

Transitions only move forward. Disbursement credits the approved amount
to an active destination account.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Any
from enum import Enum
import uuid

from .accounts import AccountService
from .audit import AuditLog, AuditOperation
from .currency import AmountLike, to_positive_amount
from .errors import BankingError, NotFoundError, InvalidStateError, ValidationError
from .roles import Actor
from .storage import StorageInterface, StorageRecord, LOANS_TABLE, parse_datetime, parse_decimal
from .transfers import utc_now
from .users import UserRegistry
from .logging_config import get_logger, log_action


MIN_REJECTION_REASON_LENGTH = 5


class LoanType(Enum):
    """Loan products"""
    PERSONAL = "personal"
    MORTGAGE = "mortgage"
    VEHICLE = "vehicle"
    CORPORATE = "corporate"
    CONSUMER = "consumer"


class LoanStatus(Enum):
    """Loan lifecycle states"""
    UNDERWRITING = "underwriting"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"


@dataclass
class Loan(StorageRecord):
    """Loan application and its decision"""
    loan_type: LoanType
    applicant_id: str              # Applicant identification
    requested_amount: Decimal
    term_months: int
    status: LoanStatus = LoanStatus.UNDERWRITING
    approved_amount: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None   # Annual %
    approval_date: Optional[datetime] = None
    disbursement_date: Optional[datetime] = None
    disbursement_account: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_by: Optional[str] = None
    decided_by: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            loan_type=LoanType(data['loan_type']),
            applicant_id=data['applicant_id'],
            requested_amount=parse_decimal(data['requested_amount']),
            term_months=data['term_months'],
            status=LoanStatus(data['status']),
            approved_amount=parse_decimal(data.get('approved_amount')),
            interest_rate=parse_decimal(data.get('interest_rate')),
            approval_date=parse_datetime(data.get('approval_date')),
            disbursement_date=parse_datetime(data.get('disbursement_date')),
            disbursement_account=data.get('disbursement_account'),
            rejection_reason=data.get('rejection_reason'),
            created_by=data.get('created_by'),
            decided_by=data.get('decided_by')
        )


class LoanWorkflow:
    """
    Loan application, underwriting decision and disbursement
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountService,
        users: UserRegistry,
        audit_log: AuditLog,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.accounts = accounts
        self.users = users
        self.audit_log = audit_log
        self.clock = clock
        self.table_name = LOANS_TABLE
        self.logger = get_logger("bank_ops.loans")

    def apply_for_loan(
        self,
        applicant_id: str,
        loan_type: LoanType,
        requested_amount: AmountLike,
        term_months: int,
        creator: Actor,
        disbursement_account: Optional[str] = None
    ) -> Loan:
        """
        Submit a loan application into underwriting

        Raises:
            ValidationError: Non-positive amount or term
            NotFoundError: Applicant unknown
            InvalidStateError: Applicant inactive or blocked
        """
        try:
            requested_amount = to_positive_amount(requested_amount, "requested_amount")
            if isinstance(term_months, bool) or not isinstance(term_months, int) or term_months <= 0:
                raise ValidationError("term_months must be a positive integer")

            with self.storage.atomic():
                applicant = self.users.get_by_identification(applicant_id)
                if not applicant:
                    raise NotFoundError(f"Applicant {applicant_id} not found")
                if not applicant.is_active:
                    raise InvalidStateError("Applicant is inactive or blocked")

                now = self.clock()
                loan = Loan(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    loan_type=loan_type,
                    applicant_id=applicant_id,
                    requested_amount=requested_amount,
                    term_months=term_months,
                    disbursement_account=disbursement_account,
                    created_by=creator.user_id
                )
                self.storage.insert(self.table_name, loan.id, loan.to_dict())

                self.audit_log.record(
                    AuditOperation.LOAN_APPLIED,
                    creator,
                    loan.id,
                    {
                        "loan_type": loan_type.value,
                        "applicant_id": applicant_id,
                        "applicant_role": applicant.role.value,
                        "requested_amount": requested_amount,
                        "term_months": term_months,
                        "status": loan.status.value
                    }
                )

        except BankingError as e:
            self._log_refusal("apply_for_loan", creator, applicant_id, e)
            raise

        log_action(
            self.logger, "info", f"Loan {loan.id} submitted for underwriting",
            user_id=creator.user_id, role=creator.role.value,
            action="apply_for_loan", resource=f"loan:{loan.id}",
            extra={"requested_amount": str(requested_amount)}
        )
        return loan

    def approve_loan(self, loan_id: str, approved_amount: AmountLike,
                     interest_rate: AmountLike, analyst: Actor) -> Loan:
        """
        Approve a loan in underwriting

        Raises:
            ValidationError: Non-positive amount or rate
            NotFoundError: Loan missing
            InvalidStateError: Loan not in underwriting
        """
        try:
            approved_amount = to_positive_amount(approved_amount, "approved_amount")
            interest_rate = to_positive_amount(interest_rate, "interest_rate")

            with self.storage.atomic():
                loan = self._require_status(loan_id, LoanStatus.UNDERWRITING, "approved")
                now = self.clock()

                loan.status = LoanStatus.APPROVED
                loan.approved_amount = approved_amount
                loan.interest_rate = interest_rate
                loan.approval_date = now
                loan.decided_by = analyst.user_id
                loan.updated_at = now
                self.storage.save(self.table_name, loan.id, loan.to_dict())

                self.audit_log.record(
                    AuditOperation.LOAN_APPROVED,
                    analyst,
                    loan.id,
                    {
                        "previous_status": LoanStatus.UNDERWRITING.value,
                        "new_status": LoanStatus.APPROVED.value,
                        "requested_amount": loan.requested_amount,
                        "approved_amount": approved_amount,
                        "interest_rate": interest_rate,
                        "analyst_id": analyst.user_id
                    }
                )

        except BankingError as e:
            self._log_refusal("approve_loan", analyst, loan_id, e)
            raise

        log_action(
            self.logger, "info", f"Loan {loan_id} approved",
            user_id=analyst.user_id, role=analyst.role.value,
            action="approve_loan", resource=f"loan:{loan_id}",
            extra={"approved_amount": str(approved_amount)}
        )
        return loan

    def reject_loan(self, loan_id: str, reason: str, analyst: Actor) -> Loan:
        """
        Reject a loan in underwriting

        Raises:
            ValidationError: Reason shorter than 5 characters
            NotFoundError: Loan missing
            InvalidStateError: Loan not in underwriting
        """
        try:
            if len((reason or "").strip()) < MIN_REJECTION_REASON_LENGTH:
                raise ValidationError(
                    f"Rejection reason must have at least {MIN_REJECTION_REASON_LENGTH} characters"
                )

            with self.storage.atomic():
                loan = self._require_status(loan_id, LoanStatus.UNDERWRITING, "rejected")
                now = self.clock()

                loan.status = LoanStatus.REJECTED
                loan.rejection_reason = reason
                loan.approval_date = now
                loan.decided_by = analyst.user_id
                loan.updated_at = now
                self.storage.save(self.table_name, loan.id, loan.to_dict())

                self.audit_log.record(
                    AuditOperation.LOAN_REJECTED,
                    analyst,
                    loan.id,
                    {
                        "previous_status": LoanStatus.UNDERWRITING.value,
                        "new_status": LoanStatus.REJECTED.value,
                        "reason": reason,
                        "analyst_id": analyst.user_id
                    }
                )

        except BankingError as e:
            self._log_refusal("reject_loan", analyst, loan_id, e)
            raise

        log_action(
            self.logger, "info", f"Loan {loan_id} rejected",
            user_id=analyst.user_id, role=analyst.role.value,
            action="reject_loan", resource=f"loan:{loan_id}"
        )
        return loan

    def disburse_loan(self, loan_id: str, destination_account: str, analyst: Actor) -> Loan:
        """
        Credit the approved amount to an active account

        Raises:
            NotFoundError: Loan or destination account missing
            InvalidStateError: Loan not approved, approved amount invalid,
                or destination account not active
        """
        try:
            with self.storage.atomic():
                loan = self._require_status(loan_id, LoanStatus.APPROVED, "disbursed")
                if loan.approved_amount is None or loan.approved_amount <= Decimal('0'):
                    raise InvalidStateError(f"Loan {loan_id} has no valid approved amount")

                account = self.accounts.get_account(destination_account)
                if not account:
                    raise NotFoundError(f"Destination account {destination_account} not found")
                if not account.is_active:
                    raise InvalidStateError(f"Destination account {destination_account} is not active")

                balance_after = self.accounts.adjust_balance(destination_account, loan.approved_amount)

                now = self.clock()
                loan.status = LoanStatus.DISBURSED
                loan.disbursement_date = now
                loan.disbursement_account = destination_account
                loan.updated_at = now
                self.storage.save(self.table_name, loan.id, loan.to_dict())

                self.audit_log.record(
                    AuditOperation.LOAN_DISBURSED,
                    analyst,
                    loan.id,
                    {
                        "previous_status": LoanStatus.APPROVED.value,
                        "new_status": LoanStatus.DISBURSED.value,
                        "disbursed_amount": loan.approved_amount,
                        "destination_account": destination_account,
                        "account_balance_before": account.balance,
                        "account_balance_after": balance_after
                    }
                )

        except BankingError as e:
            self._log_refusal("disburse_loan", analyst, loan_id, e)
            raise

        log_action(
            self.logger, "info", f"Loan {loan_id} disbursed to {destination_account}",
            user_id=analyst.user_id, role=analyst.role.value,
            action="disburse_loan", resource=f"loan:{loan_id}",
            extra={"amount": str(loan.approved_amount)}
        )
        return loan

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(self.table_name, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def list_loans(self) -> List[Loan]:
        """All loans, newest first"""
        loans = [Loan.from_dict(d) for d in self.storage.load_all(self.table_name)]
        return sorted(loans, key=lambda l: l.created_at, reverse=True)

    def list_pending(self) -> List[Loan]:
        """Loans awaiting an underwriting decision, newest first"""
        found = self.storage.find(self.table_name, {"status": LoanStatus.UNDERWRITING.value})
        return sorted((Loan.from_dict(d) for d in found), key=lambda l: l.created_at, reverse=True)

    def list_by_applicant(self, applicant_id: str) -> List[Loan]:
        found = self.storage.find(self.table_name, {"applicant_id": applicant_id})
        return sorted((Loan.from_dict(d) for d in found), key=lambda l: l.created_at, reverse=True)

    def _require_status(self, loan_id: str, expected: LoanStatus, target: str) -> Loan:
        loan = self.get_loan(loan_id)
        if not loan:
            raise NotFoundError(f"Loan {loan_id} not found")
        if loan.status != expected:
            raise InvalidStateError(
                f"Only loans in {expected.value} can be {target}; loan {loan_id} is {loan.status.value}"
            )
        return loan

    def _log_refusal(self, action: str, actor: Actor, resource: str, error: BankingError) -> None:
        log_action(
            self.logger, "warning", f"{action} refused: {error}",
            user_id=actor.user_id, role=actor.role.value, action=action,
            resource=resource, extra={"error": type(error).__name__}
        )
