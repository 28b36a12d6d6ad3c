"""
Pydantic schemas for API requests

Field constraints are checked here, before any business logic runs;
failures come back as 422.
"""

from decimal import Decimal
from datetime import date
from typing import Literal, Optional
from pydantic import BaseModel, Field

from ..roles import Role
from ..users import UserStatus
from ..accounts import AccountType, AccountStatus
from ..loans import LoanType


EMAIL_REGEX = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'

CurrencyCode = Literal["COP", "USD", "EUR"]


class ActorRequest(BaseModel):
    actor_id: str = Field(..., description="ID of the user performing the operation")


# Auth schemas
class LoginRequest(BaseModel):
    identification: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


# User schemas
class CreateUserRequest(ActorRequest):
    identification: str = Field(..., min_length=3)
    full_name: str = Field(..., min_length=2)
    email: str = Field(..., pattern=EMAIL_REGEX)
    phone: str = Field(..., min_length=7, max_length=15)
    address: str = Field(..., min_length=5)
    role: Role
    password: str = Field(..., min_length=6)
    birth_date: Optional[date] = None
    company_id: Optional[str] = None


class SetUserStatusRequest(ActorRequest):
    status: UserStatus


# Client schemas
class RegisterPersonRequest(ActorRequest):
    user_id: str
    full_name: str = Field(..., min_length=2)
    identification: str = Field(..., min_length=3)
    email: str = Field(..., pattern=EMAIL_REGEX)
    phone: str = Field(..., min_length=7, max_length=15)
    birth_date: date
    address: str = Field(..., min_length=5)


class RegisterCompanyRequest(ActorRequest):
    user_id: str
    legal_name: str = Field(..., min_length=2)
    tax_id: str = Field(..., min_length=3, description="NIT")
    email: str = Field(..., pattern=EMAIL_REGEX)
    phone: str = Field(..., min_length=7, max_length=15)
    address: str = Field(..., min_length=5)
    legal_representative_id: str = Field(..., min_length=3)


# Account schemas
class OpenAccountRequest(ActorRequest):
    owner_id: str = Field(..., min_length=3, description="Owner identification")
    account_type: AccountType
    currency: CurrencyCode = "COP"


class SetAccountStatusRequest(ActorRequest):
    status: AccountStatus


# Transfer schemas
class CreateTransferRequest(ActorRequest):
    source_account: str = Field(..., min_length=1)
    destination_account: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Decimal amount")
    is_corporate: bool = False
    memo: Optional[str] = None


class ApproveTransferRequest(ActorRequest):
    pass


class RejectTransferRequest(ActorRequest):
    reason: Optional[str] = None


# Loan schemas
class ApplyLoanRequest(ActorRequest):
    applicant_id: str = Field(..., min_length=3, description="Applicant identification")
    loan_type: LoanType
    requested_amount: Decimal = Field(..., gt=0, decimal_places=2)
    term_months: int = Field(..., gt=0)
    disbursement_account: Optional[str] = None


class ApproveLoanRequest(ActorRequest):
    approved_amount: Decimal = Field(..., gt=0, decimal_places=2)
    interest_rate: Decimal = Field(..., gt=0, decimal_places=2, description="Annual interest rate, percent")


class RejectLoanRequest(ActorRequest):
    reason: str = Field(..., min_length=5)


class DisburseLoanRequest(ActorRequest):
    destination_account: str = Field(..., min_length=1)
