"""
Loan workflow endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .auth import BankingSystem, get_banking_system
from .schemas import ApplyLoanRequest, ApproveLoanRequest, RejectLoanRequest, DisburseLoanRequest
from ..roles import Permission


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def apply_for_loan(
    request: ApplyLoanRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Submit a loan application"""
    actor = system.resolve_actor(request.actor_id, Permission.APPLY_FOR_LOAN)
    loan = system.loans.apply_for_loan(
        applicant_id=request.applicant_id,
        loan_type=request.loan_type,
        requested_amount=request.requested_amount,
        term_months=request.term_months,
        creator=actor,
        disbursement_account=request.disbursement_account
    )
    return {
        "loan_id": loan.id,
        "status": loan.status.value,
        "message": "Loan application submitted"
    }


@router.get("")
def list_loans(system: BankingSystem = Depends(get_banking_system)):
    return {"loans": [l.to_dict() for l in system.loans.list_loans()]}


@router.get("/pending")
def list_pending_loans(system: BankingSystem = Depends(get_banking_system)):
    """Loans awaiting an underwriting decision"""
    return {"loans": [l.to_dict() for l in system.loans.list_pending()]}


@router.get("/applicant/{applicant_id}")
def list_applicant_loans(
    applicant_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    return {"loans": [l.to_dict() for l in system.loans.list_by_applicant(applicant_id)]}


@router.get("/{loan_id}")
def get_loan(
    loan_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get loan details"""
    loan = system.loans.get_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan.to_dict()


@router.post("/{loan_id}/approve")
def approve_loan(
    loan_id: str,
    request: ApproveLoanRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Approve a loan in underwriting"""
    actor = system.resolve_actor(request.actor_id, Permission.DECIDE_LOAN)
    loan = system.loans.approve_loan(loan_id, request.approved_amount, request.interest_rate, actor)
    return {"loan_id": loan.id, "status": loan.status.value, "message": "Loan approved"}


@router.post("/{loan_id}/reject")
def reject_loan(
    loan_id: str,
    request: RejectLoanRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Reject a loan in underwriting"""
    actor = system.resolve_actor(request.actor_id, Permission.DECIDE_LOAN)
    loan = system.loans.reject_loan(loan_id, request.reason, actor)
    return {"loan_id": loan.id, "status": loan.status.value, "message": "Loan rejected"}


@router.post("/{loan_id}/disburse")
def disburse_loan(
    loan_id: str,
    request: DisburseLoanRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Credit an approved loan to the destination account"""
    actor = system.resolve_actor(request.actor_id, Permission.DISBURSE_LOAN)
    loan = system.loans.disburse_loan(loan_id, request.destination_account, actor)
    return {"loan_id": loan.id, "status": loan.status.value, "message": "Loan disbursed"}
