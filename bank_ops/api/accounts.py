"""
Account management endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .auth import BankingSystem, get_banking_system
from .schemas import OpenAccountRequest, SetAccountStatusRequest
from ..currency import Currency
from ..roles import Permission


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def open_account(
    request: OpenAccountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a new account"""
    actor = system.resolve_actor(request.actor_id, Permission.OPEN_ACCOUNT)
    account = system.accounts.open_account(
        owner_id=request.owner_id,
        account_type=request.account_type,
        currency=Currency.from_code(request.currency),
        opened_by=actor
    )
    return {
        "account_number": account.account_number,
        "message": "Account opened successfully"
    }


@router.get("")
def list_accounts(system: BankingSystem = Depends(get_banking_system)):
    """List all accounts"""
    return {"accounts": [a.to_dict() for a in system.accounts.list_accounts()]}


@router.get("/owner/{owner_id}")
def list_owner_accounts(
    owner_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """List the accounts of an owner"""
    return {"accounts": [a.to_dict() for a in system.accounts.list_by_owner(owner_id)]}


@router.get("/{account_number}")
def get_account(
    account_number: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    account = system.accounts.get_account(account_number)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account.to_dict()


@router.put("/{account_number}/status")
def set_account_status(
    account_number: str,
    request: SetAccountStatusRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Block, reactivate or cancel an account"""
    actor = system.resolve_actor(request.actor_id, Permission.CHANGE_ACCOUNT_STATUS)
    account = system.accounts.set_status(account_number, request.status, actor)
    return {
        "account_number": account.account_number,
        "status": account.status.value,
        "message": "Account status updated"
    }


@router.get("/{account_number}/history")
def get_account_history(
    account_number: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Audit entries recorded against the account"""
    if not system.accounts.get_account(account_number):
        raise HTTPException(status_code=404, detail="Account not found")
    entries = system.audit_log.entries_for_product(account_number)
    return {"entries": [e.to_dict() for e in entries]}


@router.get("/{account_number}/transfers")
def get_account_transfers(
    account_number: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Transfers debiting or crediting the account"""
    if not system.accounts.get_account(account_number):
        raise HTTPException(status_code=404, detail="Account not found")
    return {"transfers": [t.to_dict() for t in system.transfers.list_by_account(account_number)]}
