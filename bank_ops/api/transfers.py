"""
Transfer workflow endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .auth import BankingSystem, get_banking_system
from .schemas import CreateTransferRequest, ApproveTransferRequest, RejectTransferRequest
from ..roles import Permission


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_transfer(
    request: CreateTransferRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a transfer; large corporate transfers wait for approval"""
    actor = system.resolve_actor(request.actor_id, Permission.CREATE_TRANSFER)
    transfer = system.transfers.create_transfer(
        source_account=request.source_account,
        destination_account=request.destination_account,
        amount=request.amount,
        creator=actor,
        is_corporate=request.is_corporate,
        memo=request.memo
    )
    return {
        "transfer_id": transfer.id,
        "status": transfer.status.value,
        "message": "Transfer created"
    }


@router.get("/pending")
def list_pending_transfers(system: BankingSystem = Depends(get_banking_system)):
    """Transfers awaiting supervisor approval"""
    return {"transfers": [t.to_dict() for t in system.transfers.list_pending()]}


@router.post("/sweep-expired")
def sweep_expired_transfers(system: BankingSystem = Depends(get_banking_system)):
    """Expire pending transfers past the approval window"""
    expired = system.transfers.sweep_expired()
    return {"expired": expired}


@router.get("/account/{account_number}")
def list_account_transfers(
    account_number: str,
    system: BankingSystem = Depends(get_banking_system)
):
    return {"transfers": [t.to_dict() for t in system.transfers.list_by_account(account_number)]}


@router.get("/creator/{creator_id}")
def list_creator_transfers(
    creator_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    return {"transfers": [t.to_dict() for t in system.transfers.list_by_creator(creator_id)]}


@router.get("/{transfer_id}")
def get_transfer(
    transfer_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get transfer details"""
    transfer = system.transfers.get_transfer(transfer_id)
    if not transfer:
        raise HTTPException(status_code=404, detail="Transfer not found")
    return transfer.to_dict()


@router.post("/{transfer_id}/approve")
def approve_transfer(
    transfer_id: str,
    request: ApproveTransferRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Approve a pending transfer"""
    actor = system.resolve_actor(request.actor_id, Permission.APPROVE_TRANSFER)
    transfer = system.transfers.approve_transfer(transfer_id, actor)
    return {
        "transfer_id": transfer.id,
        "status": transfer.status.value,
        "message": "Transfer approved"
    }


@router.post("/{transfer_id}/reject")
def reject_transfer(
    transfer_id: str,
    request: RejectTransferRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Reject a pending transfer"""
    actor = system.resolve_actor(request.actor_id, Permission.APPROVE_TRANSFER)
    transfer = system.transfers.reject_transfer(transfer_id, actor, request.reason)
    return {
        "transfer_id": transfer.id,
        "status": transfer.status.value,
        "message": "Transfer rejected"
    }
