"""
Audit log endpoints (read only)
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends

from .auth import BankingSystem, get_banking_system
from ..audit import AuditOperation


router = APIRouter()


@router.get("")
def list_audit_entries(
    operation_type: Optional[AuditOperation] = None,
    limit: Optional[int] = 100,
    system: BankingSystem = Depends(get_banking_system)
):
    """Most recent audit entries, optionally filtered by operation type"""
    entries = system.audit_log.all_entries(operation_type=operation_type, limit=limit)
    return {"entries": [e.to_dict() for e in entries], "total": system.audit_log.count()}


@router.get("/integrity")
def verify_audit_integrity(system: BankingSystem = Depends(get_banking_system)):
    """Check the hash chain"""
    return system.audit_log.verify_integrity()


@router.get("/product/{product_id}")
def list_product_entries(
    product_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Audit entries for an account, transfer, loan or user"""
    return {"entries": [e.to_dict() for e in system.audit_log.entries_for_product(product_id)]}


@router.get("/{entry_id}")
def get_audit_entry(
    entry_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    entry = system.audit_log.get_entry(entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Audit entry not found")
    return entry.to_dict()
