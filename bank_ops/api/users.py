"""
User management endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .auth import BankingSystem, get_banking_system
from .schemas import CreateUserRequest, SetUserStatusRequest
from ..roles import Permission


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    request: CreateUserRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a bank user"""
    actor = system.resolve_actor(request.actor_id, Permission.MANAGE_USERS)
    user = system.users.create_user(
        identification=request.identification,
        full_name=request.full_name,
        email=request.email,
        phone=request.phone,
        address=request.address,
        role=request.role,
        password=request.password,
        created_by=actor,
        birth_date=request.birth_date,
        company_id=request.company_id
    )
    return {
        "user_id": user.id,
        "identification": user.identification,
        "message": "User created successfully"
    }


@router.get("")
def list_users(system: BankingSystem = Depends(get_banking_system)):
    """List all users"""
    return {"users": [u.to_public_dict() for u in system.users.list_users()]}


@router.get("/company/{company_id}")
def list_company_users(
    company_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """List the employees and supervisors of a company"""
    return {"users": [u.to_public_dict() for u in system.users.list_by_company(company_id)]}


@router.get("/{identification}")
def get_user(
    identification: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Get user by identification"""
    user = system.users.get_by_identification(identification)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user.to_public_dict()


@router.put("/{user_id}/status")
def set_user_status(
    user_id: str,
    request: SetUserStatusRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Activate, deactivate or block a user"""
    actor = system.resolve_actor(request.actor_id, Permission.MANAGE_USERS)
    user = system.users.set_status(user_id, request.status, actor)
    return {
        "user_id": user.id,
        "status": user.status.value,
        "message": "User status updated"
    }
