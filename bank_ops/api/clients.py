"""
Client registry endpoints
"""

from fastapi import APIRouter, HTTPException, Depends, status

from .auth import BankingSystem, get_banking_system
from .schemas import RegisterPersonRequest, RegisterCompanyRequest
from ..roles import Permission


router = APIRouter()


@router.post("/persons", status_code=status.HTTP_201_CREATED)
def register_person(
    request: RegisterPersonRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a natural person client"""
    actor = system.resolve_actor(request.actor_id, Permission.REGISTER_CLIENTS)
    client = system.clients.register_person(
        user_id=request.user_id,
        full_name=request.full_name,
        identification=request.identification,
        email=request.email,
        phone=request.phone,
        birth_date=request.birth_date,
        address=request.address,
        registered_by=actor
    )
    return {"client_id": client.id, "message": "Client registered successfully"}


@router.get("/persons")
def list_persons(system: BankingSystem = Depends(get_banking_system)):
    return {"clients": [c.to_dict() for c in system.clients.list_persons()]}


@router.get("/persons/{identification}")
def get_person(
    identification: str,
    system: BankingSystem = Depends(get_banking_system)
):
    client = system.clients.get_person(identification)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client.to_dict()


@router.post("/companies", status_code=status.HTTP_201_CREATED)
def register_company(
    request: RegisterCompanyRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Register a company client"""
    actor = system.resolve_actor(request.actor_id, Permission.REGISTER_CLIENTS)
    company = system.clients.register_company(
        user_id=request.user_id,
        legal_name=request.legal_name,
        tax_id=request.tax_id,
        email=request.email,
        phone=request.phone,
        address=request.address,
        legal_representative_id=request.legal_representative_id,
        registered_by=actor
    )
    return {"client_id": company.id, "message": "Company registered successfully"}


@router.get("/companies")
def list_companies(system: BankingSystem = Depends(get_banking_system)):
    return {"companies": [c.to_dict() for c in system.clients.list_companies()]}


@router.get("/companies/{tax_id}")
def get_company(
    tax_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    company = system.clients.get_company(tax_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company.to_dict()
