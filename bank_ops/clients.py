"""
Client Registry Module

Person and company client profiles. Each profile is linked to the bank user
that logs in on the client's behalf.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, date
from typing import Dict, List, Optional

from .audit import AuditLog, AuditOperation
from .errors import NotFoundError, InvalidStateError, ValidationError
from .roles import Actor
from .storage import (
    StorageInterface, StorageRecord, PERSON_CLIENTS_TABLE, COMPANY_CLIENTS_TABLE,
    parse_datetime
)
from .users import UserRegistry, EMAIL_PATTERN
from .logging_config import get_logger


@dataclass
class PersonClient(StorageRecord):
    """Natural person client"""
    user_id: str
    full_name: str
    identification: str
    email: str
    phone: str
    birth_date: date
    address: str

    @classmethod
    def from_dict(cls, data: Dict) -> 'PersonClient':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            user_id=data['user_id'],
            full_name=data['full_name'],
            identification=data['identification'],
            email=data['email'],
            phone=data['phone'],
            birth_date=date.fromisoformat(data['birth_date']),
            address=data['address']
        )


@dataclass
class CompanyClient(StorageRecord):
    """Company client"""
    user_id: str
    legal_name: str
    tax_id: str                          # NIT
    email: str
    phone: str
    address: str
    legal_representative_id: str         # Identification of the legal representative

    @classmethod
    def from_dict(cls, data: Dict) -> 'CompanyClient':
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            user_id=data['user_id'],
            legal_name=data['legal_name'],
            tax_id=data['tax_id'],
            email=data['email'],
            phone=data['phone'],
            address=data['address'],
            legal_representative_id=data['legal_representative_id']
        )


def _validate_contact(email: str, phone: str, address: str) -> None:
    if not EMAIL_PATTERN.match(email or ""):
        raise ValidationError("Invalid email format")
    if not 7 <= len(phone or "") <= 15:
        raise ValidationError("Phone must have between 7 and 15 characters")
    if len(address or "") < 5:
        raise ValidationError("Address must have at least 5 characters")


class ClientRegistry:
    """
    Registers person and company clients
    """

    def __init__(self, storage: StorageInterface, audit_log: AuditLog, users: UserRegistry):
        self.storage = storage
        self.audit_log = audit_log
        self.users = users
        self.logger = get_logger("bank_ops.clients")

    def register_person(
        self,
        user_id: str,
        full_name: str,
        identification: str,
        email: str,
        phone: str,
        birth_date: date,
        address: str,
        registered_by: Actor
    ) -> PersonClient:
        """
        Register a natural person client

        Raises:
            ValidationError: Malformed fields
            NotFoundError: Linked user does not exist
            InvalidStateError: Identification already registered
        """
        if len(full_name or "") < 2:
            raise ValidationError("Full name must have at least 2 characters")
        if len(identification or "") < 3:
            raise ValidationError("Identification must have at least 3 characters")
        _validate_contact(email, phone, address)

        with self.storage.atomic():
            if not self.users.get_user(user_id):
                raise NotFoundError(f"User {user_id} not found")
            if self.storage.find(PERSON_CLIENTS_TABLE, {"identification": identification}):
                raise InvalidStateError(f"A client with identification {identification} already exists")

            now = datetime.now(timezone.utc)
            client = PersonClient(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                user_id=user_id,
                full_name=full_name,
                identification=identification,
                email=email,
                phone=phone,
                birth_date=birth_date,
                address=address
            )
            self.storage.insert(PERSON_CLIENTS_TABLE, client.id, client.to_dict())

            self.audit_log.record(
                AuditOperation.PERSON_CLIENT_REGISTERED,
                registered_by,
                client.id,
                {"user_id": user_id, "identification": identification, "full_name": full_name}
            )

        return client

    def register_company(
        self,
        user_id: str,
        legal_name: str,
        tax_id: str,
        email: str,
        phone: str,
        address: str,
        legal_representative_id: str,
        registered_by: Actor
    ) -> CompanyClient:
        """
        Register a company client

        Raises:
            ValidationError: Malformed fields
            NotFoundError: Linked user does not exist
            InvalidStateError: Tax ID already registered
        """
        if len(legal_name or "") < 2:
            raise ValidationError("Legal name must have at least 2 characters")
        if len(tax_id or "") < 3:
            raise ValidationError("Tax ID must have at least 3 characters")
        if len(legal_representative_id or "") < 3:
            raise ValidationError("Legal representative ID must have at least 3 characters")
        _validate_contact(email, phone, address)

        with self.storage.atomic():
            if not self.users.get_user(user_id):
                raise NotFoundError(f"User {user_id} not found")
            if self.storage.find(COMPANY_CLIENTS_TABLE, {"tax_id": tax_id}):
                raise InvalidStateError(f"A company with tax ID {tax_id} already exists")

            now = datetime.now(timezone.utc)
            company = CompanyClient(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                user_id=user_id,
                legal_name=legal_name,
                tax_id=tax_id,
                email=email,
                phone=phone,
                address=address,
                legal_representative_id=legal_representative_id
            )
            self.storage.insert(COMPANY_CLIENTS_TABLE, company.id, company.to_dict())

            self.audit_log.record(
                AuditOperation.COMPANY_CLIENT_REGISTERED,
                registered_by,
                company.id,
                {"user_id": user_id, "tax_id": tax_id, "legal_name": legal_name}
            )

        return company

    def get_person(self, identification: str) -> Optional[PersonClient]:
        """Get person client by identification number"""
        found = self.storage.find(PERSON_CLIENTS_TABLE, {"identification": identification})
        if found:
            return PersonClient.from_dict(found[0])
        return None

    def get_company(self, tax_id: str) -> Optional[CompanyClient]:
        """Get company client by tax ID"""
        found = self.storage.find(COMPANY_CLIENTS_TABLE, {"tax_id": tax_id})
        if found:
            return CompanyClient.from_dict(found[0])
        return None

    def list_persons(self) -> List[PersonClient]:
        return [PersonClient.from_dict(d) for d in self.storage.load_all(PERSON_CLIENTS_TABLE)]

    def list_companies(self) -> List[CompanyClient]:
        return [CompanyClient.from_dict(d) for d in self.storage.load_all(COMPANY_CLIENTS_TABLE)]
