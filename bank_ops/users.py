"""
User Registry Module

Bank users (clients and employees), their roles and status, and the
credential verifier used to authenticate them. Password verification is a
pluggable collaborator so the hashing scheme can change without touching
the registry.
"""

import hashlib
import hmac
import re
import secrets
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone, date
from enum import Enum
from typing import Dict, List, Optional

from .audit import AuditLog, AuditOperation
from .errors import NotFoundError, InvalidStateError, ValidationError
from .roles import Actor, Role, SYSTEM_ACTOR
from .storage import StorageInterface, StorageRecord, USERS_TABLE, parse_datetime
from .logging_config import get_logger, log_action


EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


class UserStatus(Enum):
    """User lifecycle states"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"


@dataclass
class User(StorageRecord):
    """Bank user: a client or an employee"""
    identification: str          # National ID / tax ID, unique
    full_name: str
    email: str
    phone: str
    address: str
    role: Role
    password_hash: str
    password_salt: str
    status: UserStatus = UserStatus.ACTIVE
    birth_date: Optional[date] = None
    company_id: Optional[str] = None  # Company the employee/supervisor belongs to

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def actor(self) -> Actor:
        """Identity used when this user performs an operation"""
        return Actor(user_id=self.id, role=self.role)

    def to_public_dict(self) -> Dict:
        """Stored fields minus credentials"""
        data = self.to_dict()
        data.pop('password_hash')
        data.pop('password_salt')
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'User':
        birth_date = data.get('birth_date')
        return cls(
            id=data['id'],
            created_at=parse_datetime(data['created_at']),
            updated_at=parse_datetime(data['updated_at']),
            identification=data['identification'],
            full_name=data['full_name'],
            email=data['email'],
            phone=data['phone'],
            address=data['address'],
            role=Role(data['role']),
            password_hash=data['password_hash'],
            password_salt=data['password_salt'],
            status=UserStatus(data['status']),
            birth_date=date.fromisoformat(birth_date) if birth_date else None,
            company_id=data.get('company_id')
        )


class CredentialVerifier(ABC):
    """Hashes and checks passwords"""

    @abstractmethod
    def hash_password(self, password: str, salt: str) -> str:
        pass

    def generate_salt(self) -> str:
        return secrets.token_hex(16)

    def verify_password(self, password: str, salt: str, password_hash: str) -> bool:
        return hmac.compare_digest(self.hash_password(password, salt), password_hash)


class ScryptCredentialVerifier(CredentialVerifier):
    """scrypt password hashing"""

    def __init__(self, n: int = 2 ** 14, r: int = 8, p: int = 1):
        self.n = n
        self.r = r
        self.p = p

    def hash_password(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=self.n, r=self.r, p=self.p,
            dklen=32
        ).hex()


class UserRegistry:
    """
    Manages bank users and authenticates them
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_log: AuditLog,
        verifier: Optional[CredentialVerifier] = None,
        password_min_length: int = 6
    ):
        self.storage = storage
        self.audit_log = audit_log
        self.verifier = verifier or ScryptCredentialVerifier()
        self.password_min_length = password_min_length
        self.table_name = USERS_TABLE
        self.logger = get_logger("bank_ops.users")

    def create_user(
        self,
        identification: str,
        full_name: str,
        email: str,
        phone: str,
        address: str,
        role: Role,
        password: str,
        created_by: Actor = SYSTEM_ACTOR,
        birth_date: Optional[date] = None,
        company_id: Optional[str] = None
    ) -> User:
        """
        Create a new active user

        Raises:
            ValidationError: If any field is malformed
            InvalidStateError: If the identification is already registered
        """
        self._validate_new_user(identification, full_name, email, phone, address, role, password)

        with self.storage.atomic():
            if self.get_by_identification(identification):
                raise InvalidStateError(f"A user with identification {identification} already exists")

            now = datetime.now(timezone.utc)
            salt = self.verifier.generate_salt()
            user = User(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                identification=identification,
                full_name=full_name,
                email=email,
                phone=phone,
                address=address,
                role=role,
                password_hash=self.verifier.hash_password(password, salt),
                password_salt=salt,
                birth_date=birth_date,
                company_id=company_id
            )
            self.storage.insert(self.table_name, user.id, user.to_dict())

            self.audit_log.record(
                AuditOperation.USER_CREATED,
                created_by,
                user.id,
                {
                    "identification": identification,
                    "full_name": full_name,
                    "role": role.value,
                    "status": user.status.value,
                    "company_id": company_id
                }
            )

        return user

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        data = self.storage.load(self.table_name, user_id)
        if data:
            return User.from_dict(data)
        return None

    def get_by_identification(self, identification: str) -> Optional[User]:
        """Get user by identification number"""
        found = self.storage.find(self.table_name, {"identification": identification})
        if found:
            return User.from_dict(found[0])
        return None

    def list_users(self) -> List[User]:
        return [User.from_dict(d) for d in self.storage.load_all(self.table_name)]

    def list_by_company(self, company_id: str) -> List[User]:
        return [User.from_dict(d) for d in self.storage.find(self.table_name, {"company_id": company_id})]

    def set_status(self, user_id: str, status: UserStatus, actor: Actor) -> User:
        """Change a user's status"""
        with self.storage.atomic():
            user = self.get_user(user_id)
            if not user:
                raise NotFoundError(f"User {user_id} not found")

            old_status = user.status
            user.status = status
            user.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table_name, user.id, user.to_dict())

            self.audit_log.record(
                AuditOperation.USER_STATUS_CHANGED,
                actor,
                user.id,
                {"old_status": old_status.value, "new_status": status.value}
            )

        return user

    def authenticate(self, identification: str, password: str) -> User:
        """
        Verify credentials

        Raises:
            NotFoundError: Unknown identification
            InvalidStateError: User not active, or wrong password
        """
        user = self.get_by_identification(identification)
        if not user:
            raise NotFoundError("User not found")

        if not user.is_active:
            raise InvalidStateError("User is inactive or blocked")

        if not self.verifier.verify_password(password, user.password_salt, user.password_hash):
            log_action(
                self.logger, "warning", "Login failed",
                user_id=user.id, action="login", resource=f"user:{user.id}"
            )
            raise InvalidStateError("Invalid credentials")

        log_action(
            self.logger, "info", "Login succeeded",
            user_id=user.id, role=user.role.value, action="login", resource=f"user:{user.id}"
        )
        return user

    def _validate_new_user(self, identification: str, full_name: str, email: str,
                           phone: str, address: str, role: Role, password: str) -> None:
        if len(identification or "") < 3:
            raise ValidationError("Identification must have at least 3 characters")
        if len(full_name or "") < 2:
            raise ValidationError("Full name must have at least 2 characters")
        if not EMAIL_PATTERN.match(email or ""):
            raise ValidationError("Invalid email format")
        if not 7 <= len(phone or "") <= 15:
            raise ValidationError("Phone must have between 7 and 15 characters")
        if len(address or "") < 5:
            raise ValidationError("Address must have at least 5 characters")
        if role == Role.SYSTEM:
            raise ValidationError("The system role cannot be assigned to users")
        if len(password or "") < self.password_min_length:
            raise ValidationError(f"Password must have at least {self.password_min_length} characters")
