"""
Application wiring, acting-user resolution and login endpoint
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ..storage import StorageInterface, create_storage
from ..audit import AuditLog
from ..users import UserRegistry
from ..clients import ClientRegistry
from ..accounts import AccountService
from ..transfers import TransferWorkflow, TransferPolicy
from ..loans import LoanWorkflow
from ..products import ProductCatalog
from ..errors import NotFoundError, InvalidStateError, PermissionDeniedError
from ..roles import Actor, Permission, has_permission
from ..config import BankOpsConfig, get_config
from .schemas import LoginRequest


class BankingSystem:
    """Banking operations core with all components initialized"""

    def __init__(self, config: Optional[BankOpsConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or create_storage(
            self.config.database_url,
            timeout=self.config.database_timeout,
            lock_timeout=self.config.lock_timeout_seconds
        )

        # Initialize core components
        self.audit_log = AuditLog(self.storage, log_entries=self.config.enable_audit_logging)
        self.users = UserRegistry(
            self.storage, self.audit_log,
            password_min_length=self.config.password_min_length
        )
        self.clients = ClientRegistry(self.storage, self.audit_log, self.users)
        self.accounts = AccountService(
            self.storage, self.audit_log, self.users,
            max_number_attempts=self.config.account_number_attempts
        )
        self.transfers = TransferWorkflow(
            self.storage, self.accounts, self.audit_log,
            policy=TransferPolicy(reserve_funds_on_hold=self.config.reserve_funds_on_hold)
        )
        self.loans = LoanWorkflow(self.storage, self.accounts, self.users, self.audit_log)
        self.products = ProductCatalog(self.storage)
        self.products.seed_defaults()

    def resolve_actor(self, user_id: str, permission: Optional[Permission] = None) -> Actor:
        """
        Turn the acting user's ID into an Actor

        Raises:
            NotFoundError: Unknown user
            InvalidStateError: User not active
            PermissionDeniedError: Role lacks the permission
        """
        user = self.users.get_user(user_id)
        if not user:
            raise NotFoundError(f"Acting user {user_id} not found")
        if not user.is_active:
            raise InvalidStateError("Acting user is inactive or blocked")
        if permission and not has_permission(user.role, permission):
            raise PermissionDeniedError(
                f"Role {user.role.value} is not allowed to {permission.value.replace('_', ' ')}"
            )
        return user.actor

    def close(self) -> None:
        self.storage.close()


# Global banking system instance, built on first use
banking_system: Optional[BankingSystem] = None


# Dependency to get banking system
def get_banking_system() -> BankingSystem:
    global banking_system
    if banking_system is None:
        banking_system = BankingSystem()
    return banking_system


router = APIRouter()


@router.post("/login")
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Verify credentials and return the user profile"""
    try:
        user = system.users.authenticate(request.identification, request.password)
    except (NotFoundError, InvalidStateError) as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return {
        "user": user.to_public_dict(),
        "message": "Login successful"
    }
