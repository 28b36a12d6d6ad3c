"""
Roles and Actors

System roles and the actor identity stamped on every audited operation.
The expiry sweep runs as the reserved system actor instead of a magic
user id.
"""

from dataclasses import dataclass
from enum import Enum


class Role(Enum):
    """Roles a bank user can hold"""
    PERSON_CLIENT = "person_client"
    COMPANY_CLIENT = "company_client"
    TELLER = "teller"
    COMMERCIAL_EMPLOYEE = "commercial_employee"
    COMPANY_EMPLOYEE = "company_employee"
    COMPANY_SUPERVISOR = "company_supervisor"
    INTERNAL_ANALYST = "internal_analyst"
    SYSTEM = "system"  # Reserved for scheduled jobs, never assigned to users


USER_ROLES = [role for role in Role if role != Role.SYSTEM]


@dataclass(frozen=True)
class Actor:
    """Who performed an operation"""
    user_id: str
    role: Role


SYSTEM_ACTOR = Actor(user_id="system", role=Role.SYSTEM)


class Permission(Enum):
    """Operations gated by role"""
    MANAGE_USERS = "manage_users"
    REGISTER_CLIENTS = "register_clients"
    OPEN_ACCOUNT = "open_account"
    CHANGE_ACCOUNT_STATUS = "change_account_status"
    CREATE_TRANSFER = "create_transfer"
    APPROVE_TRANSFER = "approve_transfer"
    APPLY_FOR_LOAN = "apply_for_loan"
    DECIDE_LOAN = "decide_loan"
    DISBURSE_LOAN = "disburse_loan"


ROLE_PERMISSIONS = {
    Role.PERSON_CLIENT: {
        Permission.CREATE_TRANSFER,
        Permission.APPLY_FOR_LOAN,
    },
    Role.COMPANY_CLIENT: {
        Permission.CREATE_TRANSFER,
        Permission.APPLY_FOR_LOAN,
    },
    Role.TELLER: {
        Permission.REGISTER_CLIENTS,
        Permission.OPEN_ACCOUNT,
        Permission.CHANGE_ACCOUNT_STATUS,
        Permission.CREATE_TRANSFER,
        Permission.APPLY_FOR_LOAN,
    },
    Role.COMMERCIAL_EMPLOYEE: {
        Permission.REGISTER_CLIENTS,
        Permission.OPEN_ACCOUNT,
        Permission.APPLY_FOR_LOAN,
    },
    Role.COMPANY_EMPLOYEE: {
        Permission.CREATE_TRANSFER,
    },
    Role.COMPANY_SUPERVISOR: {
        Permission.CREATE_TRANSFER,
        Permission.APPROVE_TRANSFER,
    },
    Role.INTERNAL_ANALYST: {
        Permission.MANAGE_USERS,
        Permission.REGISTER_CLIENTS,
        Permission.OPEN_ACCOUNT,
        Permission.CHANGE_ACCOUNT_STATUS,
        Permission.DECIDE_LOAN,
        Permission.DISBURSE_LOAN,
    },
    Role.SYSTEM: set(Permission),
}


def has_permission(role: Role, permission: Permission) -> bool:
    """Check if a role grants a permission"""
    return permission in ROLE_PERMISSIONS.get(role, set())
