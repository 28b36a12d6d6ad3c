"""
Error Taxonomy Module

Business-rule failures raised by the account service and the workflow
engines. All of them derive from ValueError so callers that only know
about ValueError keep working.
"""


class BankingError(ValueError):
    """Base class for every business-rule failure"""


class NotFoundError(BankingError):
    """Referenced entity does not exist"""


class InvalidStateError(BankingError):
    """Operation is illegal for the current status, role or account condition"""


class InsufficientFundsError(BankingError):
    """Balance would become negative"""


class ExpiredError(BankingError):
    """Approval attempted after the approval window closed"""


class ValidationError(BankingError):
    """Malformed input, rejected before any business logic runs"""


class StorageTimeoutError(RuntimeError):
    """The store could not start a unit of work in time"""


class PermissionDeniedError(InvalidStateError):
    """The acting user's role may not perform the operation"""
