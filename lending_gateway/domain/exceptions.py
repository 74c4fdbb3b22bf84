"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Borrower or decision input is missing or out of range"""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class ConfigurationError(DomainException):
    """Partner bank policy is incomplete or internally inconsistent"""

    pass


class ConcurrencyConflict(DomainException):
    """Borrower record or ledger changed between read and commit"""

    pass


class PolicyNotFoundError(DomainException):
    """No active policy exists for the bank code"""

    pass


class BorrowerNotFoundError(DomainException):
    """No borrower profile exists for the identifier"""

    pass


class DecisionNotFoundError(DomainException):
    """Operation needs an existing decision and the ledger has none"""

    pass


class AuthorizationError(DomainException):
    """Actor lacks the capability required for the operation"""

    pass
