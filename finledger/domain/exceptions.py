"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is malformed (bad amounts, recurrence/day combinations, expense portions)"""

    pass


class ConfigurationMissingError(DomainException):
    """A prerequisite (salary, allocation rule) has not been configured"""

    def __init__(self, prerequisite: str, message: str | None = None):
        self.prerequisite = prerequisite
        super().__init__(message or f"Missing configuration: {prerequisite}")


class BudgetExceededError(DomainException):
    """Proposed contribution does not fit the bucket's allocation"""

    def __init__(self, bucket: str, budget: float, committed: float, proposed: float):
        self.bucket = bucket
        self.budget = budget
        self.committed = committed
        self.proposed = proposed
        available = budget - committed
        super().__init__(
            f"{bucket} allocation is {budget:.2f} but {committed:.2f} is already committed; "
            f"only {available:.2f} is available for the proposed {proposed:.2f}"
        )


class StateViolationError(DomainException):
    """Write targets a closed period or an already settled record"""

    pass


class NotFoundError(DomainException):
    """Referenced record does not exist for this user"""

    pass


class ExternalDependencyFailure(DomainException):
    """An external collaborator failed or returned unusable data"""

    pass


class PricingError(ExternalDependencyFailure):
    """Price or FX rate could not be fetched"""

    pass
