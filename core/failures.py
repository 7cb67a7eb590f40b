"""
CORE App - Failure taxonomy for BALADI

Failures are domain-level error representations. Services raise them,
the public operation boundary (core.results.returns_result) turns them
into Err values so callers pattern-match instead of catching.

- ValidationFailure: malformed input or wrong actor
- BusinessRuleFailure: valid input that violates a domain invariant
- NotFoundFailure: missing entity
- NetworkFailure / ServerFailure: transport or backend errors (retryable)
- CacheFailure: local persistence errors
"""


class DomainFailure(Exception):
    """Base failure for all BALADI domain errors."""

    default_code = 'FAILURE'
    retryable = False

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __str__(self):
        return self.message

    def __repr__(self):
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"

    def __eq__(self, other):
        return (
            type(self) is type(other)
            and self.message == other.message
            and self.code == other.code
        )

    def __hash__(self):
        return hash((type(self), self.message, self.code))


class ValidationFailure(DomainFailure):
    """Malformed input or an actor not allowed to perform the action."""

    default_code = 'VALIDATION_ERROR'

    def __init__(self, message: str, code: str = None, field_errors: dict = None):
        super().__init__(message, code)
        self.field_errors = field_errors or {}


class BusinessRuleFailure(DomainFailure):
    """
    Valid input rejected by a domain invariant.

    Terminal: retrying the same input will fail the same way.
    """

    default_code = 'BUSINESS_RULE_ERROR'


class NotFoundFailure(DomainFailure):
    default_code = 'NOT_FOUND'


class NetworkFailure(DomainFailure):
    """Storage unreachable. The caller may retry."""

    default_code = 'NETWORK_ERROR'
    retryable = True

    def __init__(self, message: str = 'Storage backend unreachable', code: str = None):
        super().__init__(message, code)


class ServerFailure(DomainFailure):
    default_code = 'SERVER_ERROR'
    retryable = True

    def __init__(self, message: str, code: str = None, status_code: int = None):
        super().__init__(message, code)
        self.status_code = status_code


class CacheFailure(DomainFailure):
    default_code = 'CACHE_ERROR'
