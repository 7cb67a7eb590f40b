"""
CORE App - Result type for BALADI operations

Every public core operation returns either Ok(value) or Err(failure).
Callers branch on `result.ok` (or isinstance) and chain with
map / and_then instead of try/except.

Example:
    result = transition_order(order, OrderStatus.ACCEPTED, actor=shop_owner)
    if result.ok:
        order = result.value
    else:
        logger.warning(result.failure.message)
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

from django.db import InterfaceError, OperationalError

from .failures import DomainFailure, NetworkFailure

logger = logging.getLogger(__name__)

T = TypeVar('T')
U = TypeVar('U')


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    ok = True
    retryable = False

    @property
    def failure(self):
        return None

    def map(self, func: Callable[[T], U]) -> 'Result[U]':
        return Ok(func(self.value))

    def and_then(self, func: Callable[[T], 'Result[U]']) -> 'Result[U]':
        return func(self.value)

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: Any) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying a DomainFailure."""

    failure: DomainFailure

    ok = False

    @property
    def value(self):
        return None

    def map(self, func: Callable) -> 'Err':
        return self

    def and_then(self, func: Callable) -> 'Err':
        return self

    def unwrap(self):
        raise self.failure

    def unwrap_or(self, default: Any) -> Any:
        return default

    @property
    def retryable(self) -> bool:
        return self.failure.retryable


Result = Union[Ok, Err]


def returns_result(func: Callable[..., T]) -> Callable[..., Result]:
    """
    Turn a raising service function into one returning a Result.

    DomainFailure subclasses become Err(failure). Database availability
    errors become Err(NetworkFailure) so the caller may retry. Anything
    else is a bug and propagates.

    Must wrap *outside* transaction.atomic so the rollback happens
    before the failure is converted.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Result:
        try:
            return Ok(func(*args, **kwargs))
        except DomainFailure as failure:
            return Err(failure)
        except (OperationalError, InterfaceError) as exc:
            logger.error(f"[CORE] Database unavailable in {func.__name__}: {exc}")
            return Err(NetworkFailure(f"Database unavailable: {exc}"))

    return wrapper
