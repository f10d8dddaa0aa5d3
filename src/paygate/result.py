from dataclasses import dataclass
from typing import Generic, TypeVar

from paygate.errors import PaymentError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    @property
    def error(self) -> None:
        return None

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    error: PaymentError

    @property
    def ok(self) -> bool:
        return False

    @property
    def value(self) -> None:
        return None

    def unwrap(self):
        """Re-raise the carried error."""
        raise self.error


Outcome = Ok[T] | Err
