"""Tagged success/failure outcome of an upstream call."""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from polaris_orchestrator.exceptions import ProviderFailure

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    error: ProviderFailure
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> str:
        return self.error.kind.value


Result = Union[Success[T], Failure]
