"""Tagged results for pipeline steps.

A step returns ``Ok(value)`` on success or ``Err(error)`` on an expected
failure, so callers branch on ``result.ok`` instead of catching exceptions.
Exceptions remain reserved for infrastructure faults.
"""

from dataclasses import dataclass
from typing import ClassVar, Generic, TypeAlias, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    ok: ClassVar[bool] = False


Result: TypeAlias = Union[Ok[T], Err[E]]
