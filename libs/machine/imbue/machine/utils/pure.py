from collections.abc import Callable
from typing import TypeVar

_F = TypeVar("_F", bound=Callable[..., object])


def pure(func: _F) -> _F:
    """Mark a function as pure (no side effects, no I/O, same output for the same inputs).

    Advisory only; not enforced at runtime.
    """
    return func
