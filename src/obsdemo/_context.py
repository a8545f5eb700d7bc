"""Context propagation for the operation owned by the current request."""

from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from obsdemo._instrument import OperationScope

_current_operation: ContextVar[OperationScope | None] = ContextVar(
    "_current_operation", default=None
)


def current_operation() -> OperationScope | None:
    """Return the active operation in the current context, or None."""
    return _current_operation.get()


def set_current_operation(scope: OperationScope | None) -> Token[OperationScope | None]:
    """Set the active operation and return a token for later restoration."""
    return _current_operation.set(scope)


def reset_current_operation(token: Token[OperationScope | None]) -> None:
    _current_operation.reset(token)
