"""Syntax-node dispatcher with registration system.
This module provides a decorator-based system for registering the semantics
of each syntax-node shape, allowing modular organization of the machine.
Every node kind (value expressions, places, statements, terminators,
operators, intrinsics) has its own ``Dispatcher``; handler modules register
with it at import time.
"""
from __future__ import annotations
from collections.abc import Callable
from typing import Any
from ubspectre.core.exceptions import SpecificationBug
Handler = Callable[..., Any]
def _by_type(node: Any) -> Any:
    return type(node)
def _by_value(node: Any) -> Any:
    return node
class Dispatcher:
    """Dispatches syntax nodes to registered handlers.
    Handlers are looked up by ``key(node)``, which defaults to the node's
    class. Looking up a node nobody registered for is a bug in the machine,
    not in the interpreted program.
    Example:
        STATEMENTS = Dispatcher("statement")
        @STATEMENTS.register(Assign)
        def handle_assign(machine, stmt):
            ...
    """
    def __init__(self, name: str, key: Callable[[Any], Any] = _by_type) -> None:
        self.name = name
        self._key = key
        self._handlers: dict[Any, Handler] = {}
    def register(self, *keys: Any) -> Callable[[Handler], Handler]:
        """Decorator to register a handler for one or more node kinds.
        Args:
            keys: Node classes (or enum members, for dispatchers keyed by value).
        Returns:
            Decorator function.
        """
        def decorator(handler: Handler) -> Handler:
            for key in keys:
                if key in self._handlers:
                    raise SpecificationBug(f"duplicate {self.name} handler for {key!r}")
                self._handlers[key] = handler
            return handler
        return decorator
    def dispatch(self, node: Any, machine: Any, *args: Any) -> Any:
        """Run the handler for ``node`` as ``handler(machine, node, *args)``.
        Raises:
            SpecificationBug: If no handler is registered for the node.
        """
        handler = self._handlers.get(self._key(node))
        if handler is None:
            raise SpecificationBug(f"no {self.name} handler for {node!r}")
        return handler(machine, node, *args)
    def has_handler(self, key: Any) -> bool:
        """Check if a handler is registered for a node kind."""
        return key in self._handlers
    def registered_keys(self) -> set[Any]:
        """Get the set of registered node kinds."""
        return set(self._handlers)
    def __repr__(self) -> str:
        return f"Dispatcher({self.name!r}, {len(self._handlers)} handlers)"
VALUE_EXPRS = Dispatcher("value expression")
PLACE_EXPRS = Dispatcher("place expression")
STATEMENTS = Dispatcher("statement")
TERMINATORS = Dispatcher("terminator")
UNARY_OPS = Dispatcher("unary operator")
BINARY_OPS = Dispatcher("binary operator")
INTRINSICS = Dispatcher("intrinsic", key=_by_value)
__all__ = [
    "Handler",
    "Dispatcher",
    "VALUE_EXPRS",
    "PLACE_EXPRS",
    "STATEMENTS",
    "TERMINATORS",
    "UNARY_OPS",
    "BINARY_OPS",
    "INTRINSICS",
]
