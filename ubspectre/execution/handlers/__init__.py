"""Syntax-node handlers.
This module imports all handlers to ensure they are registered with the
dispatchers when the module is loaded.
"""
from ubspectre.execution.handlers import (
    intrinsics,
    operators,
    places,
    statements,
    terminators,
    values,
)
__all__ = [
    "intrinsics",
    "operators",
    "places",
    "statements",
    "terminators",
    "values",
]
