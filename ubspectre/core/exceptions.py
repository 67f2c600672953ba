"""Failure channels of the abstract machine.

Executing a program can end in one of several ways:

- ``MachineTerminated``: the program finished normally. This is a control
  signal, not an error.
- ``UndefinedBehavior``: the program did something the semantics declares
  meaningless. Execution stops; there is no recovery.
- ``ProgramPanicked``: the program asked to abort via the panic intrinsic.
- ``NoValidChoice``: a non-deterministic choice point had nothing to choose
  from (for example, no free address for an allocation). This is an open
  corner of the semantics and deliberately not folded into UB.
- ``StepLimitExceeded``: the configured step budget ran out.
- ``SolverTimeout``: the address solver gave up without an answer. Unlike
  ``NoValidChoice`` this says nothing about whether an address exists.
- ``SpecificationBug``: the interpreter reached a state that well-formed
  input can never produce. Callers should treat it as fatal.
"""

from __future__ import annotations

from enum import Enum, auto


class ErrorCategory(Enum):
    """What kind of ending an error stands for; ``api.run_program`` reports by it."""

    UNDEFINED_BEHAVIOR = auto()
    PANIC = auto()
    NO_VALID_CHOICE = auto()
    STEP_LIMIT = auto()
    SOLVER_TIMEOUT = auto()
    INTERNAL = auto()


class MachineError(Exception):
    """Base class for everything that aborts the step loop abnormally."""

    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class UndefinedBehavior(MachineError):
    """The interpreted program exhibits undefined behavior."""

    category = ErrorCategory.UNDEFINED_BEHAVIOR

    def __str__(self) -> str:
        return f"undefined behavior: {self.reason}"


class SpecificationBug(MachineError):
    """An invariant that well-formed input guarantees was violated."""

    category = ErrorCategory.INTERNAL


class NoValidChoice(MachineError):
    """A non-deterministic choice found no value satisfying its constraints."""

    category = ErrorCategory.NO_VALID_CHOICE


class ProgramPanicked(MachineError):
    """The program panicked."""

    category = ErrorCategory.PANIC


class StepLimitExceeded(MachineError):
    """Execution used up the configured number of steps."""

    category = ErrorCategory.STEP_LIMIT

    def __init__(self, steps: int):
        self.steps = steps
        super().__init__(f"step limit exceeded after {steps} steps")


class SolverTimeout(MachineError):
    """The solver behind a choice point returned ``unknown``."""

    category = ErrorCategory.SOLVER_TIMEOUT

    def __init__(self, reason: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(reason)


class MachineTerminated(Exception):
    """Raised to unwind the step loop when the program ends normally."""


__all__ = [
    "ErrorCategory",
    "MachineError",
    "UndefinedBehavior",
    "SpecificationBug",
    "NoValidChoice",
    "ProgramPanicked",
    "StepLimitExceeded",
    "SolverTimeout",
    "MachineTerminated",
]
