"""ubspectre: a reference interpreter that detects undefined behavior.

ubspectre executes programs in a small Rust-like instruction language over an
abstract machine with byte-level memory, pointer provenance and typed
loads and stores. Every execution either terminates, or stops with a precise
reason: undefined behavior, a panic, an unsatisfiable non-deterministic
choice, or an exhausted step budget.

Example:
    >>> from ubspectre import run_program
    >>> from ubspectre.lang import build as b
    >>> prog = b.small_program(
    ...     [b.ptype(b.u8())],
    ...     [b.live(0), b.assign(b.local(0), b.const_int(1, b.u8()))],
    ... )
    >>> run_program(prog).outcome
    <Outcome.TERMINATED: 'terminated'>
"""

from ubspectre.api import ExecutionResult, Outcome, check_program, run_program, setup_logging
from ubspectre.core.exceptions import (
    NoValidChoice,
    ProgramPanicked,
    SpecificationBug,
    UndefinedBehavior,
)
from ubspectre.config import UbSpectreConfig, load_config
from ubspectre.execution.machine import Machine
from ubspectre.logging import LogLevel, configure_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    "run_program",
    "check_program",
    "setup_logging",
    "ExecutionResult",
    "Outcome",
    "Machine",
    "UndefinedBehavior",
    "SpecificationBug",
    "NoValidChoice",
    "ProgramPanicked",
    "UbSpectreConfig",
    "load_config",
    "configure_logging",
    "get_logger",
    "LogLevel",
]
