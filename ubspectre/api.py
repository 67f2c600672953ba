"""Public API for ubspectre."""
from __future__ import annotations
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any
from ubspectre.config import UbSpectreConfig
from ubspectre.core.exceptions import (
    ErrorCategory,
    MachineError,
    SpecificationBug,
)
from ubspectre.core.solver import AddressChooser, AddressStrategy, ProvenancePredictor
from ubspectre.execution.machine import Machine
from ubspectre.lang.syntax import Program
from ubspectre.logging import Category, UbSpectreLogger, configure_logging, get_logger
class Outcome(Enum):
    """How an execution ended."""
    TERMINATED = "terminated"
    UNDEFINED_BEHAVIOR = "undefined_behavior"
    PANICKED = "panicked"
    NO_VALID_CHOICE = "no_valid_choice"
    STEP_LIMIT = "step_limit"
    SOLVER_TIMEOUT = "solver_timeout"
_OUTCOMES: dict[ErrorCategory, Outcome] = {
    ErrorCategory.UNDEFINED_BEHAVIOR: Outcome.UNDEFINED_BEHAVIOR,
    ErrorCategory.PANIC: Outcome.PANICKED,
    ErrorCategory.NO_VALID_CHOICE: Outcome.NO_VALID_CHOICE,
    ErrorCategory.STEP_LIMIT: Outcome.STEP_LIMIT,
    ErrorCategory.SOLVER_TIMEOUT: Outcome.SOLVER_TIMEOUT,
}
@dataclass
class ExecutionResult:
    """Result of running a program."""
    outcome: Outcome
    message: str = ""
    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)
    steps: int = 0
    allocations: int = 0
    total_time_seconds: float = 0.0
    address_strategy: str = ""
    def succeeded(self) -> bool:
        """Whether the program terminated normally."""
        return self.outcome is Outcome.TERMINATED
    def is_ub(self) -> bool:
        return self.outcome is Outcome.UNDEFINED_BEHAVIOR
    def format_summary(self) -> str:
        """Format a summary of results."""
        lines = [
            "=== ubspectre Execution Results ===",
            f"Outcome: {self.outcome.value}",
            f"Steps: {self.steps}",
            f"Allocations: {self.allocations}",
            f"Address strategy: {self.address_strategy}",
            f"Total time: {self.total_time_seconds:.2f}s",
        ]
        if self.message:
            lines.append("")
            lines.append(self.message)
        if self.stdout:
            lines.append("")
            lines.append("stdout:")
            lines.extend(f"  {line}" for line in self.stdout)
        if self.stderr:
            lines.append("")
            lines.append("stderr:")
            lines.extend(f"  {line}" for line in self.stderr)
        return "\n".join(lines)
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "stdout": list(self.stdout),
            "stderr": list(self.stderr),
            "steps": self.steps,
            "allocations": self.allocations,
            "total_time_seconds": self.total_time_seconds,
            "address_strategy": self.address_strategy,
        }
def setup_logging(config: UbSpectreConfig) -> UbSpectreLogger:
    """Configure the global logger from the ``[output]`` settings."""
    return configure_logging(level=config.output.log_level(), color=config.output.color)
def run_program(
    program: Program,
    config: UbSpectreConfig | None = None,
    *,
    chooser: AddressChooser | None = None,
    predictor: ProvenancePredictor | None = None,
) -> ExecutionResult:
    """
    Run a program to completion and report how it ended.
    Undefined behavior, panics, exhausted choices, solver timeouts and the
    step limit all become an ``ExecutionResult``, reported by the error's
    category. Only ``SpecificationBug`` propagates, since it means the
    program was malformed or the interpreter is wrong.
    Args:
        program: The program to run
        config: Configuration; defaults are used if omitted
        chooser: Override for the allocator's address chooser
        predictor: Override for the int-to-pointer provenance predictor
    Returns:
        ExecutionResult with the outcome and the program's output
    Example:
        >>> result = run_program(prog)
        >>> if result.is_ub():
        ...     print(result.message)
    """
    config = config or UbSpectreConfig()
    logger = get_logger()
    outcome, message = Outcome.TERMINATED, ""
    machine: Machine | None = None
    with logger.timer(f"run ({config.choice.address_strategy})") as timing:
        try:
            machine = Machine(program, config, chooser=chooser, predictor=predictor)
            machine.run()
        except SpecificationBug:
            raise
        except MachineError as e:
            outcome = _OUTCOMES[e.category]
            message = str(e)
    logger.count(f"outcome.{outcome.value}")
    result = ExecutionResult(
        outcome=outcome,
        message=message,
        stdout=list(machine.stdout) if machine is not None else [],
        stderr=list(machine.stderr) if machine is not None else [],
        steps=machine.steps if machine is not None else 0,
        allocations=len(machine.memory.allocations) if machine is not None else 0,
        total_time_seconds=timing.elapsed,
        address_strategy=config.choice.address_strategy,
    )
    summary = f"{outcome.value} after {result.steps} steps"
    logger.verbose(f"{summary}: {message}" if message else summary, category=Category.MACHINE)
    return result
def check_program(
    program: Program,
    config: UbSpectreConfig | None = None,
    strategies: Iterable[str | AddressStrategy] = (
        AddressStrategy.LOWEST,
        AddressStrategy.HIGHEST,
        AddressStrategy.RANDOM,
    ),
) -> ExecutionResult:
    """
    Run a program once per address strategy.
    Allocation addresses are a daemonic choice: a program is only well-defined
    if it behaves for every address the allocator may pick. Returns the first
    result that did not terminate normally, or the last result if all did.
    """
    config = config or UbSpectreConfig()
    result = None
    for strategy in strategies:
        name = strategy.value if isinstance(strategy, AddressStrategy) else strategy
        run_config = replace(config, choice=replace(config.choice, address_strategy=name))
        result = run_program(program, run_config)
        if not result.succeeded():
            return result
    if result is None:
        raise ValueError("check_program needs at least one address strategy")
    return result
__all__ = [
    "Outcome",
    "ExecutionResult",
    "setup_logging",
    "run_program",
    "check_program",
]
