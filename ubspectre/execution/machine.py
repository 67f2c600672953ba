"""The abstract machine: a call stack of frames stepping over a program.

Each call to :meth:`Machine.step` executes exactly one statement or one
terminator of the innermost frame. The semantics of each syntax node lives
in ``ubspectre.execution.handlers`` and is reached through the dispatchers.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field

from ubspectre.config import UbSpectreConfig
from ubspectre.core.bytes import Pointer
from ubspectre.core.exceptions import (
    MachineTerminated,
    SpecificationBug,
    StepLimitExceeded,
    UndefinedBehavior,
)
from ubspectre.core.intptrcast import IntPtrCast
from ubspectre.core.memory import AllocationKind, BasicMemory
from ubspectre.core.solver import AddressChooser, ProvenancePredictor, make_address_chooser
from ubspectre.core.typed_memory import TypedMemory
from ubspectre.core.types import PlaceType, Type
from ubspectre.core.values import Value
from ubspectre.execution import handlers  # noqa: F401  (registers node semantics)
from ubspectre.execution.dispatcher import PLACE_EXPRS, STATEMENTS, TERMINATORS, VALUE_EXPRS
from ubspectre.lang.syntax import Block, Function, PlaceExpr, Program, ValueExpr
from ubspectre.logging import Category, get_logger


@dataclass
class StackFrame:
    """Activation record of one function call.

    ``block`` becomes ``None`` when this frame makes a call that has no
    block to continue at afterwards.
    """

    func_name: str
    func: Function
    locals: dict[str, Pointer] = field(default_factory=dict)
    caller_return: tuple[Pointer, PlaceType] | None = None
    block: str | None = None
    index: int = 0

    def __repr__(self) -> str:
        return f"StackFrame({self.func_name}, {self.block}[{self.index}])"


class Machine:
    """Interpreter state for one execution of a program.

    Example:
        machine = Machine(program)
        machine.run()
        print(machine.stdout)
    """

    def __init__(
        self,
        program: Program,
        config: UbSpectreConfig | None = None,
        chooser: AddressChooser | None = None,
        predictor: ProvenancePredictor | None = None,
    ) -> None:
        self.program = program
        self.config = config or UbSpectreConfig()
        self.target = self.config.target.to_target()
        if chooser is None:
            chooser = make_address_chooser(
                self.config.choice.address_strategy,
                seed=self.config.choice.seed,
                timeout_ms=self.config.choice.solver_timeout_ms,
            )
        self.memory = BasicMemory(self.target, chooser)
        self.typed = TypedMemory(self.memory)
        self.intptrcast = IntPtrCast(predictor)
        self.stack: list[StackFrame] = []
        self.stdout: list[str] = []
        self.stderr: list[str] = []
        self.steps = 0
        self.terminated = False
        self._logger = get_logger()

        # Every function gets its own address so function pointers can be
        # compared and called; the pointers themselves carry no provenance.
        self.fn_addrs: dict[str, Pointer] = {}
        self.fn_by_addr: dict[int, str] = {}
        for name in program.functions:
            ptr = self.memory.allocate(1, 1, AllocationKind.FUNCTION)
            self.fn_addrs[name] = Pointer(ptr.addr)
            self.fn_by_addr[ptr.addr] = name

        start = program.functions.get(program.start)
        if start is None:
            raise SpecificationBug(f"start function {program.start!r} does not exist")
        if start.args:
            raise SpecificationBug("the start function must not take arguments")
        frame = self.new_frame(program.start)
        self.storage_live(frame, start.ret[0])
        self.stack.append(frame)

    # -- frames and locals -------------------------------------------------

    @property
    def frame(self) -> StackFrame:
        if not self.stack:
            raise SpecificationBug("no active stack frame")
        return self.stack[-1]

    def function(self, name: str) -> Function:
        func = self.program.functions.get(name)
        if func is None:
            raise SpecificationBug(f"function {name!r} does not exist")
        return func

    def new_frame(self, name: str) -> StackFrame:
        func = self.function(name)
        return StackFrame(func_name=name, func=func, block=func.start)

    def local_type(self, frame: StackFrame, name: str) -> PlaceType:
        ptype = frame.func.locals.get(name)
        if ptype is None:
            raise SpecificationBug(f"{frame.func_name} has no local {name!r}")
        return ptype

    def local_ptr(self, name: str) -> Pointer:
        ptr = self.frame.locals.get(name)
        if ptr is None:
            raise SpecificationBug(f"use of dead local {name!r}")
        return ptr

    def storage_live(self, frame: StackFrame, name: str) -> Pointer:
        if name in frame.locals:
            raise SpecificationBug(f"local {name!r} is already live")
        ptype = self.local_type(frame, name)
        ptr = self.memory.allocate(ptype.byte_size(self.target), ptype.align, AllocationKind.STACK)
        frame.locals[name] = ptr
        return ptr

    def storage_dead(self, frame: StackFrame, name: str) -> None:
        ptr = frame.locals.pop(name, None)
        if ptr is None:
            raise SpecificationBug(f"local {name!r} is already dead")
        ptype = self.local_type(frame, name)
        self.memory.deallocate(ptr, ptype.byte_size(self.target), ptype.align, AllocationKind.STACK)

    def jump(self, block: str) -> None:
        frame = self.frame
        if block not in frame.func.blocks:
            raise SpecificationBug(f"{frame.func_name} has no block {block!r}")
        frame.block = block
        frame.index = 0

    # -- evaluation --------------------------------------------------------

    def eval_value(self, expr: ValueExpr) -> tuple[Value, Type]:
        return VALUE_EXPRS.dispatch(expr, self)

    def eval_place(self, expr: PlaceExpr) -> tuple[Pointer, PlaceType]:
        return PLACE_EXPRS.dispatch(expr, self)

    def ptr_offset_inbounds(self, ptr: Pointer, offset: int) -> Pointer:
        """Offset ``ptr`` by ``offset`` bytes, staying inside its allocation."""
        if not self.target.isize_in_bounds(offset):
            raise UndefinedBehavior("inbounds offset does not fit into `isize`")
        addr = ptr.addr + offset
        if not self.target.addr_in_bounds(addr):
            raise UndefinedBehavior("overflowing inbounds pointer arithmetic")
        low, high = min(ptr.addr, addr), max(ptr.addr, addr)
        self.memory.dereferenceable(Pointer(low, ptr.provenance), high - low, 1)
        return Pointer(addr, ptr.provenance)

    def int2ptr(self, addr: int) -> Pointer:
        """Cast ``addr`` to a pointer, preferring an exposed allocation that contains it."""
        return self.intptrcast.int2ptr(
            addr,
            fits=lambda prov: self.memory.provenance_covers(prov, addr),
            contains=lambda prov: self.memory.provenance_covers(prov, addr, one_past_end=False),
        )

    def emit(self, line: str, stderr: bool = False) -> None:
        """Record a line of program output."""
        (self.stderr if stderr else self.stdout).append(line)
        if self.config.output.echo_stdout:
            print(line, file=sys.stderr if stderr else sys.stdout)

    # -- stepping ----------------------------------------------------------

    def current_block(self) -> Block:
        frame = self.frame
        if frame.block is None:
            raise SpecificationBug(f"{frame.func_name} has no current block")
        block = frame.func.blocks.get(frame.block)
        if block is None:
            raise SpecificationBug(f"{frame.func_name} has no block {frame.block!r}")
        return block

    def step(self) -> None:
        """Execute one statement or terminator."""
        if self.terminated:
            raise SpecificationBug("stepping a terminated machine")
        frame = self.frame
        block = self.current_block()
        self.steps += 1
        self._logger.at_step(self.steps)
        self._logger.trace(f"{frame.func_name}/{frame.block}[{frame.index}]", category=Category.MACHINE)
        if frame.index == len(block.statements):
            TERMINATORS.dispatch(block.terminator, self)
        else:
            STATEMENTS.dispatch(block.statements[frame.index], self)
            frame.index += 1

    def run(self) -> None:
        """Step until the program terminates.

        Raises:
            UndefinedBehavior: The program has undefined behavior.
            ProgramPanicked: The program panicked.
            NoValidChoice: A non-deterministic choice had no solution.
            SolverTimeout: The address solver gave up before answering.
            StepLimitExceeded: ``limits.max_steps`` was reached.
        """
        max_steps = self.config.limits.max_steps
        try:
            while True:
                if self.steps >= max_steps:
                    raise StepLimitExceeded(self.steps)
                self.step()
        except MachineTerminated:
            self.terminated = True
        finally:
            self._logger.at_step(None)

    def __repr__(self) -> str:
        return f"Machine({len(self.stack)} frames, {self.steps} steps, {self.memory!r})"


__all__ = ["StackFrame", "Machine"]
