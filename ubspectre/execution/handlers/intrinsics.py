"""Intrinsic operations.
Each handler receives the evaluated ``(value, type)`` arguments and returns
the ``(value, type)`` result, or ``None`` for unit. Arguments of the wrong
shape are UB.
"""
from __future__ import annotations
from typing import TYPE_CHECKING
from ubspectre.core.exceptions import MachineTerminated, ProgramPanicked, UndefinedBehavior
from ubspectre.core.memory import AllocationKind
from ubspectre.core.types import BoolType, IntType, PtrType, RawPtr, Type
from ubspectre.core.values import BoolValue, IntValue, PtrValue, Value
from ubspectre.execution.dispatcher import INTRINSICS
from ubspectre.lang.syntax import IntrinsicOp
if TYPE_CHECKING:
    from ubspectre.execution.machine import Machine
Arguments = list[tuple[Value, Type]]
def _invalid() -> UndefinedBehavior:
    return UndefinedBehavior("invalid arguments to intrinsic")
def _expect_int(arg: tuple[Value, Type]) -> int:
    value, ty = arg
    if not isinstance(value, IntValue) or not isinstance(ty, IntType):
        raise _invalid()
    return value.value
def _expect_ptr(arg: tuple[Value, Type]) -> PtrValue:
    value, ty = arg
    if not isinstance(value, PtrValue) or not isinstance(ty, PtrType):
        raise _invalid()
    return value
def _format(arg: tuple[Value, Type]) -> str:
    value, ty = arg
    if isinstance(value, IntValue) and isinstance(ty, IntType):
        return str(value.value)
    if isinstance(value, BoolValue) and isinstance(ty, BoolType):
        return "true" if value.value else "false"
    raise _invalid()
@INTRINSICS.register(IntrinsicOp.PRINT_STDOUT, IntrinsicOp.PRINT_STDERR)
def intrinsic_print(machine: Machine, op: IntrinsicOp, args: Arguments) -> None:
    """Print each argument on its own line."""
    for arg in args:
        machine.emit(_format(arg), stderr=op is IntrinsicOp.PRINT_STDERR)
@INTRINSICS.register(IntrinsicOp.EXIT)
def intrinsic_exit(machine: Machine, op: IntrinsicOp, args: Arguments) -> None:
    if args:
        raise _invalid()
    raise MachineTerminated()
@INTRINSICS.register(IntrinsicOp.PANIC)
def intrinsic_panic(machine: Machine, op: IntrinsicOp, args: Arguments) -> None:
    if args:
        raise _invalid()
    raise ProgramPanicked("explicit panic")
@INTRINSICS.register(IntrinsicOp.ALLOCATE)
def intrinsic_allocate(machine: Machine, op: IntrinsicOp, args: Arguments) -> tuple[Value, Type]:
    if len(args) != 2:
        raise _invalid()
    size, align = _expect_int(args[0]), _expect_int(args[1])
    ptr = machine.memory.allocate(size, align, AllocationKind.HEAP)
    return PtrValue(ptr), RawPtr()
@INTRINSICS.register(IntrinsicOp.DEALLOCATE)
def intrinsic_deallocate(machine: Machine, op: IntrinsicOp, args: Arguments) -> None:
    if len(args) != 3:
        raise _invalid()
    ptr = _expect_ptr(args[0]).ptr
    size, align = _expect_int(args[1]), _expect_int(args[2])
    machine.memory.deallocate(ptr, size, align, AllocationKind.HEAP)
@INTRINSICS.register(IntrinsicOp.POINTER_EXPOSE_PROVENANCE)
def intrinsic_expose(machine: Machine, op: IntrinsicOp, args: Arguments) -> tuple[Value, Type]:
    if len(args) != 1:
        raise _invalid()
    addr = machine.intptrcast.ptr2int(_expect_ptr(args[0]).ptr)
    return IntValue(addr), IntType(signed=False, size=machine.target.ptr_size)
@INTRINSICS.register(IntrinsicOp.POINTER_WITH_EXPOSED_PROVENANCE)
def intrinsic_with_exposed(machine: Machine, op: IntrinsicOp, args: Arguments) -> tuple[Value, Type]:
    if len(args) != 1:
        raise _invalid()
    addr = _expect_int(args[0])
    if not machine.target.addr_in_bounds(addr):
        raise _invalid()
    ptr = machine.int2ptr(addr)
    return PtrValue(ptr), RawPtr()
@INTRINSICS.register(IntrinsicOp.ASSUME)
def intrinsic_assume(machine: Machine, op: IntrinsicOp, args: Arguments) -> None:
    if len(args) != 1 or not isinstance(args[0][0], BoolValue):
        raise _invalid()
    if not args[0][0].value:
        raise UndefinedBehavior("`assume` called on false")
