"""Terminator semantics: control flow, calls and returns.
A call checks that caller and callee agree on the calling convention and on
the ABI of the return value and of every argument. Arguments are stored into
the callee's fresh locals at the caller's type, so an invalid argument value
is caught at the call site.
"""
from __future__ import annotations
from typing import TYPE_CHECKING
from ubspectre.core.exceptions import MachineTerminated, SpecificationBug, UndefinedBehavior
from ubspectre.core.types import PlaceType, TupleType
from ubspectre.core.values import BoolValue, IntValue, PtrValue, TupleValue
from ubspectre.execution.dispatcher import INTRINSICS, TERMINATORS
from ubspectre.lang.syntax import Call, Goto, If, Intrinsic, Return, Switch, Unreachable
from ubspectre.logging import Category, get_logger
if TYPE_CHECKING:
    from ubspectre.execution.machine import Machine
@TERMINATORS.register(Goto)
def exec_goto(machine: Machine, term: Goto) -> None:
    machine.jump(term.block)
@TERMINATORS.register(If)
def exec_if(machine: Machine, term: If) -> None:
    condition, _ = machine.eval_value(term.condition)
    if not isinstance(condition, BoolValue):
        raise SpecificationBug(f"non-boolean condition {condition!r}")
    machine.jump(term.then_block if condition.value else term.else_block)
@TERMINATORS.register(Switch)
def exec_switch(machine: Machine, term: Switch) -> None:
    value, _ = machine.eval_value(term.value)
    if not isinstance(value, IntValue):
        raise SpecificationBug(f"switch on non-integer {value!r}")
    for case, block in term.cases:
        if case == value.value:
            machine.jump(block)
            return
    machine.jump(term.fallback)
@TERMINATORS.register(Unreachable)
def exec_unreachable(machine: Machine, term: Unreachable) -> None:
    raise UndefinedBehavior("reached unreachable code")
@TERMINATORS.register(Call)
def exec_call(machine: Machine, term: Call) -> None:
    callee, _ = machine.eval_value(term.callee)
    if not isinstance(callee, PtrValue):
        raise SpecificationBug(f"call of non-pointer value {callee!r}")
    name = machine.fn_by_addr.get(callee.ptr.addr)
    if name is None:
        raise UndefinedBehavior("calling a pointer that does not point to a function")
    frame = machine.new_frame(name)
    func = frame.func
    if func.calling_convention is not term.calling_convention:
        raise UndefinedBehavior("call ABI violation: calling conventions are not the same")
    if len(func.args) != len(term.arguments):
        raise UndefinedBehavior("call ABI violation: number of arguments does not agree")
    target = machine.target
    ret_name, callee_ret_abi = func.ret
    callee_ret_ptype = machine.local_type(frame, ret_name)
    machine.storage_live(frame, ret_name)
    ret_expr, caller_ret_abi = term.ret
    ret_ptr, ret_ptype = machine.eval_place(ret_expr)
    if caller_ret_abi != callee_ret_abi:
        raise UndefinedBehavior("call ABI violation: return argument ABI does not agree")
    if ret_ptype.byte_size(target) != callee_ret_ptype.byte_size(target):
        raise UndefinedBehavior("call ABI violation: return type size does not agree")
    frame.caller_return = (ret_ptr, ret_ptype)
    for (arg_expr, caller_abi), (arg_name, callee_abi) in zip(term.arguments, func.args):
        value, ty = machine.eval_value(arg_expr)
        if caller_abi != callee_abi:
            raise UndefinedBehavior("call ABI violation: argument ABI does not agree")
        callee_ptype = machine.local_type(frame, arg_name)
        if ty.byte_size(target) != callee_ptype.byte_size(target):
            raise UndefinedBehavior("call ABI violation: argument size does not agree")
        ptr = machine.storage_live(frame, arg_name)
        machine.typed.typed_store(ptr, value, PlaceType(ty, callee_ptype.align))
    caller = machine.frame
    caller.block = term.next_block
    caller.index = 0
    machine.stack.append(frame)
    get_logger().debug(f"call {name} from {caller.func_name}", category=Category.MACHINE)
@TERMINATORS.register(Return)
def exec_return(machine: Machine, term: Return) -> None:
    """Pop the frame, hand the return value to the caller and free all locals."""
    frame = machine.stack.pop()
    ret_name, _ = frame.func.ret
    ret_ptr = frame.locals.get(ret_name)
    if ret_ptr is None:
        raise SpecificationBug(f"return local {ret_name!r} of {frame.func_name} is dead")
    ret_ptype = machine.local_type(frame, ret_name)
    value = machine.typed.typed_load(ret_ptr, ret_ptype)
    if frame.caller_return is not None:
        caller_ptr, caller_ptype = frame.caller_return
        machine.typed.typed_store(caller_ptr, value, PlaceType(ret_ptype.ty, caller_ptype.align))
    for name in list(frame.locals):
        machine.storage_dead(frame, name)
    get_logger().debug(f"return from {frame.func_name}", category=Category.MACHINE)
    if not machine.stack:
        raise MachineTerminated()
    if machine.frame.block is None:
        raise UndefinedBehavior("return from a function where caller did not specify next block")
@TERMINATORS.register(Intrinsic)
def exec_intrinsic(machine: Machine, term: Intrinsic) -> None:
    arguments = [machine.eval_value(arg) for arg in term.arguments]
    ret = machine.eval_place(term.ret) if term.ret is not None else None
    result = INTRINSICS.dispatch(term.intrinsic, machine, arguments)
    if result is None:
        result = (TupleValue(()), TupleType(fields=(), size=0))
    value, ty = result
    if ret is not None:
        ret_ptr, ret_ptype = ret
        if ret_ptype.ty != ty:
            raise UndefinedBehavior("invalid return type for intrinsic")
        machine.typed.typed_store(ret_ptr, value, ret_ptype)
    if term.next_block is None:
        raise UndefinedBehavior("return from an intrinsic where caller did not specify next block")
    machine.jump(term.next_block)
