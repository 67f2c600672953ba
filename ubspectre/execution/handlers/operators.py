"""Unary and binary operator semantics.
Plain integer arithmetic wraps into the result width. Division and the
``*_UNCHECKED`` operators are UB when the mathematical result does not fit.
"""
from __future__ import annotations
from typing import TYPE_CHECKING
from ubspectre.core.exceptions import SpecificationBug, UndefinedBehavior
from ubspectre.core.representation import decode, encode
from ubspectre.core.types import BoolType, IntType, Type
from ubspectre.core.values import BoolValue, IntValue, PtrValue, Value, is_well_formed
from ubspectre.execution.dispatcher import BINARY_OPS, UNARY_OPS
from ubspectre.lang.syntax import (
    BoolBinOp,
    BoolUnOp,
    IntBinOp,
    IntToIntCast,
    IntToPtr,
    IntUnOp,
    PtrOffset,
    PtrToInt,
    RelOp,
    Transmute,
)
if TYPE_CHECKING:
    from ubspectre.execution.machine import Machine
def _int(value: Value, ty: Type) -> tuple[int, IntType]:
    if not isinstance(value, IntValue) or not isinstance(ty, IntType):
        raise SpecificationBug(f"expected an integer operand, got {value!r} at {ty!r}")
    return value.value, ty
def _bool(value: Value) -> bool:
    if not isinstance(value, BoolValue):
        raise SpecificationBug(f"expected a boolean operand, got {value!r}")
    return value.value
def _trunc_div(left: int, right: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(left) // abs(right)
    return quotient if (left < 0) == (right < 0) else -quotient
# ---------------------------------------------------------------------------
# Unary operators
# ---------------------------------------------------------------------------
@UNARY_OPS.register(IntUnOp)
def int_unop(machine: Machine, op: IntUnOp, operand: Value, ty: Type) -> tuple[Value, Type]:
    value, int_ty = _int(operand, ty)
    if op is IntUnOp.NEG:
        return IntValue(int_ty.wrap(-value)), int_ty
    return IntValue(int_ty.wrap(~value)), int_ty
@UNARY_OPS.register(BoolUnOp)
def bool_unop(machine: Machine, op: BoolUnOp, operand: Value, ty: Type) -> tuple[Value, Type]:
    return BoolValue(not _bool(operand)), BoolType()
@UNARY_OPS.register(IntToIntCast)
def int_cast(machine: Machine, op: IntToIntCast, operand: Value, ty: Type) -> tuple[Value, Type]:
    value, _ = _int(operand, ty)
    return IntValue(op.target.wrap(value)), op.target
@UNARY_OPS.register(Transmute)
def transmute(machine: Machine, op: Transmute, operand: Value, ty: Type) -> tuple[Value, Type]:
    """Reinterpret the bytes of a value at another type of the same size."""
    target = machine.target
    if ty.byte_size(target) != op.target.byte_size(target):
        raise UndefinedBehavior("transmute between types of different size")
    result = decode(op.target, encode(ty, operand, target), target)
    if result is None:
        raise UndefinedBehavior(f"transmuted value is not valid at type {op.target!r}")
    return result, op.target
@UNARY_OPS.register(PtrToInt)
def ptr_to_int(machine: Machine, op: PtrToInt, operand: Value, ty: Type) -> tuple[Value, Type]:
    if not isinstance(operand, PtrValue):
        raise SpecificationBug(f"pointer-to-integer cast of {operand!r}")
    addr = machine.intptrcast.ptr2int(operand.ptr)
    return IntValue(addr), IntType(signed=False, size=machine.target.ptr_size)
@UNARY_OPS.register(IntToPtr)
def int_to_ptr(machine: Machine, op: IntToPtr, operand: Value, ty: Type) -> tuple[Value, Type]:
    addr, _ = _int(operand, ty)
    if not machine.target.addr_in_bounds(addr):
        raise UndefinedBehavior(f"integer {addr} is not a valid address")
    ptr = machine.int2ptr(addr)
    result = PtrValue(ptr)
    if not is_well_formed(op.target, result, machine.target):
        raise UndefinedBehavior(f"integer-to-pointer cast produced an invalid {op.target!r}")
    return result, op.target
# ---------------------------------------------------------------------------
# Binary operators
# ---------------------------------------------------------------------------
_UNCHECKED_NAMES = {
    IntBinOp.ADD_UNCHECKED: "add",
    IntBinOp.SUB_UNCHECKED: "sub",
    IntBinOp.MUL_UNCHECKED: "mul",
    IntBinOp.SHL_UNCHECKED: "shl",
    IntBinOp.SHR_UNCHECKED: "shr",
}
def _shift(op: IntBinOp, value: int, amount: int, ty: IntType) -> int:
    if op in (IntBinOp.SHL, IntBinOp.SHL_UNCHECKED):
        return ty.wrap(value << amount)
    # Python's >> is arithmetic on negative ints and logical on the rest.
    return ty.wrap(value >> amount)
def eval_int_binop(op: IntBinOp, left: int, right: int, ty: IntType) -> int:
    """Result of ``left op right`` at ``ty``; raises UB where the operation does."""
    if op is IntBinOp.ADD:
        return ty.wrap(left + right)
    if op is IntBinOp.SUB:
        return ty.wrap(left - right)
    if op is IntBinOp.MUL:
        return ty.wrap(left * right)
    if op in (IntBinOp.DIV, IntBinOp.REM):
        if right == 0:
            raise UndefinedBehavior("division by zero")
        quotient = _trunc_div(left, right)
        if not ty.can_represent(quotient):
            raise UndefinedBehavior("overflow in division")
        return quotient if op is IntBinOp.DIV else left - right * quotient
    if op in (IntBinOp.SHL, IntBinOp.SHR):
        return _shift(op, left, right % ty.bits, ty)
    if op is IntBinOp.BIT_AND:
        return ty.wrap(left & right)
    if op is IntBinOp.BIT_OR:
        return ty.wrap(left | right)
    if op is IntBinOp.BIT_XOR:
        return ty.wrap(left ^ right)
    if op in (IntBinOp.SHL_UNCHECKED, IntBinOp.SHR_UNCHECKED):
        if not 0 <= right < ty.bits:
            raise UndefinedBehavior(f"overflow in unchecked {_UNCHECKED_NAMES[op]}")
        return _shift(op, left, right, ty)
    if op in (IntBinOp.ADD_UNCHECKED, IntBinOp.SUB_UNCHECKED, IntBinOp.MUL_UNCHECKED):
        exact = {
            IntBinOp.ADD_UNCHECKED: left + right,
            IntBinOp.SUB_UNCHECKED: left - right,
            IntBinOp.MUL_UNCHECKED: left * right,
        }[op]
        if not ty.can_represent(exact):
            raise UndefinedBehavior(f"overflow in unchecked {_UNCHECKED_NAMES[op]}")
        return exact
    raise SpecificationBug(f"unknown integer operator {op!r}")
@BINARY_OPS.register(IntBinOp)
def int_binop(
    machine: Machine, op: IntBinOp, left: Value, left_ty: Type, right: Value, right_ty: Type
) -> tuple[Value, Type]:
    lhs, ty = _int(left, left_ty)
    rhs, _ = _int(right, right_ty)
    return IntValue(eval_int_binop(op, lhs, rhs, ty)), ty
def _comparable(value: Value) -> int:
    if isinstance(value, IntValue):
        return value.value
    if isinstance(value, BoolValue):
        return int(value.value)
    if isinstance(value, PtrValue):
        return value.ptr.addr
    raise SpecificationBug(f"cannot compare {value!r}")
@BINARY_OPS.register(RelOp)
def rel_op(
    machine: Machine, op: RelOp, left: Value, left_ty: Type, right: Value, right_ty: Type
) -> tuple[Value, Type]:
    """Comparisons; pointers compare by address only."""
    lhs, rhs = _comparable(left), _comparable(right)
    if op is RelOp.CMP:
        return IntValue((lhs > rhs) - (lhs < rhs)), IntType(signed=True, size=1)
    result = {
        RelOp.LT: lhs < rhs,
        RelOp.LE: lhs <= rhs,
        RelOp.GT: lhs > rhs,
        RelOp.GE: lhs >= rhs,
        RelOp.EQ: lhs == rhs,
        RelOp.NE: lhs != rhs,
    }[op]
    return BoolValue(result), BoolType()
@BINARY_OPS.register(BoolBinOp)
def bool_binop(
    machine: Machine, op: BoolBinOp, left: Value, left_ty: Type, right: Value, right_ty: Type
) -> tuple[Value, Type]:
    lhs, rhs = _bool(left), _bool(right)
    if op is BoolBinOp.AND:
        result = lhs and rhs
    elif op is BoolBinOp.OR:
        result = lhs or rhs
    else:
        result = lhs != rhs
    return BoolValue(result), BoolType()
@BINARY_OPS.register(PtrOffset)
def ptr_offset(
    machine: Machine, op: PtrOffset, left: Value, left_ty: Type, right: Value, right_ty: Type
) -> tuple[Value, Type]:
    if not isinstance(left, PtrValue):
        raise SpecificationBug(f"pointer offset on {left!r}")
    offset, _ = _int(right, right_ty)
    if op.inbounds:
        ptr = machine.ptr_offset_inbounds(left.ptr, offset)
    else:
        ptr = left.ptr.wrapping_offset(offset, machine.target)
    return PtrValue(ptr), left_ty
