"""Value expression semantics."""
from __future__ import annotations
from typing import TYPE_CHECKING
from ubspectre.core.bytes import uninit_bytes
from ubspectre.core.exceptions import SpecificationBug, UndefinedBehavior
from ubspectre.core.representation import decode_discriminant, encode
from ubspectre.core.types import ArrayType, EnumType, FnPtr, TupleType, Type
from ubspectre.core.values import IntValue, PtrValue, TupleValue, UnionValue, Value, VariantValue, is_well_formed
from ubspectre.execution.dispatcher import BINARY_OPS, UNARY_OPS, VALUE_EXPRS
from ubspectre.lang.syntax import (
    AddrOf,
    BinOp,
    Constant,
    CreateRef,
    FnPointerConstant,
    GetDiscriminant,
    Load,
    TupleExpr,
    UnionExpr,
    UnOp,
    VariantExpr,
)
if TYPE_CHECKING:
    from ubspectre.execution.machine import Machine
@VALUE_EXPRS.register(Constant)
def eval_constant(machine: Machine, expr: Constant) -> tuple[Value, Type]:
    return expr.value, expr.ty
@VALUE_EXPRS.register(FnPointerConstant)
def eval_fn_pointer(machine: Machine, expr: FnPointerConstant) -> tuple[Value, Type]:
    """Address of a function; function pointers never carry provenance."""
    ptr = machine.fn_addrs.get(expr.name)
    if ptr is None:
        raise SpecificationBug(f"function {expr.name!r} does not exist")
    return PtrValue(ptr), FnPtr()
@VALUE_EXPRS.register(TupleExpr)
def eval_tuple(machine: Machine, expr: TupleExpr) -> tuple[Value, Type]:
    if not isinstance(expr.ty, (TupleType, ArrayType)):
        raise SpecificationBug(f"tuple expression at non-tuple type {expr.ty!r}")
    return TupleValue(tuple(machine.eval_value(f)[0] for f in expr.fields)), expr.ty
@VALUE_EXPRS.register(UnionExpr)
def eval_union(machine: Machine, expr: UnionExpr) -> tuple[Value, Type]:
    """Write one field into otherwise uninitialized union bytes."""
    value, _ = machine.eval_value(expr.expr)
    union_ty = expr.union_ty
    offset, field_ty = union_ty.field(expr.field)
    data = encode(field_ty, value, machine.target)
    buf = uninit_bytes(union_ty.size)
    buf[offset : offset + len(data)] = data
    chunks = tuple(tuple(buf[start : start + size]) for start, size in union_ty.chunks)
    return UnionValue(chunks), union_ty
@VALUE_EXPRS.register(VariantExpr)
def eval_variant(machine: Machine, expr: VariantExpr) -> tuple[Value, Type]:
    data, _ = machine.eval_value(expr.data)
    expr.enum_ty.variant(expr.discriminant)
    return VariantValue(expr.discriminant, data), expr.enum_ty
@VALUE_EXPRS.register(GetDiscriminant)
def eval_get_discriminant(machine: Machine, expr: GetDiscriminant) -> tuple[Value, Type]:
    """Read the active variant of an enum place from its tag bytes only."""
    ptr, ptype = machine.eval_place(expr.place)
    enum_ty = ptype.ty
    if not isinstance(enum_ty, EnumType):
        raise SpecificationBug(f"discriminant of non-enum type {enum_ty!r}")
    data = machine.memory.load(ptr, enum_ty.size, ptype.align)
    discriminant = decode_discriminant(enum_ty.discriminator, data, machine.target)
    if discriminant is None:
        raise UndefinedBehavior("encountered invalid enum discriminant")
    return IntValue(discriminant), enum_ty.discriminant_ty
@VALUE_EXPRS.register(Load)
def eval_load(machine: Machine, expr: Load) -> tuple[Value, Type]:
    ptr, ptype = machine.eval_place(expr.source)
    value = machine.typed.typed_load(ptr, ptype)
    if expr.destructive:
        machine.memory.store(ptr, uninit_bytes(ptype.byte_size(machine.target)), ptype.align)
    return value, ptype.ty
@VALUE_EXPRS.register(AddrOf)
def eval_addr_of(machine: Machine, expr: AddrOf) -> tuple[Value, Type]:
    ptr, _ = machine.eval_place(expr.target)
    return PtrValue(ptr), expr.ptr_ty
@VALUE_EXPRS.register(CreateRef)
def eval_create_ref(machine: Machine, expr: CreateRef) -> tuple[Value, Type]:
    """Like ``AddrOf``, but the result must be a valid pointer of its type."""
    ptr, _ = machine.eval_place(expr.target)
    value = PtrValue(ptr)
    if not is_well_formed(expr.ptr_ty, value, machine.target):
        raise UndefinedBehavior("creating an invalid reference")
    return value, expr.ptr_ty
@VALUE_EXPRS.register(UnOp)
def eval_unop(machine: Machine, expr: UnOp) -> tuple[Value, Type]:
    operand, ty = machine.eval_value(expr.operand)
    return UNARY_OPS.dispatch(expr.operator, machine, operand, ty)
@VALUE_EXPRS.register(BinOp)
def eval_binop(machine: Machine, expr: BinOp) -> tuple[Value, Type]:
    left, left_ty = machine.eval_value(expr.left)
    right, right_ty = machine.eval_value(expr.right)
    return BINARY_OPS.dispatch(expr.operator, machine, left, left_ty, right, right_ty)
