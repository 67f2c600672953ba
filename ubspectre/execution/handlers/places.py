"""Place expression semantics.
Every place evaluates to a pointer plus the type and alignment the place is
known to have. Projections move the pointer with in-bounds arithmetic, so a
projection out of a dangling or too-small place is already UB.
"""
from __future__ import annotations
from typing import TYPE_CHECKING
from ubspectre.core.bytes import Pointer
from ubspectre.core.exceptions import SpecificationBug, UndefinedBehavior
from ubspectre.core.types import (
    ArrayType,
    EnumType,
    PlaceType,
    TupleType,
    UnionType,
    restrict_align_for_offset,
)
from ubspectre.core.values import IntValue, PtrValue
from ubspectre.execution.dispatcher import PLACE_EXPRS
from ubspectre.lang.syntax import Deref, Downcast, Field, Index, Local
if TYPE_CHECKING:
    from ubspectre.execution.machine import Machine
@PLACE_EXPRS.register(Local)
def eval_local(machine: Machine, place: Local) -> tuple[Pointer, PlaceType]:
    ptr = machine.local_ptr(place.name)
    return ptr, machine.local_type(machine.frame, place.name)
@PLACE_EXPRS.register(Deref)
def eval_deref(machine: Machine, place: Deref) -> tuple[Pointer, PlaceType]:
    """The pointer is not checked here; accesses through the place are."""
    value, _ = machine.eval_value(place.operand)
    if not isinstance(value, PtrValue):
        raise SpecificationBug(f"dereferencing non-pointer value {value!r}")
    return value.ptr, place.ptype
@PLACE_EXPRS.register(Field)
def eval_field(machine: Machine, place: Field) -> tuple[Pointer, PlaceType]:
    root, root_ptype = machine.eval_place(place.root)
    ty = root_ptype.ty
    if not isinstance(ty, (TupleType, UnionType)):
        raise SpecificationBug(f"field projection on {ty!r}")
    offset, field_ty = ty.field(place.field)
    ptr = machine.ptr_offset_inbounds(root, offset)
    return ptr, PlaceType(field_ty, restrict_align_for_offset(root_ptype.align, offset))
@PLACE_EXPRS.register(Index)
def eval_index(machine: Machine, place: Index) -> tuple[Pointer, PlaceType]:
    root, root_ptype = machine.eval_place(place.root)
    index, _ = machine.eval_value(place.index)
    ty = root_ptype.ty
    if not isinstance(ty, ArrayType):
        raise SpecificationBug(f"index projection on {ty!r}")
    if not isinstance(index, IntValue):
        raise SpecificationBug(f"non-integer index {index!r}")
    if not 0 <= index.value < ty.count:
        raise UndefinedBehavior("out-of-bounds array access")
    elem_size = ty.elem.byte_size(machine.target)
    ptr = machine.ptr_offset_inbounds(root, index.value * elem_size)
    return ptr, PlaceType(ty.elem, restrict_align_for_offset(root_ptype.align, elem_size))
@PLACE_EXPRS.register(Downcast)
def eval_downcast(machine: Machine, place: Downcast) -> tuple[Pointer, PlaceType]:
    """View an enum place as one variant's payload; no discriminant check."""
    root, root_ptype = machine.eval_place(place.root)
    ty = root_ptype.ty
    if not isinstance(ty, EnumType):
        raise SpecificationBug(f"downcast of non-enum type {ty!r}")
    return root, PlaceType(ty.variant(place.discriminant).ty, root_ptype.align)
