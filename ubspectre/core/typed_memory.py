"""Typed access to memory: the memory model composed with the representation relation."""

from __future__ import annotations

from enum import Enum, auto

from ubspectre.core.bytes import Pointer, Target
from ubspectre.core.exceptions import UndefinedBehavior
from ubspectre.core.memory import BasicMemory
from ubspectre.core.representation import decode, encode
from ubspectre.core.types import ArrayType, EnumType, PlaceType, PtrType, TupleType, Type
from ubspectre.core.values import (
    PtrValue,
    TupleValue,
    Value,
    VariantValue,
    is_well_formed,
)


class Atomicity(Enum):
    """Concurrency tag on typed accesses.

    Carried through for a richer memory model; the basic model ignores it.
    """

    NONE = auto()
    ATOMIC = auto()


class TypedMemory:
    """Load and store typed values, validating them on the way."""

    def __init__(self, memory: BasicMemory) -> None:
        self.memory = memory

    @property
    def target(self) -> Target:
        return self.memory.target

    def typed_load(self, ptr: Pointer, ptype: PlaceType, atomicity: Atomicity = Atomicity.NONE) -> Value:
        data = self.memory.load(ptr, ptype.byte_size(self.target), ptype.align)
        value = decode(ptype.ty, data, self.target)
        if value is None:
            raise UndefinedBehavior(
                f"load at type {ptype.ty!r} but the data in memory violates the validity invariant"
            )
        return value

    def typed_store(
        self,
        ptr: Pointer,
        value: Value,
        ptype: PlaceType,
        atomicity: Atomicity = Atomicity.NONE,
    ) -> None:
        if not is_well_formed(ptype.ty, value, self.target):
            raise UndefinedBehavior(f"storing a value that is not valid at type {ptype.ty!r}")
        self.memory.store(ptr, encode(ptype.ty, value, self.target), ptype.align)

    def retag_val(self, value: Value, ty: Type, fn_entry: bool) -> Value:
        """Retag every pointer stored inside ``value``."""
        if isinstance(ty, PtrType) and isinstance(value, PtrValue):
            return PtrValue(self.memory.retag_ptr(value.ptr, ty, fn_entry))
        if isinstance(ty, TupleType) and isinstance(value, TupleValue):
            return TupleValue(
                tuple(
                    self.retag_val(elem, field_ty, fn_entry)
                    for (_, field_ty), elem in zip(ty.fields, value.elems)
                )
            )
        if isinstance(ty, ArrayType) and isinstance(value, TupleValue):
            return TupleValue(tuple(self.retag_val(elem, ty.elem, fn_entry) for elem in value.elems))
        if isinstance(ty, EnumType) and isinstance(value, VariantValue):
            variant_ty = ty.variant(value.discriminant).ty
            return VariantValue(value.discriminant, self.retag_val(value.data, variant_ty, fn_entry))
        return value


__all__ = ["Atomicity", "TypedMemory"]
