"""High-level values of the instruction language."""

from __future__ import annotations

from dataclasses import dataclass

from ubspectre.core.bytes import (
    DEFAULT_TARGET,
    AbstractByte,
    Pointer,
    Target,
    bytes_le,
)
from ubspectre.core.types import (
    ArrayType,
    BoolType,
    EnumType,
    IntType,
    PtrType,
    TupleType,
    Type,
    UnionType,
)


class Value:
    """Base class of all values."""


@dataclass(frozen=True)
class IntValue(Value):
    value: int

    def __repr__(self) -> str:
        return f"Int({self.value})"


@dataclass(frozen=True)
class BoolValue(Value):
    value: bool

    def __repr__(self) -> str:
        return f"Bool({self.value})"


@dataclass(frozen=True)
class PtrValue(Value):
    ptr: Pointer

    def __repr__(self) -> str:
        return f"Ptr({self.ptr!r})"


@dataclass(frozen=True)
class TupleValue(Value):
    """Tuple, struct or array contents, in field order."""

    elems: tuple[Value, ...]


@dataclass(frozen=True)
class UnionValue(Value):
    """The preserved chunks of a union, verbatim."""

    chunks: tuple[tuple[AbstractByte, ...], ...]


@dataclass(frozen=True)
class VariantValue(Value):
    discriminant: int
    data: Value


def is_well_formed(ty: Type, value: Value, target: Target = DEFAULT_TARGET) -> bool:
    """Whether ``value`` is a legal inhabitant of ``ty``.

    ``encode`` may only be called on well-formed values.
    """
    if isinstance(ty, BoolType):
        return isinstance(value, BoolValue)
    if isinstance(ty, IntType):
        return isinstance(value, IntValue) and ty.can_represent(value.value)
    if isinstance(ty, PtrType):
        if not isinstance(value, PtrValue) or not target.addr_in_bounds(value.ptr.addr):
            return False
        pointee = ty.safe_pointee()
        if pointee is None:
            return True
        return pointee.inhabited and value.ptr.addr != 0 and value.ptr.addr % pointee.align == 0
    if isinstance(ty, TupleType):
        return (
            isinstance(value, TupleValue)
            and len(value.elems) == len(ty.fields)
            and all(is_well_formed(fty, v, target) for (_, fty), v in zip(ty.fields, value.elems))
        )
    if isinstance(ty, ArrayType):
        return (
            isinstance(value, TupleValue)
            and len(value.elems) == ty.count
            and all(is_well_formed(ty.elem, v, target) for v in value.elems)
        )
    if isinstance(ty, UnionType):
        return (
            isinstance(value, UnionValue)
            and len(value.chunks) == len(ty.chunks)
            and all(len(data) == size for (_, size), data in zip(ty.chunks, value.chunks))
        )
    if isinstance(ty, EnumType):
        if not isinstance(value, VariantValue):
            return False
        if not 0 <= value.discriminant < len(ty.variants):
            return False
        return is_well_formed(ty.variants[value.discriminant].ty, value.data, target)
    return False


def value_le(lhs: Value, rhs: Value) -> bool:
    """Structural lifting of the byte defined-ness order to values."""
    if isinstance(lhs, (IntValue, BoolValue)):
        return lhs == rhs
    if isinstance(lhs, PtrValue):
        if not isinstance(rhs, PtrValue) or lhs.ptr.addr != rhs.ptr.addr:
            return False
        return lhs.ptr.provenance is None or lhs.ptr.provenance == rhs.ptr.provenance
    if isinstance(lhs, TupleValue):
        return (
            isinstance(rhs, TupleValue)
            and len(lhs.elems) == len(rhs.elems)
            and all(value_le(a, b) for a, b in zip(lhs.elems, rhs.elems))
        )
    if isinstance(lhs, UnionValue):
        return (
            isinstance(rhs, UnionValue)
            and len(lhs.chunks) == len(rhs.chunks)
            and all(bytes_le(a, b) for a, b in zip(lhs.chunks, rhs.chunks))
        )
    if isinstance(lhs, VariantValue):
        return (
            isinstance(rhs, VariantValue)
            and lhs.discriminant == rhs.discriminant
            and value_le(lhs.data, rhs.data)
        )
    return False


def option_value_le(lhs: Value | None, rhs: Value | None) -> bool:
    """``None`` is below every value."""
    if lhs is None:
        return True
    if rhs is None:
        return False
    return value_le(lhs, rhs)


__all__ = [
    "Value",
    "IntValue",
    "BoolValue",
    "PtrValue",
    "TupleValue",
    "UnionValue",
    "VariantValue",
    "is_well_formed",
    "value_le",
    "option_value_le",
]
