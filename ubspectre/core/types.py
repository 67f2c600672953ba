"""Types of the instruction language.

Types are immutable trees. Every type knows its byte size (given a
``Target``, since pointers depend on it) and whether it is inhabited.
Enum types additionally carry a ``Discriminator`` decision tree telling the
representation relation how to recover the active variant from raw bytes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from ubspectre.core.bytes import DEFAULT_TARGET, Target
from ubspectre.core.exceptions import SpecificationBug


class Mutability(Enum):
    """Mutability of a reference."""

    IMMUTABLE = auto()
    MUTABLE = auto()


def is_power_of_two(n: int) -> bool:
    return n > 0 and n & (n - 1) == 0


def restrict_align_for_offset(align: int, offset: int) -> int:
    """Alignment still guaranteed at ``offset`` bytes into an ``align``-aligned place."""
    if offset == 0:
        return align
    return min(align, offset & -offset)


class Type:
    """Base class of all types."""

    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        raise NotImplementedError

    def inhabited(self) -> bool:
        return True


@dataclass(frozen=True)
class BoolType(Type):
    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        return 1

    def __repr__(self) -> str:
        return "bool"


@dataclass(frozen=True)
class IntType(Type):
    """A fixed-width integer type; ``size`` is in bytes."""

    signed: bool
    size: int

    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        return self.size

    @property
    def bits(self) -> int:
        return self.size * 8

    @property
    def min(self) -> int:
        return -(1 << (self.bits - 1)) if self.signed else 0

    @property
    def max(self) -> int:
        return (1 << (self.bits - 1)) - 1 if self.signed else (1 << self.bits) - 1

    def can_represent(self, value: int) -> bool:
        return self.min <= value <= self.max

    def wrap(self, value: int) -> int:
        """Bring ``value`` into range by two's-complement wraparound."""
        value %= 1 << self.bits
        if self.signed and value > self.max:
            value -= 1 << self.bits
        return value

    def __repr__(self) -> str:
        return f"{'i' if self.signed else 'u'}{self.bits}"


@dataclass(frozen=True)
class PointeeInfo:
    """What a safe pointer may point to, without describing the full pointee."""

    size: int
    align: int
    inhabited: bool = True
    freeze: bool = True


class PtrType(Type):
    """Base class of the pointer types."""

    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        return target.ptr_size

    def safe_pointee(self) -> PointeeInfo | None:
        """Layout a valid pointer of this type must point to, if any."""
        return None


@dataclass(frozen=True)
class RefPtr(PtrType):
    mutbl: Mutability
    pointee: PointeeInfo

    def safe_pointee(self) -> PointeeInfo | None:
        return self.pointee

    def __repr__(self) -> str:
        return "&mut" if self.mutbl is Mutability.MUTABLE else "&"


@dataclass(frozen=True)
class BoxPtr(PtrType):
    pointee: PointeeInfo

    def safe_pointee(self) -> PointeeInfo | None:
        return self.pointee

    def __repr__(self) -> str:
        return "Box"


@dataclass(frozen=True)
class RawPtr(PtrType):
    def __repr__(self) -> str:
        return "*raw"


# Function pointers must be non-null but point at nothing sized.
_FN_POINTEE = PointeeInfo(size=0, align=1, inhabited=True, freeze=True)


@dataclass(frozen=True)
class FnPtr(PtrType):
    def safe_pointee(self) -> PointeeInfo | None:
        return _FN_POINTEE

    def __repr__(self) -> str:
        return "fn()"


@dataclass(frozen=True)
class TupleType(Type):
    """Structs and tuples: fields at explicit offsets, padding elsewhere."""

    fields: tuple[tuple[int, Type], ...]
    size: int

    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        return self.size

    def inhabited(self) -> bool:
        return all(ty.inhabited() for _, ty in self.fields)

    def field(self, index: int) -> tuple[int, Type]:
        if not 0 <= index < len(self.fields):
            raise SpecificationBug(f"tuple has no field {index}")
        return self.fields[index]


@dataclass(frozen=True)
class ArrayType(Type):
    elem: Type
    count: int

    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        return self.elem.byte_size(target) * self.count

    def inhabited(self) -> bool:
        return self.count == 0 or self.elem.inhabited()


@dataclass(frozen=True)
class UnionType(Type):
    """Unions preserve only the bytes in ``chunks``; fields are for projection."""

    fields: tuple[tuple[int, Type], ...]
    chunks: tuple[tuple[int, int], ...]
    size: int

    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        return self.size

    def field(self, index: int) -> tuple[int, Type]:
        if not 0 <= index < len(self.fields):
            raise SpecificationBug(f"union has no field {index}")
        return self.fields[index]


class Discriminator:
    """Decision tree recovering an enum discriminant from its bytes."""


@dataclass(frozen=True)
class KnownDiscriminant(Discriminator):
    value: int


@dataclass(frozen=True)
class InvalidDiscriminant(Discriminator):
    pass


@dataclass(frozen=True)
class BranchDiscriminator(Discriminator):
    """Read a ``value_type`` integer at ``offset`` and continue by range.

    ``children`` maps half-open ``(start, end)`` ranges to sub-trees;
    ``fallback`` is used when no range contains the value read.
    """

    offset: int
    value_type: IntType
    children: tuple[tuple[tuple[int, int], Discriminator], ...]
    fallback: Discriminator

    def child_for(self, value: int) -> Discriminator:
        for (start, end), child in self.children:
            if start <= value < end:
                return child
        return self.fallback


@dataclass(frozen=True)
class Variant:
    """An enum variant: a payload type spanning the whole enum, plus its tag.

    ``tagger`` lists ``(offset, int_type, value)`` writes that mark this
    variant as active.
    """

    ty: Type
    tagger: tuple[tuple[int, IntType, int], ...] = ()


@dataclass(frozen=True)
class EnumType(Type):
    variants: tuple[Variant, ...]
    discriminator: Discriminator
    discriminant_ty: IntType
    size: int

    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        return self.size

    def inhabited(self) -> bool:
        return any(v.ty.inhabited() for v in self.variants)

    def variant(self, discriminant: int) -> Variant:
        if not 0 <= discriminant < len(self.variants):
            raise SpecificationBug(f"enum has no variant {discriminant}")
        return self.variants[discriminant]


@dataclass(frozen=True)
class PlaceType:
    """A type together with the alignment the place is known to have."""

    ty: Type
    align: int

    def byte_size(self, target: Target = DEFAULT_TARGET) -> int:
        return self.ty.byte_size(target)


__all__ = [
    "Mutability",
    "is_power_of_two",
    "restrict_align_for_offset",
    "Type",
    "BoolType",
    "IntType",
    "PointeeInfo",
    "PtrType",
    "RefPtr",
    "BoxPtr",
    "RawPtr",
    "FnPtr",
    "TupleType",
    "ArrayType",
    "UnionType",
    "Discriminator",
    "KnownDiscriminant",
    "InvalidDiscriminant",
    "BranchDiscriminator",
    "Variant",
    "EnumType",
    "PlaceType",
]
