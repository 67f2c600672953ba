"""The representation relation: typed values <-> abstract bytes.

``decode(ty, bytes)`` returns the value the bytes represent at ``ty``, or
``None`` if they violate the type's validity invariant. ``encode(ty, value)``
returns the canonical bytes of a well-formed value.

The pair satisfies, for all well-formed ``v`` and all byte lists ``b``:

- ``decode(ty, encode(ty, v)) == v``
- ``decode(ty, b) == v`` implies ``bytes_le(encode(ty, v), b)``
- both directions are monotone in the defined-ness order

Padding is never preserved: encoding a tuple writes ``Uninit`` everywhere a
field does not cover.
"""

from __future__ import annotations

from collections.abc import Sequence

from ubspectre.core.bytes import (
    DEFAULT_TARGET,
    AbstractByte,
    Pointer,
    Target,
    raw_bytes,
    uninit_bytes,
)
from ubspectre.core.exceptions import SpecificationBug
from ubspectre.core.types import (
    ArrayType,
    BoolType,
    BranchDiscriminator,
    Discriminator,
    EnumType,
    IntType,
    InvalidDiscriminant,
    KnownDiscriminant,
    PtrType,
    TupleType,
    Type,
    UnionType,
    Variant,
)
from ubspectre.core.values import (
    BoolValue,
    IntValue,
    PtrValue,
    TupleValue,
    UnionValue,
    Value,
    VariantValue,
    is_well_formed,
)


def decode(ty: Type, data: Sequence[AbstractByte], target: Target = DEFAULT_TARGET) -> Value | None:
    """Interpret ``data`` at type ``ty``; ``None`` if the bytes are invalid."""
    if len(data) != ty.byte_size(target):
        return None
    if isinstance(ty, BoolType):
        byte = data[0]
        if byte.data == 0:
            return BoolValue(False)
        if byte.data == 1:
            return BoolValue(True)
        return None
    if isinstance(ty, IntType):
        value = decode_int(ty, data, target)
        return None if value is None else IntValue(value)
    if isinstance(ty, PtrType):
        return _decode_ptr(ty, data, target)
    if isinstance(ty, TupleType):
        elems = []
        for offset, field_ty in ty.fields:
            field_size = field_ty.byte_size(target)
            value = decode(field_ty, data[offset : offset + field_size], target)
            if value is None:
                return None
            elems.append(value)
        return TupleValue(tuple(elems))
    if isinstance(ty, ArrayType):
        elem_size = ty.elem.byte_size(target)
        elems = []
        for i in range(ty.count):
            value = decode(ty.elem, data[i * elem_size : (i + 1) * elem_size], target)
            if value is None:
                return None
            elems.append(value)
        return TupleValue(tuple(elems))
    if isinstance(ty, UnionType):
        return UnionValue(
            tuple(tuple(data[offset : offset + size]) for offset, size in ty.chunks)
        )
    if isinstance(ty, EnumType):
        discriminant = decode_discriminant(ty.discriminator, data, target)
        if discriminant is None:
            return None
        payload = decode(ty.variant(discriminant).ty, data, target)
        if payload is None:
            return None
        return VariantValue(discriminant, payload)
    raise SpecificationBug(f"decode: unsupported type {ty!r}")


def decode_int(ty: IntType, data: Sequence[AbstractByte], target: Target = DEFAULT_TARGET) -> int | None:
    if len(data) != ty.size or not all(b.is_init for b in data):
        return None
    return target.endianness.decode([b.data for b in data], ty.signed)


def _decode_ptr(ty: PtrType, data: Sequence[AbstractByte], target: Target) -> Value | None:
    if not all(b.is_init for b in data):
        return None
    addr = target.endianness.decode([b.data for b in data], signed=False)
    # Mixed provenance degrades to no provenance.
    provenances = {b.provenance for b in data}
    provenance = provenances.pop() if len(provenances) == 1 else None
    pointee = ty.safe_pointee()
    if pointee is not None:
        if not pointee.inhabited or addr == 0 or addr % pointee.align != 0:
            return None
    return PtrValue(Pointer(addr, provenance))


def decode_discriminant(
    discriminator: Discriminator,
    data: Sequence[AbstractByte],
    target: Target = DEFAULT_TARGET,
) -> int | None:
    """Walk ``discriminator`` over ``data``; ``None`` if no variant is active."""
    while True:
        if isinstance(discriminator, KnownDiscriminant):
            return discriminator.value
        if isinstance(discriminator, InvalidDiscriminant):
            return None
        if isinstance(discriminator, BranchDiscriminator):
            size = discriminator.value_type.size
            value = decode_int(
                discriminator.value_type,
                data[discriminator.offset : discriminator.offset + size],
                target,
            )
            if value is None:
                return None
            discriminator = discriminator.child_for(value)
            continue
        raise SpecificationBug(f"unknown discriminator {discriminator!r}")


def encode(ty: Type, value: Value, target: Target = DEFAULT_TARGET) -> list[AbstractByte]:
    """Canonical bytes of ``value`` at ``ty``. ``value`` must be well-formed."""
    if not is_well_formed(ty, value, target):
        raise SpecificationBug(f"encode: {value!r} is not a well-formed value of {ty!r}")
    return _encode(ty, value, target)


def _encode(ty: Type, value: Value, target: Target) -> list[AbstractByte]:
    if isinstance(ty, BoolType):
        return raw_bytes([int(value.value)])
    if isinstance(ty, IntType):
        # Integers never carry provenance.
        return raw_bytes(target.endianness.encode(value.value, ty.size, ty.signed))
    if isinstance(ty, PtrType):
        ptr = value.ptr
        return raw_bytes(
            target.endianness.encode(ptr.addr, target.ptr_size, signed=False), ptr.provenance
        )
    if isinstance(ty, TupleType):
        buf = uninit_bytes(ty.size)
        for (offset, field_ty), elem in zip(ty.fields, value.elems):
            field_bytes = _encode(field_ty, elem, target)
            buf[offset : offset + len(field_bytes)] = field_bytes
        return buf
    if isinstance(ty, ArrayType):
        buf: list[AbstractByte] = []
        for elem in value.elems:
            buf.extend(_encode(ty.elem, elem, target))
        return buf
    if isinstance(ty, UnionType):
        buf = uninit_bytes(ty.size)
        for (offset, size), chunk in zip(ty.chunks, value.chunks):
            buf[offset : offset + size] = chunk
        return buf
    if isinstance(ty, EnumType):
        variant = ty.variant(value.discriminant)
        buf = _encode(variant.ty, value.data, target)
        write_tag(variant, buf, target)
        return buf
    raise SpecificationBug(f"encode: unsupported type {ty!r}")


def write_tag(variant: Variant, buf: list[AbstractByte], target: Target = DEFAULT_TARGET) -> None:
    """Overlay the variant's tag writes onto ``buf`` in place."""
    for offset, int_ty, tag in variant.tagger:
        buf[offset : offset + int_ty.size] = raw_bytes(
            target.endianness.encode(tag, int_ty.size, int_ty.signed)
        )


__all__ = [
    "decode",
    "decode_int",
    "decode_discriminant",
    "encode",
    "write_tag",
]
