"""Abstract bytes, pointers and the target byte codec.

This module holds the foundational data every other layer is built on:

- ``AllocId``: the provenance handed out by the memory model.
- ``AbstractByte``: one byte of memory, either uninitialized or an
  initialized ``u8`` with optional provenance.
- ``Pointer``: an address plus optional provenance.
- ``Endianness`` / ``Target``: how integers are laid out in bytes and how
  wide pointers are.

It also defines the *defined-ness* order over bytes. ``Uninit`` is below
everything; an initialized byte without provenance is below the same byte
with provenance.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from ubspectre.core.exceptions import SpecificationBug


@dataclass(frozen=True, order=True)
class AllocId:
    """Stable identity of an allocation. Assigned once, never reused."""

    index: int

    def __repr__(self) -> str:
        return f"alloc{self.index}"


Provenance = AllocId


@dataclass(frozen=True)
class AbstractByte:
    """A byte of abstract memory.

    ``data is None`` means the byte is uninitialized; uninitialized bytes
    never carry provenance.
    """

    data: int | None = None
    provenance: Provenance | None = None

    @classmethod
    def init(cls, data: int, provenance: Provenance | None = None) -> AbstractByte:
        if not 0 <= data < 256:
            raise SpecificationBug(f"byte value out of range: {data}")
        return cls(data=data, provenance=provenance)

    @property
    def is_init(self) -> bool:
        return self.data is not None

    def __repr__(self) -> str:
        if self.data is None:
            return "Uninit"
        if self.provenance is None:
            return f"Init({self.data})"
        return f"Init({self.data}, {self.provenance!r})"


UNINIT = AbstractByte()


def uninit_bytes(size: int) -> list[AbstractByte]:
    """A fresh list of ``size`` uninitialized bytes."""
    return [UNINIT] * size


def raw_bytes(data: Sequence[int], provenance: Provenance | None = None) -> list[AbstractByte]:
    """Wrap raw ``u8`` values as initialized abstract bytes."""
    return [AbstractByte.init(b, provenance) for b in data]


def byte_le(lhs: AbstractByte, rhs: AbstractByte) -> bool:
    """``lhs`` is at most as defined as ``rhs``."""
    if not lhs.is_init:
        return True
    if not rhs.is_init or lhs.data != rhs.data:
        return False
    return lhs.provenance is None or lhs.provenance == rhs.provenance


def bytes_le(lhs: Sequence[AbstractByte], rhs: Sequence[AbstractByte]) -> bool:
    """Bytewise lifting of :func:`byte_le`; lists of different length are unrelated."""
    return len(lhs) == len(rhs) and all(byte_le(a, b) for a, b in zip(lhs, rhs))


@dataclass(frozen=True)
class Pointer:
    """An address with an optional capability tag.

    Pointers never own memory. A pointer without provenance may only be
    used for zero-sized accesses.
    """

    addr: int
    provenance: Provenance | None = None

    def wrapping_offset(self, offset: int, target: Target) -> Pointer:
        return Pointer(target.wrap_addr(self.addr + offset), self.provenance)

    def __repr__(self) -> str:
        prov = f"[{self.provenance!r}]" if self.provenance is not None else ""
        return f"{self.addr:#x}{prov}"


class Endianness(Enum):
    """Byte order used to encode integers."""

    LITTLE = "little"
    BIG = "big"

    def encode(self, value: int, size: int, signed: bool) -> list[int]:
        """Raw bytes of ``value``; the value must fit ``size`` bytes."""
        try:
            return list(value.to_bytes(size, self.value, signed=signed))
        except OverflowError as e:
            raise SpecificationBug(
                f"integer {value} does not fit {size} {'signed' if signed else 'unsigned'} bytes"
            ) from e

    def decode(self, data: Sequence[int], signed: bool) -> int:
        return int.from_bytes(bytes(data), self.value, signed=signed)


@dataclass(frozen=True)
class Target:
    """Machine parameters: pointer width (in bytes) and byte order."""

    ptr_size: int = 8
    endianness: Endianness = Endianness.LITTLE

    @property
    def ptr_bits(self) -> int:
        return self.ptr_size * 8

    @property
    def addr_limit(self) -> int:
        """One past the largest address."""
        return 1 << self.ptr_bits

    @property
    def isize_max(self) -> int:
        return (1 << (self.ptr_bits - 1)) - 1

    @property
    def isize_min(self) -> int:
        return -(1 << (self.ptr_bits - 1))

    def addr_in_bounds(self, addr: int) -> bool:
        return 0 <= addr < self.addr_limit

    def isize_in_bounds(self, value: int) -> bool:
        return self.isize_min <= value <= self.isize_max

    def wrap_addr(self, addr: int) -> int:
        return addr % self.addr_limit

    def valid_size(self, size: int) -> bool:
        """Sizes must be non-negative and fit ``isize``."""
        return 0 <= size <= self.isize_max


DEFAULT_TARGET = Target()

__all__ = [
    "AllocId",
    "Provenance",
    "AbstractByte",
    "UNINIT",
    "uninit_bytes",
    "raw_bytes",
    "byte_le",
    "bytes_le",
    "Pointer",
    "Endianness",
    "Target",
    "DEFAULT_TARGET",
]
