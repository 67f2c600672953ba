"""Basic memory model for ubspectre.
Allocations are kept in creation order and never removed: freeing an
allocation only clears its ``live`` flag, so its identity can never be
handed out again and use-after-free / double-free stay detectable.
Every access goes through :meth:`BasicMemory.check_ptr`, which is the single
definition of what loads, stores and dereferenceability checks permit.
"""
from __future__ import annotations
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum, auto
from ubspectre.core.bytes import DEFAULT_TARGET, AbstractByte, AllocId, Pointer, Provenance, Target, uninit_bytes
from ubspectre.core.exceptions import SpecificationBug, UndefinedBehavior
from ubspectre.core.solver import AddressChooser, AddressConstraints, Z3AddressChooser
from ubspectre.core.types import PtrType, is_power_of_two
from ubspectre.logging import Category, get_logger
class AllocationKind(Enum):
    """Where an allocation came from."""
    STACK = auto()
    HEAP = auto()
    FUNCTION = auto()
@dataclass
class Allocation:
    """A contiguous region of abstract bytes."""
    alloc_id: AllocId
    contents: list[AbstractByte]
    addr: int
    align: int
    kind: AllocationKind = AllocationKind.STACK
    live: bool = True
    @property
    def size(self) -> int:
        return len(self.contents)
    @property
    def end(self) -> int:
        """One past the last byte."""
        return self.addr + self.size
    def __repr__(self) -> str:
        state = "live" if self.live else "dead"
        return f"Allocation({self.alloc_id!r}, {self.addr:#x}..{self.end:#x}, {self.kind.name.lower()}, {state})"
class BasicMemory:
    """Allocator and byte store keyed by ``AllocId``.
    Example:
        mem = BasicMemory()
        p = mem.allocate(4, 4)
        mem.store(p, raw_bytes([42, 0, 0, 0]), 4)
        mem.load(p, 4, 4)
    """
    def __init__(self, target: Target = DEFAULT_TARGET, chooser: AddressChooser | None = None) -> None:
        self.target = target
        self.chooser = chooser or Z3AddressChooser()
        self.allocations: list[Allocation] = []
        self._logger = get_logger()
    def valid_size(self, size: int) -> bool:
        return self.target.valid_size(size)
    def allocate(self, size: int, align: int, kind: AllocationKind = AllocationKind.STACK) -> Pointer:
        """Allocate ``size`` fresh uninitialized bytes at an ``align``-aligned address."""
        if not self.valid_size(size):
            raise UndefinedBehavior(f"invalid size for allocation: {size}")
        if not is_power_of_two(align):
            raise UndefinedBehavior(f"invalid alignment for allocation: {align}")
        constraints = AddressConstraints(
            size=size,
            align=align,
            limit=self.target.addr_limit,
            occupied=tuple((a.addr, a.end) for a in self.allocations if a.live),
        )
        addr = self.chooser.pick(constraints)
        if not constraints.admits(addr):
            raise SpecificationBug(f"address chooser returned inadmissible address {addr:#x}")
        alloc_id = AllocId(len(self.allocations))
        self.allocations.append(
            Allocation(alloc_id=alloc_id, contents=uninit_bytes(size), addr=addr, align=align, kind=kind)
        )
        self._logger.debug(f"allocate {alloc_id!r}: {size} bytes at {addr:#x} (align {align})", category=Category.MEMORY)
        return Pointer(addr, alloc_id)
    def deallocate(self, ptr: Pointer, size: int, align: int, kind: AllocationKind = AllocationKind.STACK) -> None:
        """Kill the allocation ``ptr`` points to the start of; ``kind`` must match how it was made."""
        if ptr.provenance is None:
            raise UndefinedBehavior("deallocating invalid pointer")
        alloc = self._allocation(ptr.provenance)
        if not alloc.live:
            raise UndefinedBehavior("double-free")
        if alloc.kind is not kind:
            raise UndefinedBehavior(
                f"deallocating {alloc.kind.name.lower()} memory with {kind.name.lower()} deallocation operation"
            )
        if ptr.addr != alloc.addr:
            raise UndefinedBehavior("deallocating with pointer not to the beginning of its allocation")
        if size != alloc.size:
            raise UndefinedBehavior("deallocating with incorrect size information")
        if align != alloc.align:
            raise UndefinedBehavior("deallocating with incorrect alignment information")
        alloc.live = False
        self._logger.debug(f"deallocate {alloc.alloc_id!r}", category=Category.MEMORY)
    def load(self, ptr: Pointer, length: int, align: int) -> list[AbstractByte]:
        alloc = self.check_ptr(ptr, length, align)
        if alloc is None:
            return []
        offset = ptr.addr - alloc.addr
        return alloc.contents[offset : offset + length]
    def store(self, ptr: Pointer, data: Sequence[AbstractByte], align: int) -> None:
        alloc = self.check_ptr(ptr, len(data), align)
        if alloc is None:
            return
        offset = ptr.addr - alloc.addr
        alloc.contents[offset : offset + len(data)] = data
    def dereferenceable(self, ptr: Pointer, size: int, align: int) -> None:
        """Raise UB unless ``size`` bytes at ``ptr`` could be accessed."""
        self.check_ptr(ptr, size, align)
    def retag_ptr(self, ptr: Pointer, ptr_type: PtrType, fn_entry: bool) -> Pointer:
        """Basic model: a retag only checks that the pointee is dereferenceable."""
        pointee = ptr_type.safe_pointee()
        if pointee is not None:
            self.dereferenceable(ptr, pointee.size, pointee.align)
        return ptr
    def check_ptr(self, ptr: Pointer, size: int, align: int) -> Allocation | None:
        """Validate an access; return the allocation it hits, or ``None`` for zero-sized ones."""
        if ptr.addr % align != 0:
            raise UndefinedBehavior("pointer is insufficiently aligned")
        if size == 0:
            return None
        if ptr.addr == 0:
            raise UndefinedBehavior("dereferencing null pointer")
        if ptr.provenance is None:
            raise UndefinedBehavior("non-zero-sized access with invalid pointer")
        alloc = self._allocation(ptr.provenance)
        if not alloc.live:
            raise UndefinedBehavior("dereferencing pointer to dead allocation")
        if ptr.addr < alloc.addr or ptr.addr + size > alloc.end:
            raise UndefinedBehavior("out-of-bounds memory access")
        return alloc
    def provenance_covers(self, provenance: Provenance, addr: int, one_past_end: bool = True) -> bool:
        """Whether ``addr`` lies within the live allocation of ``provenance``.

        The address one past the end counts unless ``one_past_end`` is false.
        """
        alloc = self._allocation(provenance)
        if not alloc.live or addr < alloc.addr:
            return False
        return addr <= alloc.end if one_past_end else addr < alloc.end
    def live_allocations(self) -> list[Allocation]:
        return [a for a in self.allocations if a.live]
    def _allocation(self, provenance: Provenance) -> Allocation:
        if not 0 <= provenance.index < len(self.allocations):
            raise SpecificationBug(f"provenance {provenance!r} does not name an allocation")
        return self.allocations[provenance.index]
    def __repr__(self) -> str:
        return f"BasicMemory({len(self.live_allocations())} live of {len(self.allocations)})"
__all__ = ["AllocationKind", "Allocation", "BasicMemory"]
