import pytest
from hypothesis import settings

from ubspectre.core.bytes import UNINIT, AbstractByte, AllocId, Pointer, Target, raw_bytes
from ubspectre.core.exceptions import NoValidChoice, SpecificationBug, UndefinedBehavior
from ubspectre.core.memory import AllocationKind, BasicMemory
from ubspectre.core.representation import decode
from ubspectre.core.solver import AddressStrategy, Z3AddressChooser
from ubspectre.core.types import BoolType
from ubspectre.core.values import BoolValue, IntValue
from ubspectre.lang import build as b
from ubspectre.testing.fuzzing import AllocatorStateMachine


def test_store_then_load_u32(memory):
    ptr = memory.allocate(4, 4)
    memory.store(ptr, raw_bytes([42, 0, 0, 0]), 4)
    assert decode(b.u32(), memory.load(ptr, 4, 4)) == IntValue(42)


def test_store_then_load_bool(memory):
    ptr = memory.allocate(1, 1)
    memory.store(ptr, [AbstractByte.init(1)], 1)
    assert decode(BoolType(), memory.load(ptr, 1, 1)) == BoolValue(True)
    memory.store(ptr, [AbstractByte.init(2)], 1)
    assert decode(BoolType(), memory.load(ptr, 1, 1)) is None


def test_fresh_allocations_are_uninit(memory):
    ptr = memory.allocate(3, 1)
    assert memory.load(ptr, 3, 1) == [UNINIT] * 3


def test_provenance_survives_a_round_trip(memory):
    ptr = memory.allocate(8, 8)
    data = raw_bytes([1, 2, 3, 4, 5, 6, 7, 8], AllocId(0))
    memory.store(ptr, data, 8)
    assert memory.load(ptr, 8, 8) == data


def test_use_after_free(memory):
    ptr = memory.allocate(4, 4)
    memory.deallocate(ptr, 4, 4)
    with pytest.raises(UndefinedBehavior, match="dead allocation"):
        memory.load(ptr, 1, 1)


def test_double_free(memory):
    ptr = memory.allocate(4, 4)
    memory.deallocate(ptr, 4, 4)
    with pytest.raises(UndefinedBehavior, match="double-free"):
        memory.deallocate(ptr, 4, 4)


def test_identities_are_never_reused(memory):
    first = memory.allocate(4, 4)
    memory.deallocate(first, 4, 4)
    second = memory.allocate(4, 4)
    assert second.addr == first.addr
    assert second.provenance != first.provenance
    memory.store(second, raw_bytes([0] * 4), 4)
    with pytest.raises(UndefinedBehavior):
        memory.load(first, 4, 4)


def test_lowest_strategy_packs_addresses(memory):
    assert memory.allocate(1, 1).addr == 1
    assert memory.allocate(4, 4).addr == 4
    assert memory.allocate(1, 1).addr == 2


class TestZeroSizedAccess:
    @pytest.mark.parametrize("ptr", [Pointer(0), Pointer(0x1234), Pointer(8, AllocId(99))])
    def test_always_allowed_when_aligned(self, memory, ptr):
        assert memory.load(ptr, 0, 1) == []
        memory.store(ptr, [], 1)
        memory.dereferenceable(ptr, 0, 1)

    def test_alignment_is_still_checked(self, memory):
        with pytest.raises(UndefinedBehavior, match="insufficiently aligned"):
            memory.load(Pointer(3), 0, 4)

    def test_allowed_on_dead_allocation(self, memory):
        ptr = memory.allocate(4, 4)
        memory.deallocate(ptr, 4, 4)
        assert memory.load(ptr, 0, 4) == []


class TestCheckPtr:
    def test_null(self, memory):
        with pytest.raises(UndefinedBehavior, match="null pointer"):
            memory.load(Pointer(0), 1, 1)

    def test_no_provenance(self, memory):
        ptr = memory.allocate(4, 1)
        with pytest.raises(UndefinedBehavior, match="invalid pointer"):
            memory.load(Pointer(ptr.addr), 1, 1)

    def test_out_of_bounds(self, memory):
        ptr = memory.allocate(4, 1)
        with pytest.raises(UndefinedBehavior, match="out-of-bounds"):
            memory.load(ptr.wrapping_offset(2, memory.target), 4, 1)

    def test_before_the_allocation(self, memory):
        ptr = memory.allocate(4, 4)
        with pytest.raises(UndefinedBehavior, match="out-of-bounds"):
            memory.load(Pointer(ptr.addr - 1, ptr.provenance), 1, 1)

    def test_misaligned(self, memory):
        ptr = memory.allocate(8, 8)
        with pytest.raises(UndefinedBehavior, match="insufficiently aligned"):
            memory.load(Pointer(ptr.addr + 1, ptr.provenance), 1, 4)

    def test_misalignment_is_reported_first(self, memory):
        with pytest.raises(UndefinedBehavior, match="insufficiently aligned"):
            memory.load(Pointer(0x1001), 4, 4)

    def test_store_past_the_end(self, memory):
        ptr = memory.allocate(2, 1)
        with pytest.raises(UndefinedBehavior, match="out-of-bounds"):
            memory.store(ptr, raw_bytes([1, 2, 3]), 1)

    def test_unknown_provenance_is_a_bug(self, memory):
        with pytest.raises(SpecificationBug):
            memory.load(Pointer(8, AllocId(99)), 1, 1)


class TestDeallocate:
    def test_without_provenance(self, memory):
        ptr = memory.allocate(4, 4)
        with pytest.raises(UndefinedBehavior, match="invalid pointer"):
            memory.deallocate(Pointer(ptr.addr), 4, 4)

    def test_interior_pointer(self, memory):
        ptr = memory.allocate(8, 4)
        with pytest.raises(UndefinedBehavior, match="beginning"):
            memory.deallocate(ptr.wrapping_offset(4, memory.target), 8, 4)

    def test_wrong_size(self, memory):
        ptr = memory.allocate(8, 4)
        with pytest.raises(UndefinedBehavior, match="incorrect size"):
            memory.deallocate(ptr, 4, 4)

    def test_wrong_align(self, memory):
        ptr = memory.allocate(8, 4)
        with pytest.raises(UndefinedBehavior, match="incorrect alignment"):
            memory.deallocate(ptr, 8, 8)

    def test_wrong_kind(self, memory):
        ptr = memory.allocate(8, 4, AllocationKind.HEAP)
        with pytest.raises(UndefinedBehavior, match="deallocating heap memory with stack deallocation operation"):
            memory.deallocate(ptr, 8, 4, AllocationKind.STACK)

    def test_matching_kind(self, memory):
        ptr = memory.allocate(8, 4, AllocationKind.HEAP)
        memory.deallocate(ptr, 8, 4, AllocationKind.HEAP)
        assert memory.live_allocations() == []


class TestAllocate:
    @pytest.mark.parametrize("align", [0, 3, 6, -4])
    def test_invalid_alignment(self, memory, align):
        with pytest.raises(UndefinedBehavior, match="invalid alignment"):
            memory.allocate(4, align)

    def test_negative_size(self, memory):
        with pytest.raises(UndefinedBehavior, match="invalid size"):
            memory.allocate(-1, 1)

    def test_size_must_fit_isize(self):
        memory = BasicMemory(Target(ptr_size=1))
        with pytest.raises(UndefinedBehavior, match="invalid size"):
            memory.allocate(200, 1)

    def test_zero_sized_allocations_get_distinct_live_identities(self, memory):
        a = memory.allocate(0, 1)
        c = memory.allocate(0, 1)
        assert a.provenance != c.provenance
        assert len(memory.live_allocations()) == 2

    def test_address_space_exhausted(self):
        memory = BasicMemory(Target(ptr_size=1))
        memory.allocate(100, 1)
        memory.allocate(100, 1)
        with pytest.raises(NoValidChoice):
            memory.allocate(100, 1)

    def test_freed_space_is_reusable(self):
        memory = BasicMemory(Target(ptr_size=1))
        ptr = memory.allocate(100, 1)
        memory.allocate(100, 1)
        memory.deallocate(ptr, 100, 1)
        assert memory.allocate(100, 1).addr == ptr.addr

    def test_highest_strategy(self):
        memory = BasicMemory(Target(ptr_size=2), Z3AddressChooser(AddressStrategy.HIGHEST))
        ptr = memory.allocate(4, 4)
        assert ptr.addr == 0xFFF8


class TestProvenanceCovers:
    def test_range_includes_one_past_the_end(self, memory):
        ptr = memory.allocate(4, 4)
        assert memory.provenance_covers(ptr.provenance, ptr.addr)
        assert memory.provenance_covers(ptr.provenance, ptr.addr + 4)
        assert not memory.provenance_covers(ptr.provenance, ptr.addr + 5)
        assert not memory.provenance_covers(ptr.provenance, ptr.addr - 1)

    def test_strict_range_excludes_one_past_the_end(self, memory):
        ptr = memory.allocate(4, 4)
        assert memory.provenance_covers(ptr.provenance, ptr.addr + 3, one_past_end=False)
        assert not memory.provenance_covers(ptr.provenance, ptr.addr + 4, one_past_end=False)

    def test_dead_allocations_cover_nothing(self, memory):
        ptr = memory.allocate(4, 4)
        memory.deallocate(ptr, 4, 4)
        assert not memory.provenance_covers(ptr.provenance, ptr.addr)


class LowestAllocator(AllocatorStateMachine):
    strategy = AddressStrategy.LOWEST


class HighestAllocator(AllocatorStateMachine):
    strategy = AddressStrategy.HIGHEST


class RandomAllocator(AllocatorStateMachine):
    strategy = AddressStrategy.RANDOM


_STATEFUL = settings(max_examples=10, stateful_step_count=8, deadline=None)

TestLowestAllocator = LowestAllocator.TestCase
TestLowestAllocator.settings = _STATEFUL
TestHighestAllocator = HighestAllocator.TestCase
TestHighestAllocator.settings = _STATEFUL
TestRandomAllocator = RandomAllocator.TestCase
TestRandomAllocator.settings = _STATEFUL
