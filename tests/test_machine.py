import pytest

from ubspectre.api import Outcome, check_program, run_program
from ubspectre.config import LimitsConfig, OutputConfig, TargetConfig, UbSpectreConfig
from ubspectre.core.exceptions import SpecificationBug
from ubspectre.core.types import (
    BranchDiscriminator,
    EnumType,
    KnownDiscriminant,
    TupleType,
    Variant,
)
from ubspectre.execution.machine import Machine
from ubspectre.lang import build as b
from ubspectre.lang.syntax import CallingConvention, IntrinsicOp

U32 = b.ptype(b.u32())
USIZE = b.ptype(b.usize())
RAW = b.ptype(b.raw_ptr_ty())
UNIT = b.ptype(b.unit_ty())


def run_main(blocks, locals=(), config=None):
    """Run a ``main`` whose unit return local comes after ``locals``."""
    all_locals = list(locals) + [UNIT]
    main = b.function(all_locals, [], len(locals), blocks)
    return run_program(b.program({"main": main}), config)


def add_one():
    """``fn add_one(x: u32) -> u32``"""
    return b.function(
        [U32, U32],
        [1],
        0,
        {"bb0": b.block([b.assign(b.local(0), b.add(b.load(b.local(1)), b.const_int(1, b.u32())))], b.return_())},
    )


def call_add_one(arguments, next_block="bb1", calling_convention=CallingConvention.RUST, ret_abi=None):
    main = b.function(
        [U32, UNIT],
        [],
        1,
        {
            "bb0": b.block(
                [b.live(0)],
                b.call(
                    "add_one",
                    arguments,
                    (b.local(0), ret_abi or b.arg_abi(U32)),
                    next_block,
                    calling_convention,
                ),
            ),
            "bb1": b.block([], b.print_(b.load(b.local(0)), "bb2")),
            "bb2": b.block([], b.exit_()),
        },
    )
    return run_program(b.program({"main": main, "add_one": add_one()}))


class TestLocals:
    def test_assign_and_print(self):
        prog = b.print_program(
            [U32],
            [b.live(0), b.assign(b.local(0), b.const_int(7, b.u32()))],
            [b.load(b.local(0))],
        )
        result = run_program(prog)
        assert result.succeeded()
        assert result.stdout == ["7"]

    def test_reading_uninit_local(self):
        result = run_program(b.print_program([U32], [b.live(0)], [b.load(b.local(0))]))
        assert result.is_ub()
        assert "validity invariant" in result.message

    def test_dead_local_is_a_bug(self):
        prog = b.small_program([U32], [b.assign(b.local(0), b.const_int(7, b.u32()))])
        with pytest.raises(SpecificationBug, match="dead local"):
            run_program(prog)

    def test_double_storage_live_is_a_bug(self):
        with pytest.raises(SpecificationBug, match="already live"):
            run_program(b.small_program([U32], [b.live(0), b.live(0)]))

    def test_storage_dead_then_live_gives_fresh_uninit_storage(self):
        prog = b.print_program(
            [U32],
            [b.live(0), b.assign(b.local(0), b.const_int(1, b.u32())), b.dead(0), b.live(0)],
            [b.load(b.local(0))],
        )
        assert run_program(prog).is_ub()

    def test_move_deinitializes_the_source(self):
        prog = b.print_program(
            [U32, U32],
            [
                b.live(0),
                b.live(1),
                b.assign(b.local(0), b.const_int(5, b.u32())),
                b.assign(b.local(1), b.move(b.local(0))),
            ],
            [b.load(b.local(1)), b.load(b.local(0))],
        )
        result = run_program(prog)
        assert result.is_ub()
        assert result.stdout == ["5"]

    def test_deinit(self):
        prog = b.print_program(
            [U32],
            [b.live(0), b.assign(b.local(0), b.const_int(5, b.u32())), b.deinit(b.local(0))],
            [b.load(b.local(0))],
        )
        assert run_program(prog).is_ub()

    def test_finalize_checks_validity(self):
        bool_pt = b.ptype(b.bool_ty())
        prog = b.small_program(
            [U32],
            [
                b.live(0),
                b.assign(b.local(0), b.const_int(2, b.u32())),
                b.finalize(b.deref(b.addr_of(b.local(0)), bool_pt)),
            ],
        )
        result = run_program(prog)
        assert result.is_ub()

    def test_place_mention_does_not_access_memory(self):
        prog = b.small_program([], [b.place_mention(b.deref(b.const_ptr(0), U32))])
        assert run_program(prog).succeeded()


class TestProjections:
    def test_negative_index(self):
        arr = b.ptype(b.array_ty(b.u8(), 4))
        prog = b.small_program(
            [arr],
            [b.live(0), b.assign(b.index(b.local(0), b.const_int(-1, b.isize())), b.const_int(1, b.u8()))],
        )
        result = run_program(prog)
        assert result.is_ub()
        assert "out-of-bounds array access" in result.message

    def test_index_and_field(self):
        pair = b.tuple_ty([b.u8(), b.array_ty(b.u16(), 3)])
        prog = b.print_program(
            [b.ptype(pair)],
            [
                b.live(0),
                b.assign(b.field(b.local(0), 0), b.const_int(9, b.u8())),
                b.assign(b.index(b.field(b.local(0), 1), b.const_int(2, b.usize())), b.const_int(300, b.u16())),
            ],
            [b.load(b.field(b.local(0), 0)), b.load(b.index(b.field(b.local(0), 1), b.const_int(2, b.usize())))],
        )
        assert run_program(prog).stdout == ["9", "300"]

    def test_union_field_reads_the_shared_bytes(self):
        union = b.union_ty([b.u8(), b.u32()])
        prog = b.print_program(
            [b.ptype(union)],
            [b.live(0), b.assign(b.local(0), b.union_expr(1, b.const_int(0x01020304, b.u32()), union))],
            [b.load(b.field(b.local(0), 0))],
        )
        assert run_program(prog).stdout == ["4"]


def nullable_ref(payload_ty):
    none = Variant(TupleType(fields=(), size=8), ((0, b.usize(), 0),))
    some = Variant(payload_ty)
    return EnumType(
        variants=(none, some),
        discriminator=BranchDiscriminator(
            offset=0,
            value_type=b.usize(),
            children=(((0, 1), KnownDiscriminant(0)),),
            fallback=KnownDiscriminant(1),
        ),
        discriminant_ty=b.isize(),
        size=8,
    )


class TestEnums:
    def test_niche_discriminant(self):
        ref = b.ref_ty(b.u32())
        payload = TupleType(fields=((0, ref),), size=8)
        option = nullable_ref(payload)
        prog = b.print_program(
            [b.ptype(option, align=8), U32],
            [
                b.live(0),
                b.live(1),
                b.assign(b.local(1), b.const_int(5, b.u32())),
                b.assign(b.local(0), b.variant_expr(1, b.tuple_expr([b.create_ref(b.local(1), ref)], payload), option)),
            ],
            [b.get_discriminant(b.local(0))],
        )
        assert run_program(prog).stdout == ["1"]

    def test_set_discriminant_writes_only_the_tag(self):
        ty = b.tagged_enum_ty([[b.u32()], [b.u32()]])
        prog = b.print_program(
            [b.ptype(ty)],
            [
                b.live(0),
                b.assign(b.local(0), b.variant_expr(0, b.tuple_expr([b.const_int(11, b.u32())], ty.variants[0].ty), ty)),
                b.set_discriminant(b.local(0), 1),
            ],
            [b.get_discriminant(b.local(0)), b.load(b.field(b.downcast(b.local(0), 1), 0))],
        )
        assert run_program(prog).stdout == ["1", "11"]

    def test_invalid_discriminant(self):
        ty = b.tagged_enum_ty([[], []])
        prog = b.print_program(
            [b.ptype(ty)],
            [b.live(0), b.assign(b.deref(b.addr_of(b.local(0)), b.ptype(b.u8())), b.const_int(7, b.u8()))],
            [b.get_discriminant(b.local(0))],
        )
        result = run_program(prog)
        assert result.is_ub()
        assert "invalid enum discriminant" in result.message

    def test_uninit_discriminant(self):
        ty = b.tagged_enum_ty([[], []])
        result = run_program(b.print_program([b.ptype(ty)], [b.live(0)], [b.get_discriminant(b.local(0))]))
        assert result.is_ub()


class TestReferences:
    def test_create_ref_to_null(self):
        prog = b.small_program(
            [b.ptype(b.ref_ty(b.u32()))],
            [b.live(0), b.assign(b.local(0), b.create_ref(b.deref(b.const_ptr(0), U32), b.ref_ty(b.u32())))],
        )
        result = run_program(prog)
        assert result.is_ub()
        assert "creating an invalid reference" in result.message

    def test_addr_of_null_place_is_fine(self):
        prog = b.small_program(
            [RAW],
            [b.live(0), b.assign(b.local(0), b.addr_of(b.deref(b.const_ptr(0), U32)))],
        )
        assert run_program(prog).succeeded()

    def test_validate_catches_dangling_reference(self):
        ref = b.ref_ty(b.u32())
        prog = b.small_program(
            [b.ptype(ref), U32],
            [
                b.live(0),
                b.live(1),
                b.assign(b.local(0), b.create_ref(b.local(1), ref)),
                b.validate(b.local(0)),
                b.dead(1),
                b.validate(b.local(0)),
            ],
        )
        result = run_program(prog)
        assert result.is_ub()
        assert "dead allocation" in result.message


class TestIntPtrCasts:
    def statements(self, to_int):
        return [
            b.live(0),
            b.live(1),
            b.live(2),
            b.assign(b.local(0), b.const_int(1, b.u32())),
            b.assign(b.local(1), to_int(b.addr_of(b.local(0)))),
            b.assign(b.local(2), b.int_to_ptr(b.load(b.local(1)))),
            b.assign(b.deref(b.load(b.local(2)), U32), b.const_int(9, b.u32())),
        ]

    def test_exposed_pointer_round_trip(self):
        prog = b.print_program([U32, USIZE, RAW], self.statements(b.ptr_to_int), [b.load(b.local(0))])
        assert run_program(prog).stdout == ["9"]

    def test_transmute_does_not_expose(self):
        prog = b.print_program(
            [U32, USIZE, RAW],
            self.statements(lambda ptr: b.transmute(ptr, b.usize())),
            [b.load(b.local(0))],
        )
        result = run_program(prog)
        assert result.is_ub()
        assert "invalid pointer" in result.message

    def test_cast_picks_the_allocation_starting_at_the_address(self):
        # _0 and _1 sit next to each other, so the address of _1 is also one
        # past the end of _0.
        statements = [
            b.live(0),
            b.live(1),
            b.live(2),
            b.live(3),
            b.live(4),
            b.assign(b.local(0), b.const_int(1, b.u32())),
            b.assign(b.local(2), b.ptr_to_int(b.addr_of(b.local(0)))),
            b.assign(b.local(3), b.ptr_to_int(b.addr_of(b.local(1)))),
            b.assign(b.local(4), b.int_to_ptr(b.load(b.local(3)))),
            b.assign(b.deref(b.load(b.local(4)), U32), b.const_int(9, b.u32())),
        ]
        prog = b.print_program([U32, U32, USIZE, USIZE, RAW], statements, [b.load(b.local(1))])
        result = run_program(prog)
        assert result.succeeded(), result.message
        assert result.stdout == ["9"]

    def test_expose_intrinsics(self):
        blocks = {
            "bb0": b.block(
                [b.live(0), b.live(1), b.live(2), b.assign(b.local(0), b.const_int(1, b.u32()))],
                b.intrinsic(IntrinsicOp.POINTER_EXPOSE_PROVENANCE, [b.addr_of(b.local(0))], b.local(1), "bb1"),
            ),
            "bb1": b.block(
                [],
                b.intrinsic(IntrinsicOp.POINTER_WITH_EXPOSED_PROVENANCE, [b.load(b.local(1))], b.local(2), "bb2"),
            ),
            "bb2": b.block(
                [b.assign(b.deref(b.load(b.local(2)), U32), b.const_int(3, b.u32()))],
                b.print_(b.load(b.local(0)), "bb3"),
            ),
            "bb3": b.block([], b.exit_()),
        }
        assert run_main(blocks, [U32, USIZE, RAW]).stdout == ["3"]

    def test_manual_alignment_holds_for_every_address_strategy(self):
        usize = b.usize()
        four = b.const_int(4, usize)
        addr = b.load(b.local(1))
        aligned = b.deref(b.load(b.local(2)), U32)
        blocks = {
            "bb0": b.block(
                [b.live(0), b.live(1), b.live(2)],
                b.intrinsic(IntrinsicOp.ALLOCATE, [b.const_int(16, usize), b.const_int(1, usize)], b.local(0), "bb1"),
            ),
            "bb1": b.block(
                [
                    b.assign(b.local(1), b.ptr_to_int(b.load(b.local(0)))),
                    b.assign(
                        b.local(2),
                        b.ptr_offset(b.load(b.local(0)), b.rem(b.sub(four, b.rem(addr, four)), four)),
                    ),
                    b.assign(aligned, b.const_int(0xDEADBEEF, b.u32())),
                ],
                b.print_(b.load(aligned), "bb2"),
            ),
            "bb2": b.block(
                [],
                b.intrinsic(
                    IntrinsicOp.DEALLOCATE,
                    [b.load(b.local(0)), b.const_int(16, usize), b.const_int(1, usize)],
                    None,
                    "bb3",
                ),
            ),
            "bb3": b.block([], b.exit_()),
        }
        main = b.function([RAW, USIZE, RAW, UNIT], [], 3, blocks)
        result = check_program(b.program({"main": main}))
        assert result.succeeded(), result.message
        assert result.stdout == [str(0xDEADBEEF)]


class TestHeap:
    def heap_blocks(self, free_twice=False, free_stack=False):
        usize = b.usize()
        ptr = b.addr_of(b.local(1)) if free_stack else b.load(b.local(0))
        size = 4 if free_stack else 8
        free = b.intrinsic(
            IntrinsicOp.DEALLOCATE, [ptr, b.const_int(size, usize), b.const_int(4, usize)], None, "bb2"
        )
        return {
            "bb0": b.block(
                [b.live(0), b.live(1)],
                b.intrinsic(IntrinsicOp.ALLOCATE, [b.const_int(8, usize), b.const_int(4, usize)], b.local(0), "bb1"),
            ),
            "bb1": b.block([], free),
            "bb2": b.block([], free if free_twice else b.exit_()),
        }

    def test_allocate_and_free(self):
        assert run_main(self.heap_blocks(), [RAW, U32]).succeeded()

    def test_double_free(self):
        result = run_main(self.heap_blocks(free_twice=True), [RAW, U32])
        assert result.is_ub()
        assert "double-free" in result.message

    def test_freeing_stack_memory(self):
        result = run_main(self.heap_blocks(free_stack=True), [RAW, U32])
        assert "deallocating stack memory with heap deallocation operation" in result.message

    def test_return_type_must_match(self):
        blocks = {
            "bb0": b.block(
                [b.live(0)],
                b.intrinsic(
                    IntrinsicOp.ALLOCATE, [b.const_int(8, b.usize()), b.const_int(4, b.usize())], b.local(0), "bb1"
                ),
            ),
            "bb1": b.block([], b.exit_()),
        }
        result = run_main(blocks, [USIZE])
        assert "invalid return type for intrinsic" in result.message


class TestIntrinsics:
    def test_print_to_stderr(self):
        blocks = {
            "bb0": b.block([], b.intrinsic(IntrinsicOp.PRINT_STDERR, [b.const_bool(True)], None, "bb1")),
            "bb1": b.block([], b.exit_()),
        }
        result = run_main(blocks)
        assert result.stderr == ["true"]
        assert result.stdout == []

    def test_printing_a_pointer_is_ub(self):
        result = run_program(b.print_program([], [], [b.const_ptr(8)]))
        assert "invalid arguments to intrinsic" in result.message

    def test_echo_stdout(self, capsys):
        config = UbSpectreConfig(output=OutputConfig(echo_stdout=True))
        run_program(b.print_program([], [], [b.const_int(3, b.u8())]), config)
        assert capsys.readouterr().out == "3\n"

    def test_assume(self):
        def assume(value):
            return {
                "bb0": b.block([], b.intrinsic(IntrinsicOp.ASSUME, [b.const_bool(value)], None, "bb1")),
                "bb1": b.block([], b.exit_()),
            }

        assert run_main(assume(True)).succeeded()
        assert run_main(assume(False)).message == "undefined behavior: `assume` called on false"

    def test_missing_next_block(self):
        blocks = {"bb0": b.block([], b.intrinsic(IntrinsicOp.ASSUME, [b.const_bool(True)]))}
        assert run_main(blocks).is_ub()

    def test_panic(self):
        result = run_main({"bb0": b.block([], b.panic())})
        assert result.outcome is Outcome.PANICKED
        assert result.message == "explicit panic"


class TestControlFlow:
    def test_unreachable(self):
        result = run_main({"bb0": b.block([], b.unreachable())})
        assert result.is_ub()
        assert result.message == "undefined behavior: reached unreachable code"

    def test_switch(self):
        def blocks(value):
            return {
                "bb0": b.block([], b.switch(b.const_int(value, b.u8()), {1: "one", 2: "two"}, "other")),
                "one": b.block([], b.print_(b.const_int(1, b.u8()), "end")),
                "two": b.block([], b.print_(b.const_int(2, b.u8()), "end")),
                "other": b.block([], b.print_(b.const_int(0, b.u8()), "end")),
                "end": b.block([], b.exit_()),
            }

        assert [run_main(blocks(v)).stdout for v in (1, 2, 9)] == [["1"], ["2"], ["0"]]

    def test_if(self):
        blocks = {
            "bb0": b.block([], b.if_(b.lt(b.const_int(1, b.i8()), b.const_int(2, b.i8())), "yes", "no")),
            "yes": b.block([], b.exit_()),
            "no": b.block([], b.unreachable()),
        }
        assert run_main(blocks).succeeded()

    def test_step_limit(self):
        config = UbSpectreConfig(limits=LimitsConfig(max_steps=50))
        result = run_main({"bb0": b.block([], b.goto("bb0"))}, config=config)
        assert result.outcome is Outcome.STEP_LIMIT
        assert result.steps == 50

    def test_returning_from_main_terminates(self):
        assert run_main({"bb0": b.block([], b.return_())}).succeeded()

    def test_address_space_exhaustion(self):
        config = UbSpectreConfig(target=TargetConfig(ptr_size=1))
        arr = b.ptype(b.array_ty(b.u8(), 100))
        result = run_program(b.small_program([arr, arr, arr], [b.live(0), b.live(1), b.live(2)]), config)
        assert result.outcome is Outcome.NO_VALID_CHOICE


class TestCalls:
    def test_call_and_return(self):
        result = call_add_one([(b.const_int(41, b.u32()), b.arg_abi(U32))])
        assert result.stdout == ["42"]

    def test_every_call_allocates_fresh_locals(self):
        result = call_add_one([(b.const_int(41, b.u32()), b.arg_abi(U32))])
        assert result.succeeded()
        # main, add_one, main's two locals, add_one's two locals
        assert result.allocations == 6

    def test_argument_abi_mismatch(self):
        u64 = b.ptype(b.u64())
        result = call_add_one([(b.const_int(41, b.u64()), b.arg_abi(u64))])
        assert result.message == "undefined behavior: call ABI violation: argument ABI does not agree"

    def test_argument_count_mismatch(self):
        result = call_add_one([])
        assert "number of arguments does not agree" in result.message

    def test_calling_convention_mismatch(self):
        result = call_add_one(
            [(b.const_int(41, b.u32()), b.arg_abi(U32))], calling_convention=CallingConvention.C
        )
        assert "calling conventions are not the same" in result.message

    def test_return_abi_mismatch(self):
        result = call_add_one(
            [(b.const_int(41, b.u32()), b.arg_abi(U32))], ret_abi=b.arg_abi(b.ptype(b.u64()))
        )
        assert "return argument ABI does not agree" in result.message

    def test_returning_without_a_next_block(self):
        result = call_add_one([(b.const_int(41, b.u32()), b.arg_abi(U32))], next_block=None)
        assert result.is_ub()
        assert "caller did not specify next block" in result.message

    def test_calling_a_non_function(self):
        blocks = {
            "bb0": b.block(
                [b.live(0)],
                b.call(b.const_ptr(0x1234, b.fn_ptr_ty()), [], (b.local(0), b.arg_abi(UNIT)), "bb1"),
            ),
            "bb1": b.block([], b.exit_()),
        }
        result = run_main(blocks, [UNIT])
        assert "does not point to a function" in result.message

    def test_function_pointers_compare_by_address(self):
        prog = b.print_program(
            [],
            [],
            [b.eq(b.fn_ptr("main"), b.fn_ptr("main")), b.eq(b.fn_ptr("main"), b.fn_ptr("helper"))],
        )
        prog = b.program({"main": prog.functions["main"], "helper": add_one()})
        assert run_program(prog).stdout == ["true", "false"]

    def test_uninitialized_return_value(self):
        callee = b.function([U32], [], 0, {"bb0": b.block([], b.return_())})
        main = b.function(
            [U32, UNIT],
            [],
            1,
            {
                "bb0": b.block([b.live(0)], b.call("f", [], (b.local(0), b.arg_abi(U32)), "bb1")),
                "bb1": b.block([], b.exit_()),
            },
        )
        result = run_program(b.program({"main": main, "f": callee}))
        assert result.is_ub()
        assert "validity invariant" in result.message


class TestMachineConstruction:
    def test_missing_start_function(self):
        with pytest.raises(SpecificationBug, match="start function"):
            Machine(b.program({}, start="main"))

    def test_start_function_with_arguments(self):
        with pytest.raises(SpecificationBug, match="must not take arguments"):
            Machine(b.program({"main": add_one()}))

    def test_step_by_step(self):
        machine = Machine(b.small_program([U32], [b.live(0)]))
        machine.step()
        assert machine.frame.index == 1
        assert "_0" in machine.frame.locals
        machine.run()
        assert machine.terminated
        with pytest.raises(SpecificationBug, match="terminated"):
            machine.step()

    def test_steps_are_traced(self, quiet_logger):
        run_program(b.small_program([], []))
        assert [e.message for e in quiet_logger.get_entries(category="machine")][:1] == ["main/bb0[0]"]
