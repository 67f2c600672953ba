"""Statement semantics."""
from __future__ import annotations
from typing import TYPE_CHECKING
from ubspectre.core.bytes import uninit_bytes
from ubspectre.core.exceptions import SpecificationBug
from ubspectre.core.types import EnumType, PlaceType, restrict_align_for_offset
from ubspectre.core.values import IntValue
from ubspectre.execution.dispatcher import STATEMENTS
from ubspectre.lang.syntax import (
    Assign,
    Deinit,
    Finalize,
    PlaceMention,
    SetDiscriminant,
    StorageDead,
    StorageLive,
    Validate,
)
if TYPE_CHECKING:
    from ubspectre.execution.machine import Machine
@STATEMENTS.register(Assign)
def exec_assign(machine: Machine, stmt: Assign) -> None:
    """Evaluate the source first, then the destination, then store."""
    value, _ = machine.eval_value(stmt.source)
    ptr, ptype = machine.eval_place(stmt.destination)
    machine.typed.typed_store(ptr, value, ptype)
@STATEMENTS.register(Finalize)
def exec_finalize(machine: Machine, stmt: Finalize) -> None:
    ptr, ptype = machine.eval_place(stmt.place)
    machine.typed.typed_load(ptr, ptype)
@STATEMENTS.register(StorageLive)
def exec_storage_live(machine: Machine, stmt: StorageLive) -> None:
    machine.storage_live(machine.frame, stmt.local)
@STATEMENTS.register(StorageDead)
def exec_storage_dead(machine: Machine, stmt: StorageDead) -> None:
    machine.storage_dead(machine.frame, stmt.local)
@STATEMENTS.register(SetDiscriminant)
def exec_set_discriminant(machine: Machine, stmt: SetDiscriminant) -> None:
    """Write only the tag bytes of the chosen variant."""
    ptr, ptype = machine.eval_place(stmt.destination)
    if not isinstance(ptype.ty, EnumType):
        raise SpecificationBug(f"setting the discriminant of non-enum type {ptype.ty!r}")
    variant = ptype.ty.variant(stmt.value)
    for offset, int_ty, tag in variant.tagger:
        tag_ptr = machine.ptr_offset_inbounds(ptr, offset)
        tag_ptype = PlaceType(int_ty, restrict_align_for_offset(ptype.align, offset))
        machine.typed.typed_store(tag_ptr, IntValue(tag), tag_ptype)
@STATEMENTS.register(Deinit)
def exec_deinit(machine: Machine, stmt: Deinit) -> None:
    ptr, ptype = machine.eval_place(stmt.place)
    machine.memory.store(ptr, uninit_bytes(ptype.byte_size(machine.target)), ptype.align)
@STATEMENTS.register(Validate)
def exec_validate(machine: Machine, stmt: Validate) -> None:
    """Load the place, retag every pointer in it, and store it back."""
    ptr, ptype = machine.eval_place(stmt.place)
    value = machine.typed.typed_load(ptr, ptype)
    value = machine.typed.retag_val(value, ptype.ty, stmt.fn_entry)
    machine.typed.typed_store(ptr, value, ptype)
@STATEMENTS.register(PlaceMention)
def exec_place_mention(machine: Machine, stmt: PlaceMention) -> None:
    machine.eval_place(stmt.place)
