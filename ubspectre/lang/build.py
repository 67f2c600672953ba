"""Helpers for building types and programs by hand.

Layouts are computed the way a C-like compiler would: fields are placed in
order at their natural alignment and the total size is rounded up to the
largest field alignment.

Example:
    >>> from ubspectre.lang import build as b
    >>> prog = b.small_program(
    ...     [b.ptype(b.u32())],
    ...     [b.live(0), b.assign(b.local(0), b.const_int(7, b.u32()))],
    ... )
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from ubspectre.core.bytes import DEFAULT_TARGET, Pointer, Target
from ubspectre.core.types import (
    ArrayType,
    BoolType,
    BoxPtr,
    BranchDiscriminator,
    Discriminator,
    EnumType,
    FnPtr,
    IntType,
    InvalidDiscriminant,
    KnownDiscriminant,
    Mutability,
    PlaceType,
    PointeeInfo,
    PtrType,
    RawPtr,
    RefPtr,
    TupleType,
    Type,
    UnionType,
    Variant,
)
from ubspectre.core.values import BoolValue, IntValue, PtrValue, TupleValue
from ubspectre.lang.syntax import (
    AddrOf,
    ArgAbi,
    Assign,
    BinaryOperator,
    BinOp,
    Block,
    BoolBinOp,
    BoolUnOp,
    Call,
    CallingConvention,
    Constant,
    CreateRef,
    Deinit,
    Deref,
    Downcast,
    Field,
    Finalize,
    FnPointerConstant,
    Function,
    GetDiscriminant,
    Goto,
    If,
    Index,
    IntBinOp,
    Intrinsic,
    IntrinsicOp,
    IntToIntCast,
    IntToPtr,
    IntUnOp,
    Load,
    Local,
    PlaceExpr,
    PlaceMention,
    Program,
    PtrOffset,
    PtrToInt,
    RelOp,
    Return,
    SetDiscriminant,
    Statement,
    StorageDead,
    StorageLive,
    Switch,
    Terminator,
    Transmute,
    TupleExpr,
    UnionExpr,
    UnOp,
    Unreachable,
    Validate,
    ValueExpr,
    VariantExpr,
)

# ---------------------------------------------------------------------------
# Types and layout
# ---------------------------------------------------------------------------


def int_ty(signed: bool, size: int) -> IntType:
    return IntType(signed=signed, size=size)


def u8() -> IntType:
    return IntType(False, 1)


def u16() -> IntType:
    return IntType(False, 2)


def u32() -> IntType:
    return IntType(False, 4)


def u64() -> IntType:
    return IntType(False, 8)


def i8() -> IntType:
    return IntType(True, 1)


def i16() -> IntType:
    return IntType(True, 2)


def i32() -> IntType:
    return IntType(True, 4)


def i64() -> IntType:
    return IntType(True, 8)


def usize(target: Target = DEFAULT_TARGET) -> IntType:
    return IntType(False, target.ptr_size)


def isize(target: Target = DEFAULT_TARGET) -> IntType:
    return IntType(True, target.ptr_size)


def bool_ty() -> BoolType:
    return BoolType()


def _round_up(n: int, align: int) -> int:
    return -(-n // align) * align


def natural_align(ty: Type, target: Target = DEFAULT_TARGET) -> int:
    """Alignment a C-like layout would give ``ty``."""
    if isinstance(ty, BoolType):
        return 1
    if isinstance(ty, IntType):
        return ty.size
    if isinstance(ty, PtrType):
        return target.ptr_size
    if isinstance(ty, (TupleType, UnionType)):
        return max((natural_align(f, target) for _, f in ty.fields), default=1)
    if isinstance(ty, ArrayType):
        return natural_align(ty.elem, target)
    if isinstance(ty, EnumType):
        aligns = [natural_align(v.ty, target) for v in ty.variants]
        aligns.extend(tag_ty.size for v in ty.variants for _, tag_ty, _ in v.tagger)
        return max(aligns, default=1)
    raise TypeError(f"no layout for {ty!r}")


def unit_ty() -> TupleType:
    return TupleType(fields=(), size=0)


def tuple_ty(fields: Iterable[Type], target: Target = DEFAULT_TARGET) -> TupleType:
    """A tuple with fields placed in order at their natural alignment."""
    placed = []
    offset = 0
    align = 1
    for ty in fields:
        field_align = natural_align(ty, target)
        align = max(align, field_align)
        offset = _round_up(offset, field_align)
        placed.append((offset, ty))
        offset += ty.byte_size(target)
    return TupleType(fields=tuple(placed), size=_round_up(offset, align))


def array_ty(elem: Type, count: int) -> ArrayType:
    return ArrayType(elem=elem, count=count)


def calc_chunks(fields: Iterable[tuple[int, Type]], size: int, target: Target = DEFAULT_TARGET) -> tuple[tuple[int, int], ...]:
    """Contiguous byte ranges covered by at least one field."""
    covered = [False] * size
    for offset, ty in fields:
        for i in range(offset, offset + ty.byte_size(target)):
            covered[i] = True
    chunks = []
    start = None
    for i, flag in enumerate(covered + [False]):
        if flag and start is None:
            start = i
        elif not flag and start is not None:
            chunks.append((start, i - start))
            start = None
    return tuple(chunks)


def union_ty(fields: Iterable[Type], target: Target = DEFAULT_TARGET) -> UnionType:
    """A union with every field at offset zero."""
    placed = tuple((0, ty) for ty in fields)
    align = max((natural_align(ty, target) for _, ty in placed), default=1)
    size = _round_up(max((ty.byte_size(target) for _, ty in placed), default=0), align)
    return UnionType(fields=placed, chunks=calc_chunks(placed, size, target), size=size)


def enum_ty(
    variants: Sequence[Variant],
    discriminator: Discriminator,
    size: int,
    discriminant_ty: IntType | None = None,
) -> EnumType:
    return EnumType(
        variants=tuple(variants),
        discriminator=discriminator,
        discriminant_ty=discriminant_ty or isize(),
        size=size,
    )


def tagged_enum_ty(
    payloads: Sequence[Sequence[Type]],
    tag_ty: IntType | None = None,
    target: Target = DEFAULT_TARGET,
) -> EnumType:
    """An enum with an explicit tag at offset 0 followed by each variant's fields."""
    tag_ty = tag_ty or u8()
    align = max([tag_ty.size] + [natural_align(t, target) for p in payloads for t in p])
    layouts = []
    end = tag_ty.size
    for payload in payloads:
        offset = tag_ty.size
        fields = []
        for ty in payload:
            offset = _round_up(offset, natural_align(ty, target))
            fields.append((offset, ty))
            offset += ty.byte_size(target)
        layouts.append(tuple(fields))
        end = max(end, offset)
    size = _round_up(end, align)
    variants = [
        Variant(ty=TupleType(fields=fields, size=size), tagger=((0, tag_ty, i),))
        for i, fields in enumerate(layouts)
    ]
    discriminator = BranchDiscriminator(
        offset=0,
        value_type=tag_ty,
        children=tuple(((i, i + 1), KnownDiscriminant(i)) for i in range(len(payloads))),
        fallback=InvalidDiscriminant(),
    )
    return enum_ty(variants, discriminator, size, isize(target))


def pointee_info(ty: Type, target: Target = DEFAULT_TARGET) -> PointeeInfo:
    return PointeeInfo(
        size=ty.byte_size(target),
        align=natural_align(ty, target),
        inhabited=ty.inhabited(),
    )


def ref_ty(pointee: Type, mutbl: Mutability = Mutability.IMMUTABLE, target: Target = DEFAULT_TARGET) -> RefPtr:
    return RefPtr(mutbl=mutbl, pointee=pointee_info(pointee, target))


def box_ty(pointee: Type, target: Target = DEFAULT_TARGET) -> BoxPtr:
    return BoxPtr(pointee=pointee_info(pointee, target))


def raw_ptr_ty() -> RawPtr:
    return RawPtr()


def fn_ptr_ty() -> FnPtr:
    return FnPtr()


def ptype(ty: Type, align: int | None = None, target: Target = DEFAULT_TARGET) -> PlaceType:
    return PlaceType(ty=ty, align=align if align is not None else natural_align(ty, target))


def arg_abi(pt: PlaceType, target: Target = DEFAULT_TARGET) -> ArgAbi:
    return ArgAbi(size=pt.byte_size(target), align=pt.align)


# ---------------------------------------------------------------------------
# Value expressions
# ---------------------------------------------------------------------------


def const_int(value: int, ty: IntType) -> Constant:
    return Constant(IntValue(value), ty)


def const_bool(value: bool) -> Constant:
    return Constant(BoolValue(value), BoolType())


def const_ptr(addr: int, ty: PtrType | None = None) -> Constant:
    """A pointer literal; it never carries provenance."""
    return Constant(PtrValue(Pointer(addr)), ty or RawPtr())


def unit() -> Constant:
    return Constant(TupleValue(()), unit_ty())


def fn_ptr(name: str) -> FnPointerConstant:
    return FnPointerConstant(name)


def tuple_expr(fields: Sequence[ValueExpr], ty: Type) -> TupleExpr:
    return TupleExpr(tuple(fields), ty)


def union_expr(field_idx: int, expr: ValueExpr, ty: UnionType) -> UnionExpr:
    return UnionExpr(field_idx, expr, ty)


def variant_expr(discriminant: int, data: ValueExpr, ty: EnumType) -> VariantExpr:
    return VariantExpr(discriminant, data, ty)


def get_discriminant(place: PlaceExpr) -> GetDiscriminant:
    return GetDiscriminant(place)


def load(place: PlaceExpr) -> Load:
    return Load(place)


def move(place: PlaceExpr) -> Load:
    return Load(place, destructive=True)


def addr_of(place: PlaceExpr, ty: PtrType | None = None) -> AddrOf:
    return AddrOf(place, ty or RawPtr())


def create_ref(place: PlaceExpr, ty: PtrType) -> CreateRef:
    return CreateRef(place, ty)


def neg(operand: ValueExpr) -> UnOp:
    return UnOp(IntUnOp.NEG, operand)


def bit_not(operand: ValueExpr) -> UnOp:
    return UnOp(IntUnOp.BIT_NOT, operand)


def not_(operand: ValueExpr) -> UnOp:
    return UnOp(BoolUnOp.NOT, operand)


def int_cast(operand: ValueExpr, ty: IntType) -> UnOp:
    return UnOp(IntToIntCast(ty), operand)


def transmute(operand: ValueExpr, ty: Type) -> UnOp:
    return UnOp(Transmute(ty), operand)


def ptr_to_int(operand: ValueExpr) -> UnOp:
    return UnOp(PtrToInt(), operand)


def int_to_ptr(operand: ValueExpr, ty: PtrType | None = None) -> UnOp:
    return UnOp(IntToPtr(ty or RawPtr()), operand)


def binop(operator: BinaryOperator, left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(operator, left, right)


def add(left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(IntBinOp.ADD, left, right)


def sub(left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(IntBinOp.SUB, left, right)


def mul(left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(IntBinOp.MUL, left, right)


def div(left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(IntBinOp.DIV, left, right)


def rem(left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(IntBinOp.REM, left, right)


def eq(left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(RelOp.EQ, left, right)


def lt(left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(RelOp.LT, left, right)


def bool_and(left: ValueExpr, right: ValueExpr) -> BinOp:
    return BinOp(BoolBinOp.AND, left, right)


def ptr_offset(ptr: ValueExpr, offset: ValueExpr, inbounds: bool = True) -> BinOp:
    return BinOp(PtrOffset(inbounds), ptr, offset)


# ---------------------------------------------------------------------------
# Places
# ---------------------------------------------------------------------------


def local(name: int | str) -> Local:
    return Local(f"_{name}" if isinstance(name, int) else name)


def deref(operand: ValueExpr, pt: PlaceType) -> Deref:
    return Deref(operand, pt)


def field(root: PlaceExpr, idx: int) -> Field:
    return Field(root, idx)


def index(root: PlaceExpr, idx: ValueExpr) -> Index:
    return Index(root, idx)


def downcast(root: PlaceExpr, discriminant: int) -> Downcast:
    return Downcast(root, discriminant)


# ---------------------------------------------------------------------------
# Statements and terminators
# ---------------------------------------------------------------------------


def _local_name(name: int | str) -> str:
    return f"_{name}" if isinstance(name, int) else name


def assign(destination: PlaceExpr, source: ValueExpr) -> Assign:
    return Assign(destination, source)


def finalize(place: PlaceExpr) -> Finalize:
    return Finalize(place)


def live(name: int | str) -> StorageLive:
    return StorageLive(_local_name(name))


def dead(name: int | str) -> StorageDead:
    return StorageDead(_local_name(name))


def set_discriminant(place: PlaceExpr, value: int) -> SetDiscriminant:
    return SetDiscriminant(place, value)


def deinit(place: PlaceExpr) -> Deinit:
    return Deinit(place)


def validate(place: PlaceExpr, fn_entry: bool = False) -> Validate:
    return Validate(place, fn_entry)


def place_mention(place: PlaceExpr) -> PlaceMention:
    return PlaceMention(place)


def goto(block_name: str) -> Goto:
    return Goto(block_name)


def if_(condition: ValueExpr, then_block: str, else_block: str) -> If:
    return If(condition, then_block, else_block)


def switch(value: ValueExpr, cases: Mapping[int, str], fallback: str) -> Switch:
    return Switch(value, tuple(cases.items()), fallback)


def unreachable() -> Unreachable:
    return Unreachable()


def call(
    callee: str | ValueExpr,
    arguments: Sequence[tuple[ValueExpr, ArgAbi]],
    ret: tuple[PlaceExpr, ArgAbi],
    next_block: str | None,
    calling_convention: CallingConvention = CallingConvention.RUST,
) -> Call:
    if isinstance(callee, str):
        callee = fn_ptr(callee)
    return Call(callee, tuple(arguments), ret, next_block, calling_convention)


def return_() -> Return:
    return Return()


def intrinsic(
    op: IntrinsicOp,
    arguments: Sequence[ValueExpr] = (),
    ret: PlaceExpr | None = None,
    next_block: str | None = None,
) -> Intrinsic:
    return Intrinsic(op, tuple(arguments), ret, next_block)


def print_(value: ValueExpr, next_block: str) -> Intrinsic:
    return intrinsic(IntrinsicOp.PRINT_STDOUT, [value], None, next_block)


def exit_() -> Intrinsic:
    return intrinsic(IntrinsicOp.EXIT)


def panic() -> Intrinsic:
    return intrinsic(IntrinsicOp.PANIC)


# ---------------------------------------------------------------------------
# Functions and programs
# ---------------------------------------------------------------------------


def block(statements: Sequence[Statement], terminator: Terminator) -> Block:
    return Block(tuple(statements), terminator)


def function(
    locals: Sequence[PlaceType],
    args: Sequence[int],
    ret: int,
    blocks: Mapping[str, Block],
    start: str = "bb0",
    calling_convention: CallingConvention = CallingConvention.RUST,
) -> Function:
    """A function whose locals are named ``_0``, ``_1``, ... by position."""
    named = {f"_{i}": pt for i, pt in enumerate(locals)}
    return Function(
        locals=named,
        args=tuple((f"_{i}", arg_abi(locals[i])) for i in args),
        ret=(f"_{ret}", arg_abi(locals[ret])),
        start=start,
        blocks=dict(blocks),
        calling_convention=calling_convention,
    )


def program(functions: Mapping[str, Function], start: str = "main") -> Program:
    return Program(functions=dict(functions), start=start)


def small_program(locals: Sequence[PlaceType], statements: Sequence[Statement]) -> Program:
    """A ``main`` that runs ``statements`` and exits.

    The given locals are ``_0`` ... ``_{n-1}``; a unit return local is
    appended after them.
    """
    all_locals = list(locals) + [ptype(unit_ty())]
    main = function(all_locals, [], len(locals), {"bb0": block(statements, exit_())})
    return program({"main": main})


def print_program(
    locals: Sequence[PlaceType],
    statements: Sequence[Statement],
    printed: Sequence[ValueExpr],
) -> Program:
    """Like :func:`small_program`, but prints each of ``printed`` before exiting."""
    blocks = {"bb0": block(statements, goto("print0"))}
    for i, expr in enumerate(printed):
        blocks[f"print{i}"] = block([], print_(expr, f"print{i + 1}"))
    blocks[f"print{len(printed)}"] = block([], exit_())
    all_locals = list(locals) + [ptype(unit_ty())]
    return program({"main": function(all_locals, [], len(locals), blocks)})


__all__ = [name for name in dir() if not name.startswith("_") and name not in {
    "annotations", "Iterable", "Mapping", "Sequence",
}]
