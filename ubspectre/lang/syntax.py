"""Program representation executed by the machine.

A ``Program`` is a set of ``Function``s, each a control-flow graph of
``Block``s holding ``Statement``s and ending in a ``Terminator``. Operands
are ``ValueExpr`` trees; memory locations are ``PlaceExpr`` trees.

Programs are assumed to be well-formed (types agree, offsets in range,
blocks and locals exist). The machine only re-checks what can go wrong
dynamically.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto

from ubspectre.core.types import EnumType, IntType, PlaceType, PtrType, Type, UnionType
from ubspectre.core.values import Value


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class IntUnOp(Enum):
    NEG = auto()
    BIT_NOT = auto()


class BoolUnOp(Enum):
    NOT = auto()


@dataclass(frozen=True)
class IntToIntCast:
    target: IntType


@dataclass(frozen=True)
class Transmute:
    target: Type


@dataclass(frozen=True)
class PtrToInt:
    """Expose the pointer's provenance and yield its address as ``usize``."""


@dataclass(frozen=True)
class IntToPtr:
    target: PtrType


class IntBinOp(Enum):
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()
    REM = auto()
    SHL = auto()
    SHR = auto()
    BIT_AND = auto()
    BIT_OR = auto()
    BIT_XOR = auto()
    ADD_UNCHECKED = auto()
    SUB_UNCHECKED = auto()
    MUL_UNCHECKED = auto()
    SHL_UNCHECKED = auto()
    SHR_UNCHECKED = auto()


class RelOp(Enum):
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()
    EQ = auto()
    NE = auto()
    CMP = auto()


class BoolBinOp(Enum):
    AND = auto()
    OR = auto()
    XOR = auto()


@dataclass(frozen=True)
class PtrOffset:
    """Byte offset on a pointer; ``inbounds`` makes it bounds-checked."""

    inbounds: bool


UnaryOperator = IntUnOp | BoolUnOp | IntToIntCast | Transmute | PtrToInt | IntToPtr
BinaryOperator = IntBinOp | RelOp | BoolBinOp | PtrOffset


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


class ValueExpr:
    """Expression producing a value."""


class PlaceExpr:
    """Expression denoting a location in memory."""


@dataclass(frozen=True)
class Constant(ValueExpr):
    value: Value
    ty: Type


@dataclass(frozen=True)
class FnPointerConstant(ValueExpr):
    name: str


@dataclass(frozen=True)
class TupleExpr(ValueExpr):
    """Build a tuple or array value; ``ty`` is a ``TupleType`` or ``ArrayType``."""

    fields: tuple[ValueExpr, ...]
    ty: Type


@dataclass(frozen=True)
class UnionExpr(ValueExpr):
    field: int
    expr: ValueExpr
    union_ty: UnionType


@dataclass(frozen=True)
class VariantExpr(ValueExpr):
    discriminant: int
    data: ValueExpr
    enum_ty: EnumType


@dataclass(frozen=True)
class GetDiscriminant(ValueExpr):
    place: PlaceExpr


@dataclass(frozen=True)
class Load(ValueExpr):
    """Read a place; a destructive load leaves the place uninitialized."""

    source: PlaceExpr
    destructive: bool = False


@dataclass(frozen=True)
class AddrOf(ValueExpr):
    """Raw address of a place, without validity checks."""

    target: PlaceExpr
    ptr_ty: PtrType


@dataclass(frozen=True)
class CreateRef(ValueExpr):
    """Reference to a place; the pointer must be valid for ``ptr_ty``."""

    target: PlaceExpr
    ptr_ty: PtrType


@dataclass(frozen=True)
class UnOp(ValueExpr):
    operator: UnaryOperator
    operand: ValueExpr


@dataclass(frozen=True)
class BinOp(ValueExpr):
    operator: BinaryOperator
    left: ValueExpr
    right: ValueExpr


@dataclass(frozen=True)
class Local(PlaceExpr):
    name: str


@dataclass(frozen=True)
class Deref(PlaceExpr):
    operand: ValueExpr
    ptype: PlaceType


@dataclass(frozen=True)
class Field(PlaceExpr):
    root: PlaceExpr
    field: int


@dataclass(frozen=True)
class Index(PlaceExpr):
    root: PlaceExpr
    index: ValueExpr


@dataclass(frozen=True)
class Downcast(PlaceExpr):
    root: PlaceExpr
    discriminant: int


# ---------------------------------------------------------------------------
# Statements and terminators
# ---------------------------------------------------------------------------


class Statement:
    """A straight-line instruction."""


@dataclass(frozen=True)
class Assign(Statement):
    destination: PlaceExpr
    source: ValueExpr


@dataclass(frozen=True)
class Finalize(Statement):
    """Assert that a place holds a valid value; same as ``_ = place``."""

    place: PlaceExpr


@dataclass(frozen=True)
class StorageLive(Statement):
    local: str


@dataclass(frozen=True)
class StorageDead(Statement):
    local: str


@dataclass(frozen=True)
class SetDiscriminant(Statement):
    destination: PlaceExpr
    value: int


@dataclass(frozen=True)
class Deinit(Statement):
    place: PlaceExpr


@dataclass(frozen=True)
class Validate(Statement):
    place: PlaceExpr
    fn_entry: bool = False


@dataclass(frozen=True)
class PlaceMention(Statement):
    place: PlaceExpr


class CallingConvention(Enum):
    RUST = auto()
    C = auto()


class PassMode(Enum):
    DIRECT = auto()
    INDIRECT = auto()


@dataclass(frozen=True)
class ArgAbi:
    """How an argument or return value is passed."""

    size: int
    align: int
    mode: PassMode = PassMode.DIRECT


class IntrinsicOp(Enum):
    PRINT_STDOUT = auto()
    PRINT_STDERR = auto()
    EXIT = auto()
    PANIC = auto()
    ALLOCATE = auto()
    DEALLOCATE = auto()
    POINTER_EXPOSE_PROVENANCE = auto()
    POINTER_WITH_EXPOSED_PROVENANCE = auto()
    ASSUME = auto()


class Terminator:
    """Ends a block and decides where control goes next."""


@dataclass(frozen=True)
class Goto(Terminator):
    block: str


@dataclass(frozen=True)
class If(Terminator):
    condition: ValueExpr
    then_block: str
    else_block: str


@dataclass(frozen=True)
class Switch(Terminator):
    value: ValueExpr
    cases: tuple[tuple[int, str], ...]
    fallback: str


@dataclass(frozen=True)
class Unreachable(Terminator):
    pass


@dataclass(frozen=True)
class Call(Terminator):
    callee: ValueExpr
    arguments: tuple[tuple[ValueExpr, ArgAbi], ...]
    ret: tuple[PlaceExpr, ArgAbi]
    next_block: str | None
    calling_convention: CallingConvention = CallingConvention.RUST


@dataclass(frozen=True)
class Return(Terminator):
    pass


@dataclass(frozen=True)
class Intrinsic(Terminator):
    intrinsic: IntrinsicOp
    arguments: tuple[ValueExpr, ...]
    ret: PlaceExpr | None
    next_block: str | None


# ---------------------------------------------------------------------------
# Functions and programs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Block:
    statements: tuple[Statement, ...]
    terminator: Terminator


@dataclass(frozen=True)
class Function:
    locals: Mapping[str, PlaceType]
    args: tuple[tuple[str, ArgAbi], ...]
    ret: tuple[str, ArgAbi]
    start: str
    blocks: Mapping[str, Block]
    calling_convention: CallingConvention = CallingConvention.RUST


@dataclass(frozen=True)
class Program:
    functions: Mapping[str, Function] = field(default_factory=dict)
    start: str = "main"


__all__ = [
    "IntUnOp",
    "BoolUnOp",
    "IntToIntCast",
    "Transmute",
    "PtrToInt",
    "IntToPtr",
    "IntBinOp",
    "RelOp",
    "BoolBinOp",
    "PtrOffset",
    "UnaryOperator",
    "BinaryOperator",
    "ValueExpr",
    "PlaceExpr",
    "Constant",
    "FnPointerConstant",
    "TupleExpr",
    "UnionExpr",
    "VariantExpr",
    "GetDiscriminant",
    "Load",
    "AddrOf",
    "CreateRef",
    "UnOp",
    "BinOp",
    "Local",
    "Deref",
    "Field",
    "Index",
    "Downcast",
    "Statement",
    "Assign",
    "Finalize",
    "StorageLive",
    "StorageDead",
    "SetDiscriminant",
    "Deinit",
    "Validate",
    "PlaceMention",
    "CallingConvention",
    "PassMode",
    "ArgAbi",
    "IntrinsicOp",
    "Terminator",
    "Goto",
    "If",
    "Switch",
    "Unreachable",
    "Call",
    "Return",
    "Intrinsic",
    "Block",
    "Function",
    "Program",
]
