"""Core module for ubspectre.
Provides:
- Abstract bytes, pointers and the target byte codec
- Types and values of the instruction language
- The representation relation (encode/decode)
- The basic memory model and typed memory access
- The integer-pointer cast model
- Z3-backed non-deterministic choice
"""

from ubspectre.core.bytes import (
    DEFAULT_TARGET,
    UNINIT,
    AbstractByte,
    AllocId,
    Endianness,
    Pointer,
    Target,
)
from ubspectre.core.exceptions import (
    MachineError,
    MachineTerminated,
    NoValidChoice,
    ProgramPanicked,
    SolverTimeout,
    SpecificationBug,
    StepLimitExceeded,
    UndefinedBehavior,
)
from ubspectre.core.intptrcast import IntPtrCast
from ubspectre.core.memory import Allocation, AllocationKind, BasicMemory
from ubspectre.core.representation import decode, encode
from ubspectre.core.solver import (
    AddressStrategy,
    ExposedAllocationPredictor,
    Z3AddressChooser,
    make_address_chooser,
)
from ubspectre.core.typed_memory import Atomicity, TypedMemory

__all__ = [
    "DEFAULT_TARGET",
    "UNINIT",
    "AbstractByte",
    "AllocId",
    "Endianness",
    "Pointer",
    "Target",
    "MachineError",
    "MachineTerminated",
    "NoValidChoice",
    "ProgramPanicked",
    "SolverTimeout",
    "SpecificationBug",
    "StepLimitExceeded",
    "UndefinedBehavior",
    "IntPtrCast",
    "Allocation",
    "AllocationKind",
    "BasicMemory",
    "decode",
    "encode",
    "AddressStrategy",
    "ExposedAllocationPredictor",
    "Z3AddressChooser",
    "make_address_chooser",
    "Atomicity",
    "TypedMemory",
]
