"""Non-deterministic choice for the abstract machine.

Two kinds of choice appear in the semantics:

- *Daemonic* choice (``AddressChooser``): the allocator picks an address and
  the rest of the program must behave for every address it could pick.
  ``Z3AddressChooser`` states the address constraints to Z3 and lets the
  optimizer pick the lowest, the highest, or a randomized solution, so tests
  can run the same program under different legal refinements.
- *Angelic* choice (``ProvenancePredictor``): an integer-to-pointer cast may
  pick whichever exposed provenance makes the program defined.
  ``ExposedAllocationPredictor`` picks the exposed allocation whose range
  contains the address, then one the address is one past the end of, and
  otherwise no provenance.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

import z3

from ubspectre.core.bytes import Provenance
from ubspectre.core.exceptions import NoValidChoice, SolverTimeout


class AddressStrategy(Enum):
    """Which legal address the allocator should settle on."""

    LOWEST = "lowest"
    HIGHEST = "highest"
    RANDOM = "random"


@dataclass(frozen=True)
class AddressConstraints:
    """Everything a freshly allocated address has to satisfy.

    Attributes:
        size: Size of the new allocation in bytes.
        align: Required alignment (a power of two).
        limit: One past the largest address.
        occupied: Half-open ``(start, end)`` ranges of live allocations.
    """

    size: int
    align: int
    limit: int
    occupied: tuple[tuple[int, int], ...] = field(default_factory=tuple)

    def admits(self, addr: int) -> bool:
        """Check a candidate address directly."""
        if addr <= 0 or addr % self.align != 0 or addr + self.size >= self.limit:
            return False
        end = addr + self.size
        return all(end <= start or stop <= addr for start, stop in self.occupied)

    def to_z3(self, addr: z3.ArithRef, slot: z3.ArithRef) -> list[z3.BoolRef]:
        constraints = [
            slot >= 1,
            addr == slot * self.align,
            addr + self.size < self.limit,
        ]
        for start, stop in self.occupied:
            constraints.append(z3.Or(addr + self.size <= start, stop <= addr))
        return constraints


class AddressChooser:
    """Daemonic chooser for allocation addresses."""

    def pick(self, constraints: AddressConstraints) -> int:
        raise NotImplementedError


class Z3AddressChooser(AddressChooser):
    """Pick allocation addresses by optimizing over the Z3 encoding."""

    def __init__(
        self,
        strategy: AddressStrategy = AddressStrategy.LOWEST,
        seed: int | None = None,
        timeout_ms: int = 10000,
    ) -> None:
        self.strategy = strategy
        self.timeout_ms = timeout_ms
        self._rng = random.Random(seed)
        self._query_count = 0

    def pick(self, constraints: AddressConstraints) -> int:
        if self.strategy is AddressStrategy.RANDOM:
            floor = self._rng.randrange(0, constraints.limit)
            addr = self._solve(constraints, minimize=True, floor=floor)
            if addr is not None:
                return addr
        addr = self._solve(constraints, minimize=self.strategy is not AddressStrategy.HIGHEST)
        if addr is None:
            raise NoValidChoice(
                f"no address for an allocation of size {constraints.size} "
                f"and alignment {constraints.align}"
            )
        return addr

    def _solve(
        self,
        constraints: AddressConstraints,
        minimize: bool,
        floor: int | None = None,
    ) -> int | None:
        self._query_count += 1
        addr = z3.Int("addr")
        slot = z3.Int("slot")
        opt = z3.Optimize()
        opt.set("timeout", self.timeout_ms)
        opt.add(*constraints.to_z3(addr, slot))
        if floor is not None:
            opt.add(addr >= floor)
        if minimize:
            opt.minimize(addr)
        else:
            opt.maximize(addr)
        result = opt.check()
        if result == z3.unknown:
            raise SolverTimeout(
                f"address solver gave up ({opt.reason_unknown()}) after {self.timeout_ms} ms",
                self.timeout_ms,
            )
        if result != z3.sat:
            return None
        return opt.model()[addr].as_long()

    def get_stats(self) -> dict[str, int]:
        return {"queries": self._query_count}

    def __repr__(self) -> str:
        return f"Z3AddressChooser({self.strategy.value}, queries={self._query_count})"


class ProvenancePredictor:
    """Angelic chooser for the provenance of integer-to-pointer casts."""

    def predict(
        self,
        addr: int,
        exposed: Iterable[Provenance],
        fits: Callable[[Provenance], bool],
        contains: Callable[[Provenance], bool] | None = None,
    ) -> Provenance | None:
        """Return an exposed provenance or ``None``; never anything else.

        ``fits`` accepts every provenance the pointer may usefully carry;
        ``contains``, when given, singles out the preferred ones among them.
        """
        raise NotImplementedError


class ExposedAllocationPredictor(ProvenancePredictor):
    """Prefer the lowest exposed provenance that ``contains`` the address, then one that ``fits``."""

    def predict(
        self,
        addr: int,
        exposed: Iterable[Provenance],
        fits: Callable[[Provenance], bool],
        contains: Callable[[Provenance], bool] | None = None,
    ) -> Provenance | None:
        candidates = sorted(exposed)
        for accept in (contains, fits):
            if accept is None:
                continue
            for candidate in candidates:
                if accept(candidate):
                    return candidate
        return None


def make_address_chooser(
    strategy: str | AddressStrategy = AddressStrategy.LOWEST,
    seed: int | None = None,
    timeout_ms: int = 10000,
) -> AddressChooser:
    """Build the chooser named in the configuration."""
    if isinstance(strategy, str):
        try:
            strategy = AddressStrategy(strategy)
        except ValueError:
            raise ValueError(f"unknown address strategy: {strategy!r}") from None
    return Z3AddressChooser(strategy=strategy, seed=seed, timeout_ms=timeout_ms)


__all__ = [
    "AddressStrategy",
    "AddressConstraints",
    "AddressChooser",
    "Z3AddressChooser",
    "ProvenancePredictor",
    "ExposedAllocationPredictor",
    "make_address_chooser",
]
