"""Integer-pointer cast model.

Casting a pointer to an integer *exposes* its provenance. Casting an
integer back to a pointer may only recover a provenance that was exposed
before (or none at all); which one is an angelic choice delegated to a
``ProvenancePredictor``. The exposed set only ever grows during a run.
"""

from __future__ import annotations

from collections.abc import Callable

from ubspectre.core.bytes import Pointer, Provenance
from ubspectre.core.exceptions import SpecificationBug
from ubspectre.core.solver import ExposedAllocationPredictor, ProvenancePredictor
from ubspectre.logging import Category, get_logger


class IntPtrCast:
    """Exposed-provenance bookkeeping for one execution."""

    def __init__(self, predictor: ProvenancePredictor | None = None) -> None:
        self.exposed: set[Provenance] = set()
        self.predictor = predictor or ExposedAllocationPredictor()
        self._logger = get_logger()

    def ptr2int(self, ptr: Pointer) -> int:
        """Expose the pointer's provenance and return its address."""
        if ptr.provenance is not None and ptr.provenance not in self.exposed:
            self.exposed.add(ptr.provenance)
            self._logger.debug(f"exposed {ptr.provenance!r}", category=Category.INTPTRCAST)
        return ptr.addr

    def int2ptr(
        self,
        addr: int,
        fits: Callable[[Provenance], bool] | None = None,
        contains: Callable[[Provenance], bool] | None = None,
    ) -> Pointer:
        """Turn ``addr`` into a pointer carrying a predicted, previously exposed provenance.

        Args:
            addr: The integer address.
            fits: Optional predicate telling the predictor which exposed
                provenances would make later accesses through the pointer
                defined. Without it every exposed provenance is acceptable.
            contains: Optional predicate for the provenances whose allocation
                strictly contains ``addr``; these win over the rest of ``fits``.
        """
        provenance = self.predictor.predict(addr, frozenset(self.exposed), fits or (lambda _: True), contains)
        if provenance is not None and provenance not in self.exposed:
            raise SpecificationBug(f"predicted provenance {provenance!r} was never exposed")
        self._logger.debug(f"int2ptr {addr:#x} -> {provenance!r}", category=Category.INTPTRCAST)
        return Pointer(addr, provenance)

    def reset(self) -> None:
        """Forget all exposures; only valid between independent executions."""
        self.exposed.clear()


__all__ = ["IntPtrCast"]
