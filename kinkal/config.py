"""Fit configuration: the meta-iteration schedule and the convergence criteria."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class PrintLevel(IntEnum):
    """Verbosity of the diagnostic printout produced during a fit."""

    NONE = 0
    MINIMAL = 1
    BASIC = 2
    COMPLETE = 3
    DETAILED = 4
    EXTREME = 5


class MetaIterConfig:
    """One meta-iteration of the fit, held fixed until the algebraic iterations converge.

    The temperature is a dimensionless annealing parameter, roughly equivalent
    to 'sigma'.  Updaters are payload objects that individual effects look up
    by type to adjust their behaviour for this meta-iteration.
    """

    def __init__(self, temperature: float = 0.0) -> None:
        self.temperature = float(temperature)
        self._updaters: list[Any] = []

    def add_updater(self, updater: Any) -> None:
        """Attach an updater payload to this meta-iteration."""
        self._updaters.append(updater)

    @property
    def variance_scale(self) -> float:
        """Variance scaling factor implied by the temperature."""
        return (1.0 + self.temperature) ** 2

    @property
    def n_updaters(self) -> int:
        return len(self._updaters)

    def find_updater(self, kind: type) -> Any | None:
        """Return the single updater of the given type, or None if there is none.

        Raises ValueError if more than one updater of that type is present.
        """
        found = [updater for updater in self._updaters if isinstance(updater, kind)]
        if len(found) > 1:
            raise ValueError(f"Multiple Updaters of type {kind.__name__} found")
        return found[0] if found else None

    def __str__(self) -> str:
        return (
            f"Meta-Iteration temp {self.temperature:g}"
            f" with {self.n_updaters} Dedicated Updaters"
        )


@dataclass
class Config:
    """Iteration limits, convergence and divergence criteria, and the schedule."""

    maxniter: int = 10
    dwt: float = 1.0e6
    convdchisq: float = 0.01
    divdchisq: float = 10.0
    pdchisq: float = 1.0e6
    divgap: float = 10.0
    tol: float = 1.0e-4
    minndof: int = 5
    bfcorr: bool = True
    ends: bool = True
    plevel: PrintLevel = PrintLevel.NONE
    schedule: list[MetaIterConfig] = field(default_factory=list)

    def __str__(self) -> str:
        header = (
            f"Config maxniter {self.maxniter}"
            f" dweight {self.dwt:g}"
            f" converge dchisq/dof {self.convdchisq:g}"
            f" diverge dchisq/dof {self.divdchisq:g}"
            f" diverge dpar chisq {self.pdchisq:g}"
            f" diverge traj gap (mm) {self.divgap:g}"
            f" fractional momentum tolerance {self.tol:g}"
            f" min NDOF {self.minndof}"
            f" BField correction {int(self.bfcorr)}"
            f" with {len(self.schedule)}"
            " Meta-iterations:\n"
        )
        return header + "".join(f"{miconfig}\n" for miconfig in self.schedule)