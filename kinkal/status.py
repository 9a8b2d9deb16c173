"""Fit status and chi-squared bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


@dataclass(frozen=True)
class Chisq:
    """A chi-squared value together with its number of degrees of freedom."""

    chisq: float = 0.0
    ndof: int = 0

    @property
    def chisq_per_ndof(self) -> float:
        return self.chisq / self.ndof if self.ndof > 0 else 0.0

    def __add__(self, other: Chisq) -> Chisq:
        if not isinstance(other, Chisq):
            return NotImplemented
        return Chisq(self.chisq + other.chisq, self.ndof + other.ndof)

    def __str__(self) -> str:
        return f"chisq {self.chisq:g} NDOF {self.ndof}"


class FitStatus(IntEnum):
    """Outcome of a fit iteration; values below LOWNDOF are usable."""

    UNFIT = -1
    CONVERGED = 0
    UNCONVERGED = 1
    LOWNDOF = 2
    GAPDIVERGED = 3
    PARAMSDIVERGED = 4
    CHISQDIVERGED = 5
    FAILED = 6


_STATUS_NAMES = {
    FitStatus.UNFIT: "Unfit ",
    FitStatus.UNCONVERGED: "Unconverged ",
    FitStatus.CONVERGED: "Converged ",
    FitStatus.CHISQDIVERGED: "Chi2Diverged ",
    FitStatus.PARAMSDIVERGED: "ParamsDiverged ",
    FitStatus.GAPDIVERGED: "GapDiverged ",
    FitStatus.LOWNDOF: "LowNDOF ",
    FitStatus.FAILED: "Failed ",
}


def status_name(stat: FitStatus) -> str:
    """Printable name of a fit status; unknown values read as unfit."""
    return _STATUS_NAMES.get(stat, _STATUS_NAMES[FitStatus.UNFIT])


@dataclass
class Status:
    """State of the fit at one (meta-)iteration."""

    miter: int
    iteration: int = 0
    status: FitStatus = FitStatus.UNFIT
    chisq: Chisq = field(default_factory=Chisq)
    comment: str = ""

    @property
    def usable(self) -> bool:
        return self.status < FitStatus.LOWNDOF

    @property
    def needs_fit(self) -> bool:
        return self.status in (FitStatus.UNFIT, FitStatus.UNCONVERGED)

    def __str__(self) -> str:
        return (
            f"Fit Status {status_name(self.status)}{self.comment}"
            f" Meta-iteration {self.miter}"
            f" iteration {self.iteration}"
            f" {self.chisq}"
        )