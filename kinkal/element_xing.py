"""Material effects of a particle crossing a detector element."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Any

import numpy as np

from .config import MetaIterConfig
from .fit_state import Parameters, TimeDir
from .straw_material import MaterialXing


class MomDirection(IntEnum):
    """Momentum basis directions used to express material effects."""

    PERPDIR = 0
    PHIDIR = 1
    MOMDIR = 2


class ElementXing(ABC):
    """A crossing of a detector element by the particle.

    The reference trajectory must provide ``momentum(time)`` and ``mass``;
    materials must provide ``energy_loss``, ``energy_loss_var``,
    ``scatter_angle_var`` (each taking momentum, path length and mass) and
    ``radiation_fraction(path_in_cm)``.
    """

    @abstractmethod
    def update_reference(self, ktraj: Any) -> None:
        """Refer to a new trajectory."""

    @abstractmethod
    def update_state(self, config: MetaIterConfig, first: bool) -> None:
        """Update the state for a meta-iteration."""

    @abstractmethod
    def parameters(self, tdir: TimeDir) -> Parameters:
        """Parameter change induced by this crossing in the given direction."""

    @property
    @abstractmethod
    def time(self) -> float:
        """Time the particle crosses this element."""

    @property
    @abstractmethod
    def transit_time(self) -> float:
        """Time taken to cross this element."""

    @property
    @abstractmethod
    def reference_trajectory(self) -> Any:
        """Trajectory the crossing is defined with respect to."""

    @property
    @abstractmethod
    def mat_xings(self) -> list[MaterialXing]:
        """Effect of each material component on the trajectory."""

    @abstractmethod
    def describe(self, detail: int = 0) -> str:
        """Diagnostic description."""

    @property
    def active(self) -> bool:
        """Crossings without material are inactive."""
        return len(self.mat_xings) > 0

    def material_effects(self, tdir: TimeDir) -> tuple[np.ndarray, np.ndarray]:
        """Fractional momentum change and its variance, indexed by MomDirection."""
        dmom = np.zeros(len(MomDirection))
        momvar = np.zeros(len(MomDirection))
        traj = self.reference_trajectory
        mom = traj.momentum(self.time)
        mass = traj.mass
        dmfde = self.eloss_factor(tdir) * math.sqrt(mom * mom + mass * mass) / (mom * mom)
        for mxing in self.mat_xings:
            dmat, plen = mxing.dmat, mxing.plen
            momvar[MomDirection.MOMDIR] += dmat.energy_loss_var(mom, plen, mass) * dmfde * dmfde
            dmom[MomDirection.MOMDIR] += dmat.energy_loss(mom, plen, mass) * dmfde
            # scattering has no net effect, only noise, equally in both transverse directions
            scatvar = dmat.scatter_angle_var(mom, plen, mass)
            momvar[MomDirection.PERPDIR] += scatvar
            momvar[MomDirection.PHIDIR] += scatvar
        return dmom, momvar

    def radiation_fraction(self) -> float:
        """Summed radiation-length fraction of all material crossings (path in cm)."""
        return sum(mxing.dmat.radiation_fraction(mxing.plen / 10.0) for mxing in self.mat_xings)

    @staticmethod
    def eloss_factor(tdir: TimeDir) -> float:
        return 1.0 if tdir is TimeDir.FORWARDS else -1.0

    def __str__(self) -> str:
        return self.describe(0)