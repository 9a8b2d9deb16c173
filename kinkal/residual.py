"""One-dimensional tension between a measurement and a trajectory prediction."""

from __future__ import annotations

import math

import numpy as np

from .fit_state import NPARAMS, Weights


class Residual:
    """Residual value, its variances, and its derivative with respect to the parameters."""

    def __init__(
        self,
        value: float = 0.0,
        mvar: float = -1.0,
        pvar: float = -1.0,
        active: bool = False,
        drdp=None,
    ) -> None:
        self.value = float(value)
        self.measurement_variance = float(mvar)
        self.parameter_variance = float(pvar)
        self.active = bool(active)
        self.drdp = np.zeros(NPARAMS) if drdp is None else np.array(drdp, dtype=float)

    @property
    def variance(self) -> float:
        return self.measurement_variance + self.parameter_variance

    @property
    def chisq(self) -> float:
        return self.value**2 / self.variance if self.active else 0.0

    @property
    def chi(self) -> float:
        return self.value / math.sqrt(self.variance) if self.active else 0.0

    @property
    def pull(self) -> float:
        return self.chi

    @property
    def ndof(self) -> int:
        return 1 if self.active else 0

    def weight(self, params, varscale: float = 1.0) -> Weights:
        """Weight implied by this residual with respect to the given parameter vector."""
        if not self.active:
            return Weights()
        mvar = self.measurement_variance * varscale
        weight_mat = np.outer(self.drdp, self.drdp) / mvar
        # residual = measurement - prediction
        weight_vec = weight_mat @ np.asarray(params, dtype=float) + self.drdp * self.value / mvar
        return Weights(weight_vec, weight_mat)

    def __str__(self) -> str:
        return f" residual value {self.value:g} variance {self.variance:g} dRdP {self.drdp}"