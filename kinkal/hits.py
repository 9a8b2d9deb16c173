"""Measurements that constrain the fit, expressed as weights on the trajectory parameters."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Sequence

import numpy as np

from .config import MetaIterConfig
from .fit_state import NPARAMS, Parameters, Weights
from .residual import Residual
from .status import Chisq


def _param_name(traj: Any, ipar: int) -> str:
    namer = getattr(traj, "param_name", None)
    return str(namer(ipar)) if callable(namer) else f"parameter {ipar}"


class Hit(ABC):
    """A measurement constraining some aspect of the fit.

    The constraint is a weight with respect to the parameters of a reference
    trajectory, which must expose a ``params`` attribute holding Parameters.
    """

    def __init__(self, ref_traj: Any = None) -> None:
        self.ref_traj = ref_traj

    @property
    @abstractmethod
    def active(self) -> bool:
        """Whether this hit is used in the fit."""

    @property
    @abstractmethod
    def ndof(self) -> int:
        """Number of degrees of freedom this hit contributes."""

    @abstractmethod
    def chisq(self, params: Parameters) -> Chisq:
        """Least-squares distance of this hit to the given parameters."""

    @property
    @abstractmethod
    def time(self) -> float:
        """Time of this hit with respect to the reference trajectory."""

    @abstractmethod
    def update_state(self, config: MetaIterConfig, first: bool) -> None:
        """Update the hit internals for a meta-iteration."""

    @property
    @abstractmethod
    def weight(self) -> Weights:
        """Information content of this hit in weight space."""

    @abstractmethod
    def describe(self, detail: int = 0) -> str:
        """Diagnostic description."""

    def update_reference(self, ktraj: Any) -> None:
        """Refer to a new trajectory without changing the internal state."""
        self.ref_traj = ktraj

    @property
    def reference_trajectory(self) -> Any:
        return self.ref_traj

    @property
    def reference_parameters(self) -> Parameters:
        """Parameters the weight refers to; these include this hit's information."""
        return self.ref_traj.params

    def unbiased_parameters(self) -> Parameters:
        """Reference parameters with this hit's information removed."""
        if not self.active:
            return self.reference_parameters.copy()
        weights = Weights.from_parameters(self.reference_parameters)
        weights -= self.weight
        return Parameters.from_weights(weights)

    def chisquared(self) -> Chisq:
        """Unbiased chi-squared of this hit with respect to the reference."""
        if not self.active:
            return Chisq()
        return self.chisq(self.unbiased_parameters())

    def __str__(self) -> str:
        return self.describe(0)


class ResidualHit(Hit):
    """A hit made of uncorrelated one-dimensional residuals from the same sensor."""

    def __init__(self, ref_traj: Any = None) -> None:
        super().__init__(ref_traj)
        self._weight = Weights()

    @property
    @abstractmethod
    def n_resid(self) -> int:
        """Number of residuals of this hit."""

    @abstractmethod
    def ref_residual(self, ires: int) -> Residual:
        """Residual with respect to the reference trajectory; raises IndexError outside range."""

    @property
    def weight(self) -> Weights:
        return self._weight

    @property
    def active(self) -> bool:
        return self.ndof > 0

    @property
    def ndof(self) -> int:
        return sum(self.ref_residual(ires).ndof for ires in range(self.n_resid))

    def residual(self, ires: int, params: Parameters | None = None) -> Residual:
        """Residual corrected to first order to refer to the given parameters.

        Without parameters, the unbiased parameters are used.
        """
        if params is None:
            params = self.unbiased_parameters()
        resid = self.ref_residual(ires)
        dpvec = params.parameters - self.reference_parameters.parameters
        uresid = resid.value - float(np.dot(dpvec, resid.drdp))
        pvar = float(resid.drdp @ params.covariance @ resid.drdp)
        if pvar < 0.0:
            raise ValueError("Covariance projection inconsistency")
        return Residual(uresid, resid.variance, pvar, resid.active, resid.drdp)

    def pull(self, ires: int) -> float:
        """Unbiased pull of one residual."""
        return self.residual(ires).pull

    def chisq(self, params: Parameters) -> Chisq:
        total = Chisq()
        for ires in range(self.n_resid):
            resid = self.residual(ires, params)
            total = total + Chisq(resid.chisq, resid.ndof)
        return total

    def update_weight(self, config: MetaIterConfig) -> None:
        """Recompute the weight from the active reference residuals."""
        weight = Weights()
        refpars = self.reference_parameters.parameters
        for ires in range(self.n_resid):
            resid = self.ref_residual(ires)
            if resid.active:
                weight += resid.weight(refpars, config.variance_scale)
        self._weight = weight


class ParameterHit(Hit):
    """Direct constraint on a subset of the parameters, adding external information."""

    def __init__(self, time: float, ptraj: Any, params: Parameters, mask: Sequence[bool]) -> None:
        super().__init__(ptraj.nearest_traj(time))
        if len(mask) != NPARAMS:
            raise ValueError(f"Parameter mask must have {NPARAMS} entries")
        self._time = float(time)
        self.constraint_parameters = params.copy()
        self.constraint_mask = tuple(bool(flag) for flag in mask)
        self._ncons = sum(self.constraint_mask)
        self._mask = np.diag([1.0 if flag else 0.0 for flag in self.constraint_mask])
        full = Weights.from_parameters(params)
        wmat = self._mask @ full.weight_mat @ self._mask.T
        wvec = full.weight_vec @ self._mask
        self._pweight = Weights(wvec, wmat)
        self._weight = Weights()

    @property
    def time(self) -> float:
        return self._time

    @property
    def weight(self) -> Weights:
        return self._weight

    @property
    def active(self) -> bool:
        return self._ncons > 0

    @property
    def ndof(self) -> int:
        return self._ncons

    def chisq(self, pdata: Parameters) -> Chisq:
        """Tension between the constraint and the given parameters, using both covariances."""
        pdiff = self.constraint_parameters.parameters - pdata.parameters
        covariance = self.constraint_parameters.covariance + pdata.covariance
        try:
            wmat = np.linalg.inv(covariance)
        except np.linalg.LinAlgError as error:
            raise ValueError("ParameterHit inversion failure") from error
        wmat = self._mask @ wmat @ self._mask.T
        return Chisq(float(pdiff @ wmat @ pdiff), self.ndof)

    def update_state(self, config: MetaIterConfig, first: bool) -> None:
        weight = self._pweight.copy()
        weight *= 1.0 / config.variance_scale
        self._weight = weight

    def update_reference(self, ktraj: Any) -> None:
        self.ref_traj = ktraj

    def describe(self, detail: int = 0) -> str:
        lines = [("Active " if self.active else "Inactive ") + " ParameterHit Hit\n"]
        if detail > 0:
            pars = self.constraint_parameters
            for ipar, flag in enumerate(self.constraint_mask):
                if flag:
                    lines.append(
                        f" constraining parameter {_param_name(self.ref_traj, ipar)}"
                        f" to value {pars.parameters[ipar]:g}"
                        f" +- {math.sqrt(pars.covariance[ipar, ipar]):g}\n"
                    )
        return "".join(lines)