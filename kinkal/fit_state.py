"""Parameter- and weight-space representations of the fit data."""

from __future__ import annotations

from enum import Enum

import numpy as np

NPARAMS = 6


class TimeDir(Enum):
    """Direction of processing along the trajectory time."""

    FORWARDS = 0
    BACKWARDS = 1


def _invert(matrix: np.ndarray, what: str) -> np.ndarray:
    try:
        return np.linalg.inv(matrix)
    except np.linalg.LinAlgError as error:
        raise ValueError(f"{what} matrix is singular") from error


class Parameters:
    """Parameter vector with its covariance matrix."""

    def __init__(self, parameters=None, covariance=None) -> None:
        self.parameters = (
            np.zeros(NPARAMS) if parameters is None else np.array(parameters, dtype=float)
        )
        self.covariance = (
            np.zeros((NPARAMS, NPARAMS))
            if covariance is None
            else np.array(covariance, dtype=float)
        )

    @classmethod
    def from_weights(cls, weights: Weights) -> Parameters:
        """Convert a weight representation back into parameters and covariance."""
        covariance = _invert(weights.weight_mat, "weight")
        return cls(covariance @ weights.weight_vec, covariance)

    def copy(self) -> Parameters:
        return Parameters(self.parameters, self.covariance)

    def __iadd__(self, other: Parameters) -> Parameters:
        self.parameters += other.parameters
        self.covariance += other.covariance
        return self

    def __repr__(self) -> str:
        return f"Parameters({self.parameters!r}, {self.covariance!r})"


class Weights:
    """Information (inverse covariance) representation of parameters."""

    def __init__(self, weight_vec=None, weight_mat=None) -> None:
        self.weight_vec = (
            np.zeros(NPARAMS) if weight_vec is None else np.array(weight_vec, dtype=float)
        )
        self.weight_mat = (
            np.zeros((NPARAMS, NPARAMS))
            if weight_mat is None
            else np.array(weight_mat, dtype=float)
        )

    @classmethod
    def from_parameters(cls, params: Parameters) -> Weights:
        """Convert parameters and covariance into the weight representation."""
        weight_mat = _invert(params.covariance, "covariance")
        return cls(weight_mat @ params.parameters, weight_mat)

    def copy(self) -> Weights:
        return Weights(self.weight_vec, self.weight_mat)

    def __iadd__(self, other: Weights) -> Weights:
        self.weight_vec += other.weight_vec
        self.weight_mat += other.weight_mat
        return self

    def __isub__(self, other: Weights) -> Weights:
        self.weight_vec -= other.weight_vec
        self.weight_mat -= other.weight_mat
        return self

    def __imul__(self, factor: float) -> Weights:
        self.weight_vec *= factor
        self.weight_mat *= factor
        return self

    def __repr__(self) -> str:
        return f"Weights({self.weight_vec!r}, {self.weight_mat!r})"


class FitState:
    """Fit data kept in parameter or weight space, converted lazily between the two."""

    def __init__(self, parameters: Parameters | None = None, weights: Weights | None = None) -> None:
        if parameters is not None and weights is not None:
            raise ValueError("FitState takes parameters or weights, not both")
        self._pdata = parameters.copy() if parameters is not None else Parameters()
        self._wdata = weights.copy() if weights is not None else Weights()
        self.has_parameters = parameters is not None
        self.has_weights = weights is not None

    def append_parameters(self, params: Parameters, tdir: TimeDir = TimeDir.FORWARDS) -> None:
        """Add a parameter change (signed by direction) and its covariance."""
        pdata = self.p_data()
        if tdir is TimeDir.FORWARDS:
            pdata.parameters += params.parameters
        else:
            pdata.parameters -= params.parameters
        pdata.covariance += params.covariance
        self.has_parameters = True
        self.has_weights = False

    def append_vector(self, pvec, tdir: TimeDir = TimeDir.FORWARDS) -> None:
        """Add a parameter vector, leaving the covariance unchanged."""
        pdata = self.p_data()
        if tdir is TimeDir.FORWARDS:
            pdata.parameters += pvec
        else:
            pdata.parameters -= pvec
        self.has_parameters = True
        self.has_weights = False

    def append_weights(self, weights: Weights) -> None:
        """Add information in weight space."""
        self.w_data().__iadd__(weights)
        self.has_weights = True
        self.has_parameters = False

    def p_data(self) -> Parameters:
        """Parameter-space view, computed from the weights if needed."""
        if not self.has_parameters and self.has_weights:
            self._pdata = Parameters.from_weights(self._wdata)
            self.has_parameters = True
        return self._pdata

    def w_data(self) -> Weights:
        """Weight-space view, computed from the parameters if needed."""
        if not self.has_weights and self.has_parameters:
            self._wdata = Weights.from_parameters(self._pdata)
            self.has_weights = True
        return self._wdata