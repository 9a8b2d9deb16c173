"""Discrete effects applied along the fit: measurements, material and field corrections."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from .config import Config, MetaIterConfig
from .element_xing import ElementXing
from .fit_state import NPARAMS, FitState, Parameters, TimeDir, Weights
from .hits import Hit
from .shell import TimeRange
from .status import Chisq


class Effect(ABC):
    """Something that changes the fit state at a given time.

    Particle trajectories handed to ``append`` provide ``front`` and ``back``
    pieces, a ``range`` TimeRange, ``position3(t)``, and ``append(piece)`` /
    ``prepend(piece)``.  Pieces provide mutable ``params`` (Parameters) and
    ``range`` (TimeRange) attributes.
    """

    @property
    @abstractmethod
    def time(self) -> float:
        """Time of this effect."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """Whether this effect is used in the fit."""

    @abstractmethod
    def process(self, state: FitState, tdir: TimeDir) -> None:
        """Add this effect to the ongoing fit in the given direction."""

    @abstractmethod
    def update_state(self, config: MetaIterConfig, first: bool) -> None:
        """Update for a new algebraic iteration."""

    @abstractmethod
    def update_config(self, config: Config) -> None:
        """Update for a new fit configuration."""

    @abstractmethod
    def append(self, ptraj: Any, tdir: TimeDir) -> None:
        """Add this effect to a trajectory in the given direction."""

    @abstractmethod
    def update_reference(self, ktraj: Any) -> None:
        """Refer to a new reference trajectory piece."""

    @abstractmethod
    def chisq(self, pdata: Parameters) -> Chisq:
        """Chi-squared with respect to the given parameters."""

    @abstractmethod
    def describe(self, detail: int = 0) -> str:
        """Diagnostic description."""

    def __str__(self) -> str:
        return f"{'Active ' if self.active else 'Inactive '}time {self.time:g}"


class Measurement(Effect):
    """Constraint on the fit parameters from a hit."""

    def __init__(self, hit: Hit) -> None:
        self.hit = hit

    @property
    def time(self) -> float:
        return self.hit.time

    @property
    def active(self) -> bool:
        return self.hit.active

    def process(self, state: FitState, tdir: TimeDir) -> None:
        # the direction is irrelevant for adding information
        if self.active:
            state.append_weights(self.hit.weight)

    def update_state(self, config: MetaIterConfig, first: bool) -> None:
        self.hit.update_state(config, first)

    def update_config(self, config: Config) -> None:
        pass

    def append(self, ptraj: Any, tdir: TimeDir) -> None:
        self.hit.update_reference(ptraj.back if tdir is TimeDir.FORWARDS else ptraj.front)

    def update_reference(self, ktraj: Any) -> None:
        self.hit.update_reference(ktraj)

    def chisq(self, pdata: Parameters) -> Chisq:
        return self.hit.chisq(pdata)

    def describe(self, detail: int = 0) -> str:
        text = f"Measurement {Effect.__str__(self)}\n"
        if detail > 0:
            text += self.hit.describe(detail)
        return text

    def __str__(self) -> str:
        return Effect.__str__(self)


class Material(Effect):
    """Noise and energy loss from a particle crossing passive material."""

    def __init__(self, exing: ElementXing, ptraj: Any = None) -> None:
        self.element_xing = exing
        self.cache = Weights()

    @property
    def time(self) -> float:
        return self.element_xing.time

    @property
    def active(self) -> bool:
        return self.element_xing.active

    @property
    def reference_trajectory(self) -> Any:
        return self.element_xing.reference_trajectory

    def process(self, state: FitState, tdir: TimeDir) -> None:
        if not self.element_xing.active:
            return
        if tdir is TimeDir.FORWARDS:
            # forwards: cache after processing this effect
            state.append_parameters(self.element_xing.parameters(tdir))
            self.cache += state.w_data()
        else:
            # backwards: cache before processing, to avoid double counting
            self.cache += state.w_data()
            state.append_parameters(self.element_xing.parameters(tdir))

    def update_state(self, config: MetaIterConfig, first: bool) -> None:
        self.element_xing.update_state(config, first)
        self.cache = Weights()

    def update_config(self, config: Config) -> None:
        pass

    def append(self, ptraj: Any, tdir: TimeDir) -> None:
        forwards = tdir is TimeDir.FORWARDS
        if self.element_xing.active:
            etime = self.time
            if (forwards and etime < ptraj.back.range.begin) or (
                not forwards and etime > ptraj.front.range.end
            ):
                raise ValueError("New piece overlaps existing")
            newpiece = copy.deepcopy(ptraj.back if forwards else ptraj.front)
            newpiece.params = Parameters.from_weights(self.cache)
            transit = self.element_xing.transit_time
            if forwards:
                newpiece.range = TimeRange(etime, max(ptraj.range.end, etime + transit))
                ptraj.append(newpiece)
            else:
                newpiece.range = TimeRange(min(ptraj.range.begin, etime - transit), etime)
                ptraj.prepend(newpiece)
        self.element_xing.update_reference(ptraj.back if forwards else ptraj.front)

    def update_reference(self, ktraj: Any) -> None:
        self.element_xing.update_reference(ktraj)

    def chisq(self, pdata: Parameters) -> Chisq:
        return Chisq()

    def describe(self, detail: int = 0) -> str:
        text = f"Material {Effect.__str__(self)} ElementXing {self.element_xing.describe(detail)}"
        if detail > 3:
            text += f" cache {self.cache!r}"
        return text

    def __str__(self) -> str:
        return Effect.__str__(self)


class BFieldEffect(Effect):
    """Correction of the parameters for the field change across a domain.

    It adds no information or noise, only transports the parameters.  The
    field map provides ``field_vect(position)``; pieces provide
    ``set_bnom(time, bfield)``.
    """

    def __init__(self, config: Config, bfield: Any, drange: TimeRange) -> None:
        self.bfield = bfield
        self.range = drange
        self.bfcorr = bool(config.bfcorr)
        self.parameter_change = np.zeros(NPARAMS)

    @property
    def time(self) -> float:
        return self.range.mid

    @property
    def active(self) -> bool:
        return self.bfcorr

    def process(self, state: FitState, tdir: TimeDir) -> None:
        if self.bfcorr:
            state.append_vector(self.parameter_change, tdir)

    def update_state(self, config: MetaIterConfig, first: bool) -> None:
        pass

    def update_config(self, config: Config) -> None:
        self.bfcorr = bool(config.bfcorr)

    def update_reference(self, ktraj: Any) -> None:
        pass

    def append(self, ptraj: Any, tdir: TimeDir) -> None:
        if not self.bfcorr:
            return
        forwards = tdir is TimeDir.FORWARDS
        etime = self.time
        if (forwards and ptraj.back.range.begin > etime) or (
            not forwards and ptraj.front.range.end < etime
        ):
            raise ValueError("BField: Can't append piece")
        if forwards:
            newrange = TimeRange(etime, max(ptraj.range.end, self.range.end))
            bend = self.bfield.field_vect(ptraj.position3(self.range.end))
            newpiece = copy.deepcopy(ptraj.back)
        else:
            newrange = TimeRange(min(ptraj.range.begin, self.range.begin), etime)
            bend = self.bfield.field_vect(ptraj.position3(self.range.begin))
            newpiece = copy.deepcopy(ptraj.front)
        # first-order: keep position and momentum, refer to the field at the domain end
        newpiece.set_bnom(etime, bend)
        newpiece.range = newrange
        backpars = np.array(ptraj.back.params.parameters, dtype=float)
        newpars = np.array(newpiece.params.parameters, dtype=float)
        self.parameter_change = newpars - backpars if forwards else backpars - newpars
        if forwards:
            ptraj.append(newpiece)
        else:
            ptraj.prepend(newpiece)

    def chisq(self, pdata: Parameters) -> Chisq:
        return Chisq()

    def describe(self, detail: int = 0) -> str:
        return (
            f"BField {Effect.__str__(self)} effect {self.parameter_change}"
            f" domain range {self.range}\n"
        )

    def __str__(self) -> str:
        return Effect.__str__(self)