"""The kinematic Kalman track fit: effects, iteration schedule and fit result."""

from __future__ import annotations

import copy
from typing import Any, Iterable

import numpy as np

from .config import Config, MetaIterConfig, PrintLevel
from .effects import BFieldEffect, Effect, Material, Measurement
from .fit_state import NPARAMS, FitState, TimeDir, Weights
from .shell import TimeRange
from .status import Chisq, FitStatus, Status
from .track_support import create_domains, measurement_bounds, time_range_of

# errors raised while iterating are recorded in the fit status instead of propagating
_FIT_ERRORS = (ArithmeticError, ValueError, RuntimeError, LookupError)
_DOMAIN_EPSILON = 1e-10


def _describe(obj: Any, detail: int) -> str:
    describer = getattr(obj, "describe", None)
    return str(describer(detail)) if callable(describer) else str(obj)


class Track:
    """A track fit from a seed trajectory, hits and material crossings.

    The seed is a piecewise particle trajectory.  Its class must be
    constructible with no arguments (an empty trajectory) or from a single
    piece, and provide ``front``, ``back``, ``pieces``, ``range``,
    ``append``, ``prepend``, ``position3``, ``nearest_index``,
    ``nearest_piece``, ``nearest_traj``, ``set_range`` and ``gaps()``
    returning (largest gap, its index, average gap).  Pieces carry mutable
    ``params`` and ``range`` and provide ``set_bnom(time, bfield)``, which
    re-expresses the same physical state relative to a new field.

    The fit runs on construction.
    """

    def __init__(
        self,
        config: Config,
        bfield: Any,
        seedtraj: Any,
        hits: Iterable[Any],
        exings: Iterable[Any],
    ) -> None:
        self._configs: list[Config] = [config]
        if not config.schedule:
            raise ValueError("Invalid configuration: no schedule")
        self._bfield = bfield
        self._seedtraj = copy.deepcopy(seedtraj)
        self._traj_type = type(self._seedtraj)
        self._history: list[Status] = []
        self._fittraj: Any = None
        self._effects: list[Effect] = []
        self._hits: list[Any] = []
        self._exings: list[Any] = []
        self._domains: list[TimeRange] = []
        self._fit_inputs(list(hits), list(exings))

    # accessors
    @property
    def history(self) -> list[Status]:
        return self._history

    @property
    def fit_status(self) -> Status:
        """Most recent fit status."""
        return self._history[-1]

    @property
    def seed_traj(self) -> Any:
        return self._seedtraj

    @property
    def fit_traj(self) -> Any:
        return self._fittraj

    @property
    def effects(self) -> list[Effect]:
        return self._effects

    @property
    def config(self) -> Config:
        """Current configuration."""
        return self._configs[-1]

    @property
    def configs(self) -> list[Config]:
        return self._configs

    @property
    def bfield(self) -> Any:
        return self._bfield

    @property
    def hits(self) -> list[Any]:
        return self._hits

    @property
    def exings(self) -> list[Any]:
        return self._exings

    @property
    def domains(self) -> list[TimeRange]:
        return self._domains

    def _fit_inputs(self, hits: list[Any], exings: list[Any]) -> None:
        refrange = time_range_of(hits, exings)
        self._seedtraj.set_range(refrange)
        domains = self._create_domains(self._seedtraj, refrange) if self.config.bfcorr else []
        self._create_traj(self._seedtraj, refrange, domains)
        self._create_effects(hits, exings, domains)
        self._fit()

    def extend(self, config: Config, hits: Iterable[Any] = (), exings: Iterable[Any] = ()) -> None:
        """Refit with a new configuration and, optionally, added hits and crossings."""
        hits = list(hits)
        exings = list(exings)
        self._configs.append(config)
        if not config.schedule:
            raise ValueError("Invalid configuration: no schedule")
        if not self.fit_status.usable:
            raise ValueError("Cannot extend unusable fit")
        current = self._fittraj.range
        exrange = TimeRange(current.begin, current.end)
        if hits or exings:
            exrange.combine(time_range_of(hits, exings))
        domains: list[TimeRange] = []
        if config.bfcorr:
            if not self._configs[-2].bfcorr:
                # no domains yet: create them for the whole range and re-express the trajectory
                domains = self._create_domains(self._fittraj, exrange)
                self._replace_traj(domains)
            else:
                exlow = TimeRange(exrange.begin, self._fittraj.range.begin)
                if exlow.range > 0.0:
                    lowdomains = self._create_domains(self._fittraj, exlow)
                    self._extend_traj(lowdomains)
                    domains = lowdomains + domains
                exhigh = TimeRange(self._fittraj.range.end, max(exrange.end, self._fittraj.range.end))
                if exhigh.range > 0.0:
                    highdomains = self._create_domains(self._fittraj, exhigh)
                    self._extend_traj(highdomains)
                    domains = domains + highdomains
        self._create_effects(hits, exings, domains)
        for effect in self._effects:
            effect.update_config(self.config)
        self._fit()

    def _create_domains(self, ptraj: Any, trange: TimeRange) -> list[TimeRange]:
        return create_domains(self._bfield, ptraj, trange, self.config.tol)

    def _rebased(self, piece: Any, bfield: Any, time: float, trange: TimeRange) -> Any:
        newpiece = copy.deepcopy(piece)
        newpiece.set_bnom(time, bfield)
        newpiece.range = TimeRange(trange.begin, trange.end)
        return newpiece

    def _replace_traj(self, domains: list[TimeRange]) -> None:
        """Re-express the fit trajectory relative to the local field of each domain."""
        newtraj = self._traj_type()
        npieces = len(self._fittraj.pieces)
        for domain in domains:
            dtime = domain.begin
            bf = self._bfield.field_vect(self._fittraj.position3(dtime))
            while dtime < domain.end:
                index = self._fittraj.nearest_index(dtime)
                oldpiece = self._fittraj.pieces[index]
                if index < npieces - 1:
                    endtime = min(domain.end, oldpiece.range.end)
                else:
                    endtime = domain.end
                newpiece = self._rebased(oldpiece, bf, dtime, TimeRange(dtime, endtime))
                newtraj.append(newpiece)
                dtime = newpiece.range.end + _DOMAIN_EPSILON
        for effect in self._effects:
            effect.update_reference(newtraj.nearest_traj(effect.time))
        self._fittraj = newtraj

    def _extend_traj(self, domains: list[TimeRange]) -> None:
        # only the range is extended; no parameter rotation at the domain boundaries
        if domains:
            current = self._fittraj.range
            self._fittraj.set_range(
                TimeRange(min(current.begin, domains[0].begin), max(current.end, domains[-1].end))
            )

    def _create_traj(self, seedtraj: Any, trange: TimeRange, domains: list[TimeRange]) -> None:
        if self.config.bfcorr:
            if self._fittraj is not None:
                raise ValueError("Initial reference trajectory must be empty")
            if not domains:
                raise ValueError("Empty domain collection")
            self._fittraj = self._traj_type()
            for domain in domains:
                bf = self._bfield.field_vect(seedtraj.position3(domain.begin))
                piece = seedtraj.nearest_piece(domain.begin)
                self._fittraj.append(self._rebased(piece, bf, domain.begin, domain))
        else:
            # the field at the middle of the range is the nominal field of the fit
            tref = trange.mid
            bf = self._bfield.field_vect(seedtraj.position3(tref))
            firstpiece = self._rebased(seedtraj.nearest_piece(tref), bf, tref, trange)
            self._fittraj = self._traj_type(firstpiece)

    def _create_effects(self, hits: list[Any], exings: list[Any], domains: list[TimeRange]) -> None:
        for hit in hits:
            self._effects.append(Measurement(hit))
            hit.update_reference(self._fittraj.nearest_traj(hit.time))
        for exing in exings:
            self._effects.append(Material(exing, self._fittraj))
            exing.update_reference(self._fittraj.nearest_traj(exing.time))
        for domain in domains:
            self._effects.append(BFieldEffect(self.config, self._bfield, domain))
        self._sort_effects()
        self._hits.extend(hits)
        self._exings.extend(exings)
        self._domains.extend(domains)

    def _sort_effects(self) -> None:
        self._effects.sort(key=lambda effect: effect.time)

    def _fit(self) -> None:
        """Execute the schedule of meta-iterations."""
        for miconfig in self.config.schedule:
            nmeta = self.fit_status.miter + 1 if self._history else 0
            niter = 0
            while True:
                self._history.append(Status(nmeta, niter))
                niter += 1
                try:
                    self._iterate(miconfig)
                except _FIT_ERRORS as error:
                    self.fit_status.status = FitStatus.FAILED
                    self.fit_status.comment = str(error)
                if not self._can_iterate():
                    break
            if not self.fit_status.usable:
                break
        if self.config.ends and self.fit_status.usable:
            self._process_ends()
        if self.config.plevel > PrintLevel.NONE:
            print(self.describe(self.config.plevel))

    def _can_iterate(self) -> bool:
        status = self.fit_status
        return status.needs_fit and status.iteration < self.config.maxniter

    def _init_fit_state(self, dwt: float) -> tuple[FitState, FitState]:
        fwd = self._fittraj.front.params.copy()
        rev = self._fittraj.back.params.copy()
        fwd.covariance *= dwt
        rev.covariance *= dwt
        return (
            FitState(weights=Weights.from_parameters(fwd)),
            FitState(weights=Weights.from_parameters(rev)),
        )

    def _iterate(self, miconfig: MetaIterConfig) -> None:
        config = self.config
        status = self.fit_status
        if config.plevel >= PrintLevel.BASIC:
            print(f"Processing fit iteration {status.iteration}")
        first = status.iteration == 0
        for effect in self._effects:
            effect.update_state(miconfig, first)
        self._sort_effects()
        bounds = measurement_bounds(self._effects)
        fitted = self._effects[bounds[0] : bounds[1]] if bounds is not None else []
        # each active measurement counts as one DOF: conservative, as some carry more
        ndof = sum(1 for eff in fitted if isinstance(eff, Measurement) and eff.active) - NPARAMS
        if bounds is None or ndof < config.minndof:
            status.chisq = Chisq(-1.0, ndof)
            status.status = FitStatus.LOWNDOF
            return
        start, stop = bounds
        fwdstate, revstate = self._init_fit_state(config.dwt / miconfig.variance_scale)
        for effect in fitted:
            dchisq = effect.chisq(fwdstate.p_data())
            status.chisq = status.chisq + dchisq
            effect.process(fwdstate, TimeDir.FORWARDS)
            if config.plevel >= PrintLevel.DETAILED and dchisq.ndof > 0:
                print(f"Chisq increment {dchisq} " + effect.describe(config.plevel - PrintLevel.DETAILED))
        times = []
        for effect in reversed(fitted):
            effect.process(revstate, TimeDir.BACKWARDS)
            times.append(effect.time)
        front = copy.deepcopy(self._fittraj.front)
        front.params = revstate.p_data().copy()
        front.range = TimeRange(min(times) - 0.1, max(times) + 0.1)
        ptraj = self._traj_type(front)
        for effect in fitted:
            effect.append(ptraj, TimeDir.FORWARDS)
        self._set_status(ptraj)
        if status.usable:
            # effects outside the fitted region were not updated by append
            for effect in self._effects[stop:]:
                effect.update_reference(ptraj.nearest_traj(effect.time))
            for effect in reversed(self._effects[:start]):
                effect.update_reference(ptraj.nearest_traj(effect.time))
        self._fittraj = ptraj
        if config.plevel >= PrintLevel.COMPLETE:
            print(_describe(self._fittraj, 1))

    def _param_change_chisq(self, newpiece: Any) -> float:
        oldpiece = self._fittraj.nearest_piece(newpiece.range.mid)
        dpar = np.asarray(newpiece.params.parameters) - np.asarray(oldpiece.params.parameters)
        try:
            weight = np.linalg.inv(oldpiece.params.covariance)
        except np.linalg.LinAlgError as error:
            raise ValueError("Reference covariance uninvertible") from error
        return float(dpar @ weight @ dpar)

    def _set_status(self, ptraj: Any) -> None:
        config = self.config
        status = self.fit_status
        dpchisqfront = self._param_change_chisq(ptraj.front)
        dpchisqback = self._param_change_chisq(ptraj.back)
        # guarantees the first iteration does not count as converged
        dchisq = config.convdchisq + 1e-4
        if status.iteration > 0:
            dchisq = status.chisq.chisq_per_ndof - self._history[-2].chisq.chisq_per_ndof
        _, _, avggap = ptraj.gaps()
        if avggap > config.divgap:
            status.status = FitStatus.GAPDIVERGED
        elif dpchisqfront > config.pdchisq or dpchisqback > config.pdchisq:
            status.status = FitStatus.PARAMSDIVERGED
        elif dchisq > config.divdchisq:
            status.status = FitStatus.CHISQDIVERGED
        elif status.chisq.ndof < config.minndof:
            status.status = FitStatus.LOWNDOF
        elif abs(dchisq) < config.convdchisq:
            status.status = FitStatus.CONVERGED
        else:
            status.status = FitStatus.UNCONVERGED

    def _process_ends(self) -> None:
        """Add the passive effects beyond the first and last measurements."""
        bounds = measurement_bounds(self._effects)
        if bounds is None:
            return
        start, stop = bounds
        tail = self._effects[stop:]
        head = list(reversed(self._effects[:start]))
        last = self.config.schedule[-1]
        for effect in tail + head:
            effect.update_state(last, False)
        fwdstate, revstate = self._init_fit_state(1.0)
        for effect in tail:
            effect.process(revstate, TimeDir.FORWARDS)
        for effect in head:
            effect.process(fwdstate, TimeDir.BACKWARDS)
        # skip effects that migrated into the processed region
        for effect in tail:
            if effect.time > self._fittraj.back.range.begin:
                effect.append(self._fittraj, TimeDir.FORWARDS)
        for effect in head:
            if effect.time < self._fittraj.front.range.end:
                effect.append(self._fittraj, TimeDir.BACKWARDS)

    def describe(self, detail: int = 0) -> str:
        """Diagnostic description of the fit history and result."""
        if detail == PrintLevel.MINIMAL:
            text = str(self.fit_status)
        else:
            text = "Fit History \n" + "".join(f"{stat}\n" for stat in self._history)
        text += " Fit Result " + _describe(self._fittraj, detail)
        if detail > PrintLevel.BASIC:
            text += " Reference " + _describe(self._fittraj, detail - 2)
        if detail > PrintLevel.COMPLETE:
            text += " Effects \n" + "".join(
                effect.describe(detail - 3) for effect in self._effects
            )
        return text

    def __str__(self) -> str:
        return self.describe(PrintLevel.MINIMAL)