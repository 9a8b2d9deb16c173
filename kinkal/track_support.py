"""Helpers for the track fit: input time span, field domains and measurement bounds."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from .effects import Effect, Measurement
from .shell import TimeRange


def time_range_of(hits: Iterable[Any], exings: Iterable[Any]) -> TimeRange:
    """Smallest time range covering every hit and material crossing.

    Raises ValueError when there are neither hits nor crossings.
    """
    times = [hit.time for hit in hits] + [exing.time for exing in exings]
    if not times:
        raise ValueError("No hits or crossings to define a time range")
    return TimeRange(min(times), max(times))


def create_domains(bfield: Any, ptraj: Any, trange: TimeRange, tol: float) -> list[TimeRange]:
    """Divide a time range into magnetic domains.

    Within each domain the field inhomogeneity keeps the momentum estimate
    within the fractional tolerance ``tol``.  The field map provides
    ``range_in_tolerance(piece, tstart, tol)`` returning the end time of the
    domain that starts at ``tstart``; the trajectory provides
    ``nearest_piece(t)``.  Domains are contiguous, the first starts at the
    beginning of the range and the last reaches or passes its end.
    """
    domains: list[TimeRange] = []
    tstart = trange.begin
    while True:
        piece = ptraj.nearest_piece(tstart)
        tend = bfield.range_in_tolerance(piece, tstart, tol)
        if tend <= tstart:
            raise ValueError(f"BField domain makes no progress at time {tstart:g}")
        domains.append(TimeRange(tstart, tend))
        tstart = tend
        if tstart >= trange.end:
            return domains


def measurement_bounds(effects: Sequence[Effect]) -> tuple[int, int] | None:
    """Slice bounds (start, stop) spanning the first to the last active measurement.

    ``effects[start:stop]`` is the part of the time-ordered effects processed
    in the fit; effects before ``start`` and from ``stop`` on lie outside the
    measured region.  Returns None when no measurement is active.
    """
    active = [
        index
        for index, effect in enumerate(effects)
        if isinstance(effect, Measurement) and effect.active
    ]
    if not active:
        return None
    return active[0], active[-1] + 1