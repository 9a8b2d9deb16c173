"""Time ranges and intersections of trajectories with thin cylindrical shells."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any


@dataclass
class TimeRange:
    """A closed interval of time; a range with begin equal to end is null."""

    begin: float = 0.0
    end: float = 0.0

    def __post_init__(self) -> None:
        self.begin = float(self.begin)
        self.end = float(self.end)
        if self.end < self.begin:
            raise ValueError("Invalid Time Range")

    @property
    def null(self) -> bool:
        return self.begin == self.end

    @property
    def mid(self) -> float:
        return 0.5 * (self.begin + self.end)

    @property
    def range(self) -> float:
        return self.end - self.begin

    def combine(self, other: TimeRange) -> None:
        """Extend this range to cover the other as well."""
        self.begin = min(self.begin, other.begin)
        self.end = max(self.end, other.end)

    def __contains__(self, time: float) -> bool:
        return self.begin <= time <= self.end

    def __str__(self) -> str:
        return f"[{self.begin:g},{self.end:g}]"


def _rho(vec) -> float:
    return math.hypot(vec[0], vec[1])


def _ratio(num: float, den: float) -> float:
    if den != 0.0:
        return num / den
    if num == 0.0:
        return math.nan
    return math.copysign(math.inf, num)


class CylindricalShell:
    """A thin cylinder of passive material, centred on the z axis.

    Trajectories passed to the intersection methods provide ``position3(t)``
    and ``velocity(t)`` returning (x, y, z) sequences, a ``range`` TimeRange
    and ``nearest_piece(t)`` returning a piece with its own ``range``.
    """

    def __init__(self, radius: float = -1.0, rhalf: float = -1.0, zpos: float = 0.0, zhalf: float = -1.0) -> None:
        self.radius = float(radius)
        self.rhalf = float(rhalf)
        self.zpos = float(zpos)
        self.zhalf = float(zhalf)

    @property
    def zmin(self) -> float:
        return self.zpos - self.zhalf

    @property
    def zmax(self) -> float:
        return self.zpos + self.zhalf

    def _dt_to_range(self, pos, vel) -> float:
        target = self.zmin if vel[2] > 0 else self.zmax
        return _ratio(target - pos[2], vel[2])

    def intersect(self, ptraj: Any, tstart: float, tstep: float) -> TimeRange:
        """First crossing of the shell at or after tstart; a null range if there is none."""
        tend = ptraj.range.end
        ttest = tstart
        pos = ptraj.position3(ttest)
        olddr = _rho(pos) - self.radius
        trange = TimeRange(ttest, ttest)
        while ttest < tend:
            vel = ptraj.velocity(ttest)
            dz = abs(tstep * vel[2])
            if self.zmin - dz < pos[2] < self.zmax + dz:
                # within the z extent: step until the radius is crossed
                ttest += tstep
                oldpos = pos
                pos = ptraj.position3(ttest)
                dr = _rho(pos) - self.radius
                if olddr * dr < 0 and (
                    self.zmin < pos[2] < self.zmax or self.zmin < oldpos[2] < self.zmax
                ):
                    tx = ttest - tstep * abs(dr / (dr - olddr))
                    xvel = ptraj.velocity(tx)
                    vr = _rho(xvel)
                    if vr > 1e-8:
                        dt = self.rhalf / vr
                    else:
                        speed = math.sqrt(sum(v * v for v in xvel))
                        dt = 2.0 * math.sqrt(2.0 * self.radius * self.rhalf) / speed
                    trange = TimeRange(tx - dt, tx + dt)
                    break
                olddr = dr
            else:
                # heading away: skip whole pieces until the trajectory turns back
                dt = _ratio(self.zpos - pos[2], vel[2])
                while dt < 0.0 and ttest < tend:
                    ttest = ptraj.nearest_piece(ttest).range.end + tstep
                    pos = ptraj.position3(ttest)
                    vel = ptraj.velocity(ttest)
                    dt = _ratio(self.zpos - pos[2], vel[2])
                # advance to within one step of the z extent
                dt = self._dt_to_range(pos, vel)
                while dt > tstep and ttest < tend:
                    ttest = min(ttest + dt, ptraj.nearest_piece(ttest).range.end + tstep)
                    pos = ptraj.position3(ttest)
                    vel = ptraj.velocity(ttest)
                    dt = self._dt_to_range(pos, vel)
        return trange

    def intersections(self, ptraj: Any, tstart: float, tstep: float) -> list[TimeRange]:
        """All crossings of the shell from tstart to the end of the trajectory."""
        found: list[TimeRange] = []
        trange = TimeRange(tstart, tstart)
        while True:
            trange = self.intersect(ptraj, trange.end, tstep)
            if not trange.null:
                found.append(trange)
            if trange.null or trange.end >= ptraj.range.end:
                return found