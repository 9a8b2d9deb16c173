"""Material model of a straw (wall, gas and wire) and its crossing path lengths."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

_MAX_ANGLE_FACTOR = 10.0
_MIN_SIN2 = 1.0 / (_MAX_ANGLE_FACTOR * _MAX_ANGLE_FACTOR)


@dataclass(frozen=True)
class MaterialXing:
    """A path of length plen through one material."""

    dmat: Any
    plen: float


@dataclass
class StrawXingConfig:
    """Controls how straw crossing path lengths are computed.

    The default always uses the average correction.
    """

    average: bool = True
    scalevar: bool = True
    minsigdoca: float = -1.0
    maxdoca: float = 0.0
    maxddoca: float = 0.0

    @classmethod
    def exact(cls, minsigdoca: float, maxdoca: float, maxddoca: float, scalevar: bool) -> StrawXingConfig:
        """Configuration that uses the DOCA-based calculation where it is reliable."""
        return cls(False, scalevar, minsigdoca, maxdoca, maxddoca)


class StrawMaterial:
    """A local straw segment: wall, gas and wire materials with their geometry.

    Closest-approach data passed to the methods must provide ``doca``,
    ``doca_var`` and ``dir_dot``.
    """

    def __init__(self, srad, thick, sradsig, wrad, wallmat, gasmat, wiremat) -> None:
        self.straw_radius = float(srad)
        self.wall_thickness = float(thick)
        self.straw_radius_sigma = float(sradsig)
        self.wire_radius = float(wrad)
        self.wall_material = wallmat
        self.gas_material = gasmat
        self.wire_material = wiremat
        self._srad2 = self.straw_radius**2
        # count the gas volume inside 1 sigma to smooth the edge discontinuity
        self._grad = self.straw_radius - self.straw_radius_sigma
        self._grad2 = self._grad**2

    @classmethod
    def from_database(
        cls,
        matdbinfo,
        srad,
        thick,
        sradsig,
        wrad,
        wallmat="straw-wall",
        gasmat="straw-gas",
        wiremat="straw-wire",
    ) -> StrawMaterial:
        """Build using materials looked up by name in a material database."""
        return cls(
            srad,
            thick,
            sradsig,
            wrad,
            matdbinfo.find_det_material(wallmat),
            matdbinfo.find_det_material(gasmat),
            matdbinfo.find_det_material(wiremat),
        )

    def path_lengths(self, cadata, config: StrawXingConfig) -> tuple[float, float, float]:
        """Return (wall, gas, wire) path lengths for the given closest approach."""
        wallpath = gaspath = wirepath = 0.0
        adoca = abs(cadata.doca)
        sigdoca = math.sqrt(cadata.doca_var) if cadata.doca_var >= 0.0 else math.nan
        if adoca < config.maxdoca:
            if (not config.average) and sigdoca < config.minsigdoca and adoca < config.maxddoca:
                doca = min(adoca, self._grad)
                ddoca = doca * doca
                try:
                    gaspath = 2.0 * math.sqrt(self._grad2 - ddoca)
                    wallpath = 2.0 * self.wall_thickness * self.straw_radius / math.sqrt(
                        self._srad2 - ddoca
                    )
                except (ValueError, ZeroDivisionError) as error:
                    raise ValueError("Invalid StrawMaterial pathlength") from error
            else:
                # uncertainty is large compared with the straw: average over impact parameters
                gaspath = math.pi / 2.0 * self.straw_radius
                wallpath = math.pi * self.wall_thickness
            afac = self.angle_factor(cadata.dir_dot)
            wallpath *= afac
            gaspath *= afac
        return wallpath, gaspath, wirepath

    def transit_length(self, cadata) -> float:
        """Length of the path across the straw, corrected for the crossing angle."""
        doca = min(abs(cadata.doca), self._grad)
        tlen = 2.0 * math.sqrt(self._srad2 - doca * doca)
        return tlen * self.angle_factor(cadata.dir_dot)

    def find_xings(self, cadata, config: StrawXingConfig) -> list[MaterialXing]:
        """Material crossings with a positive path length, in wall, gas, wire order."""
        wallpath, gaspath, wirepath = self.path_lengths(cadata, config)
        candidates = (
            (self.wall_material, wallpath),
            (self.gas_material, gaspath),
            (self.wire_material, wirepath),
        )
        return [MaterialXing(dmat, plen) for dmat, plen in candidates if plen > 0.0]

    def angle_factor(self, dirdot: float) -> float:
        """Path-length factor for a particle at the given cosine to the straw axis."""
        sin2 = max(1.0 - dirdot * dirdot, _MIN_SIN2)
        return 1.0 / math.sqrt(sin2)