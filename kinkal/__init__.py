"""Kinematic Kalman filter track fitting: configuration, hits, material effects and the track fit."""

__version__ = "0.1.0"
__all__ = [
    "config",
    "status",
    "fit_state",
    "residual",
    "straw_material",
    "hits",
    "element_xing",
    "shell",
    "effects",
    "track_support",
    "track",
]