from .timers import Timer, RoundTimings
from .metrics import inertia, centroid_shift, throughput

__all__ = [
    "Timer",
    "RoundTimings",
    "inertia",
    "centroid_shift",
    "throughput",
]
