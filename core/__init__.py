"""Core application utilities."""

from .conditioning import FilterSettings, SignalConditioner
from .detection import TapDetector
from .envelope import WindowedRms
from .retention import PruneStats, RetentionPruner
from .runtime import RuntimeStats, TapRuntime
from shared.models import RmsPoint, SampleBatch, TapDecision

__all__ = [
    "RmsPoint",
    "SampleBatch",
    "TapDecision",
    "WindowedRms",
    "RetentionPruner",
    "PruneStats",
    "TapDetector",
    "TapRuntime",
    "RuntimeStats",
    "FilterSettings",
    "SignalConditioner",
]
