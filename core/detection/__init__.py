from .base import (
    DETECTOR_REGISTRY,
    DetectorParameter,
    StreamDetector,
    register_detector,
)
from .tap import TapDetector

__all__ = [
    "StreamDetector",
    "DetectorParameter",
    "DETECTOR_REGISTRY",
    "register_detector",
    "TapDetector",
]
