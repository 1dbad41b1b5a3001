from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Protocol, Sequence, Type


@dataclass
class DetectorParameter:
    name: str
    default: float | int | str
    min: float | None = None
    max: float | None = None
    help: str = ""


class StreamDetector(Protocol):
    name: str
    display_name: str

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        ...

    def configure(self, **params) -> None:
        ...

    def ingest(self, values: Sequence[float], batch_start_time: float) -> int:
        """Feed one batch of samples with the absolute time of its first sample."""
        ...

    def tick(self, delta: float) -> bool:
        """Advance the detector clock and return the current trigger decision."""
        ...

    def reset(self) -> None:
        ...


DETECTOR_REGISTRY: Dict[str, Type[StreamDetector]] = {}


def register_detector(cls: Type[StreamDetector]) -> Type[StreamDetector]:
    if not hasattr(cls, "name"):
        raise ValueError(f"Detector {cls} must have a 'name' attribute")
    DETECTOR_REGISTRY[cls.name] = cls
    return cls
