"""
Shared data structures available to the engine, the sources and any front end.
"""

from .models import RmsPoint, SampleBatch, TapDecision
from .sample_store import SampleStore
from .settings import EngineSettings, EngineSettingsStore

__all__ = ["EngineSettings", "EngineSettingsStore", "RmsPoint", "SampleBatch", "SampleStore", "TapDecision"]
