"""Decode sample-source payloads into homogeneous SampleBatch objects.

Sources deliver one message per network frame. A message carries the
absolute time of its first sample and the samples of one or more channels::

    {"timestamp": 12.5, "data": [[0.1, 0.2, ...], [0.3, 0.1, ...]]}

A flat ``data`` list is treated as a single channel. Messages may arrive as
mappings or as JSON text/bytes. Anything that cannot be turned into a finite
timestamp plus a list of floats raises PayloadError; the detector itself only
ever sees validated float arrays.
"""

from __future__ import annotations

import json
import math
from typing import Any, Mapping, Sequence

import numpy as np

from shared.models import SampleBatch

_TIME_KEYS = ("timestamp", "time")


class PayloadError(ValueError):
    """Raised when a source message cannot be decoded into samples."""


def _coerce_mapping(message: Any) -> Mapping[str, Any]:
    if isinstance(message, (bytes, bytearray)):
        try:
            message = message.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PayloadError(f"payload is not UTF-8: {exc}") from exc
    if isinstance(message, str):
        try:
            message = json.loads(message)
        except json.JSONDecodeError as exc:
            raise PayloadError(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(message, Mapping):
        raise PayloadError(f"payload must be a mapping, got {type(message).__name__}")
    return message


def _timestamp(message: Mapping[str, Any]) -> float:
    for key in _TIME_KEYS:
        if key in message:
            raw = message[key]
            break
    else:
        raise PayloadError("payload has no timestamp")
    if isinstance(raw, bool):
        raise PayloadError("timestamp must be numeric")
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError) as exc:
        raise PayloadError(f"timestamp must be numeric, got {raw!r}") from exc
    if not math.isfinite(value):
        raise PayloadError("timestamp must be finite")
    return value


def _channel_values(data: Any, channel: int) -> Sequence[Any]:
    if not isinstance(data, (list, tuple)):
        raise PayloadError("data must be a list")
    if not data or not isinstance(data[0], (list, tuple)):
        if channel != 0:
            raise PayloadError(f"channel {channel} requested from single-channel payload")
        return data
    if not 0 <= channel < len(data):
        raise PayloadError(f"channel {channel} out of range (payload has {len(data)})")
    values = data[channel]
    if not isinstance(values, (list, tuple)):
        raise PayloadError(f"channel {channel} data must be a list")
    return values


def decode_message(message: Any, channel: int = 0) -> SampleBatch:
    """Decode one source message and select a single channel's samples."""
    payload = _coerce_mapping(message)
    start_time = _timestamp(payload)
    if "data" not in payload:
        raise PayloadError("payload has no data")
    raw_values = _channel_values(payload["data"], channel)

    values = np.empty(len(raw_values), dtype=np.float64)
    for idx, item in enumerate(raw_values):
        if isinstance(item, bool) or not isinstance(item, (int, float, np.integer, np.floating, str)):
            raise PayloadError(f"sample {idx} is not numeric: {item!r}")
        try:
            values[idx] = float(item)
        except (ValueError, OverflowError) as exc:
            raise PayloadError(f"sample {idx} is not numeric: {item!r}") from exc
        if not math.isfinite(values[idx]):
            raise PayloadError(f"sample {idx} is not finite")
    return SampleBatch(values=values, start_time=start_time, channel=str(channel))


def encode_message(channels: Sequence[Sequence[float]] | np.ndarray, timestamp: float) -> dict:
    """Build a message in the shape `decode_message` accepts."""
    arr = np.asarray(channels, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2:
        raise ValueError("channels must be 1D or 2D (channels, samples)")
    return {"timestamp": float(timestamp), "data": arr.tolist()}


__all__ = ["PayloadError", "decode_message", "encode_message"]
