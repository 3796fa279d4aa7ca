"""
th1c_lib - Python library for the DLP-TH1C multi-sensor module.

Decodes the module's ASCII query/response protocol (temperature, humidity,
pressure, tilt, vibration and sound spectra, light, broadband level) and
aggregates readings into timestamped snapshots.
"""

from th1c_lib.aggregator import AggregationEngine
from th1c_lib.config import SessionConfig
from th1c_lib.errors import (
    DataMissing,
    DecodeError,
    InvalidByteLength,
    InvalidCommand,
    MalformedNumber,
    ResponseTooShort,
    SerialIOError,
)
from th1c_lib.models import (
    ReadingKind,
    ScalarReading,
    SessionMode,
    SessionState,
    Snapshot,
    SpectralReading,
    TiltReading,
)
from th1c_lib.session import PollingSession

__version__ = "0.1.0"

__all__ = [
    "PollingSession",
    "SessionConfig",
    "AggregationEngine",
    "ReadingKind",
    "ScalarReading",
    "TiltReading",
    "SpectralReading",
    "Snapshot",
    "SessionMode",
    "SessionState",
    "DecodeError",
    "DataMissing",
    "ResponseTooShort",
    "MalformedNumber",
    "InvalidByteLength",
    "InvalidCommand",
    "SerialIOError",
]
