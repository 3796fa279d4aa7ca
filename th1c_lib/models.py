"""Data models for the DLP-TH1C sensor library."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union


class ReadingKind(Enum):
    """The ten measurements the sensor reports."""

    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    PRESSURE = "pressure"
    TILT = "tilt"
    VIBRATION_X = "vibration_x"
    VIBRATION_Y = "vibration_y"
    VIBRATION_Z = "vibration_z"
    LIGHT = "light"
    SOUND = "sound"
    BROADBAND = "broadband"


VIBRATION_KINDS = frozenset(
    {ReadingKind.VIBRATION_X, ReadingKind.VIBRATION_Y, ReadingKind.VIBRATION_Z}
)
SPECTRAL_KINDS = VIBRATION_KINDS | {ReadingKind.SOUND}

# Number of (peak, amplitude) bands in every spectral response
SPECTRAL_BANDS = 6


class SessionMode(Enum):
    """Polling loop variants."""

    SINGLE = "single"
    AGGREGATE = "aggregate"


class SessionState(Enum):
    """Polling session states."""

    IDLE = "idle"
    REQUESTING = "requesting"
    WAITING = "waiting"
    READING = "reading"
    DECODING = "decoding"
    PUBLISHING = "publishing"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class ScalarReading:
    """A single numeric value.

    Attributes:
        kind: Which measurement this is.
        value: float for temperature (°C), humidity (%), pressure (hPa) and
               broadband; int in [-128, 127] for light.
    """

    kind: ReadingKind
    value: Union[float, int]


@dataclass(frozen=True)
class TiltReading:
    """Accelerometer tilt on three axes."""

    x: int
    y: int
    z: int
    kind: ReadingKind = ReadingKind.TILT


@dataclass(frozen=True)
class SpectralReading:
    """Six (peak frequency, amplitude) bands for vibration or sound.

    Attributes:
        kind: SOUND or one of the VIBRATION_* kinds (carries the axis).
        peaks: Peak frequency in Hz per band, band 0 first.
        amplitudes: Amplitude per band, aligned with peaks.
    """

    kind: ReadingKind
    peaks: Tuple[int, ...]
    amplitudes: Tuple[float, ...]

    def __post_init__(self) -> None:
        if self.kind not in SPECTRAL_KINDS:
            raise ValueError(f"{self.kind} is not a spectral reading kind")
        if len(self.peaks) != SPECTRAL_BANDS or len(self.amplitudes) != SPECTRAL_BANDS:
            raise ValueError(
                f"Spectral reading needs {SPECTRAL_BANDS} bands, "
                f"got {len(self.peaks)} peaks and {len(self.amplitudes)} amplitudes"
            )

    @property
    def bands(self) -> List[Tuple[int, float]]:
        """(peak, amplitude) pairs in band order."""
        return list(zip(self.peaks, self.amplitudes))

    @property
    def axis(self) -> Optional[str]:
        """"X", "Y" or "Z" for vibration readings, None for sound."""
        if self.kind in VIBRATION_KINDS:
            return self.kind.value[-1].upper()
        return None


Reading = Union[ScalarReading, TiltReading, SpectralReading]


@dataclass
class Snapshot:
    """One timestamped set of decoded readings.

    Attributes:
        ts: UTC timestamp taken when the request was written.
        readings: At most one reading per kind. Kinds that failed to decode are absent.
    """

    ts: datetime
    readings: Dict[ReadingKind, Reading] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for kind, reading in self.readings.items():
            if reading.kind is not kind:
                raise ValueError(f"Reading of kind {reading.kind} stored under {kind}")

    def __len__(self) -> int:
        return len(self.readings)

    def __contains__(self, kind: object) -> bool:
        return kind in self.readings

    def __iter__(self) -> Iterator[ReadingKind]:
        return iter(self.readings)

    def get(self, kind: ReadingKind) -> Optional[Reading]:
        return self.readings.get(kind)

    def filtered(self, kinds: Iterable[ReadingKind]) -> "Snapshot":
        """Return a new snapshot holding only the requested kinds."""
        wanted = set(kinds)
        return Snapshot(
            ts=self.ts,
            readings={k: r for k, r in self.readings.items() if k in wanted},
        )
