"""Human-readable text for readings and snapshots."""

from typing import Dict, Iterable, List, Optional

from th1c_lib.models import (
    Reading,
    ReadingKind,
    ScalarReading,
    Snapshot,
    SpectralReading,
    TiltReading,
)
from th1c_lib.protocol import AGGREGATE_ORDER

LABELS: Dict[ReadingKind, str] = {
    ReadingKind.TEMPERATURE: "Temperature",
    ReadingKind.HUMIDITY: "Humidity",
    ReadingKind.PRESSURE: "Pressure",
    ReadingKind.TILT: "Tilt",
    ReadingKind.VIBRATION_X: "Vibration (X Axis)",
    ReadingKind.VIBRATION_Y: "Vibration (Y Axis)",
    ReadingKind.VIBRATION_Z: "Vibration (Z Axis)",
    ReadingKind.LIGHT: "Light Level",
    ReadingKind.SOUND: "Sound",
    ReadingKind.BROADBAND: "Broadband",
}

UNITS: Dict[ReadingKind, str] = {
    ReadingKind.TEMPERATURE: "\xb0C",
    ReadingKind.HUMIDITY: "%",
    ReadingKind.PRESSURE: " hPa",
}


def format_scalar(reading: ScalarReading) -> str:
    unit = UNITS.get(reading.kind, "")
    return f"{LABELS[reading.kind]}: {reading.value}{unit}"


def format_tilt(reading: TiltReading) -> str:
    return f"{LABELS[reading.kind]}: X={reading.x} Y={reading.y} Z={reading.z}"


def format_spectral(reading: SpectralReading) -> str:
    lines = [f"{LABELS[reading.kind]}:"]
    for i, (peak, amp) in enumerate(reading.bands, start=1):
        lines.append(f"  Band {i}: peak {peak} Hz, amplitude {amp}")
    return "\n".join(lines)


def format_reading(reading: Reading) -> str:
    """Format any reading variant."""
    if isinstance(reading, ScalarReading):
        return format_scalar(reading)
    if isinstance(reading, TiltReading):
        return format_tilt(reading)
    if isinstance(reading, SpectralReading):
        return format_spectral(reading)
    raise TypeError(f"Unsupported reading type: {type(reading).__name__}")


def format_snapshot(
    snapshot: Snapshot, kinds: Optional[Iterable[ReadingKind]] = None
) -> str:
    """Format a snapshot, one reading per block, followed by its timestamp.

    Args:
        snapshot: Snapshot to format
        kinds: If given, only these kinds are shown (in the given order);
               otherwise every reading in request order. Kinds missing
               from the snapshot are skipped.
    """
    order = list(kinds) if kinds is not None else list(AGGREGATE_ORDER)
    lines: List[str] = [
        format_reading(snapshot.readings[kind]) for kind in order if kind in snapshot
    ]
    lines.append(f"Time: {snapshot.ts.isoformat()}")
    return "\n".join(lines)
