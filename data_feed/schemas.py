"""Flat row schema for snapshots.

Every row carries every column so that DataFrames built from aggregate and
single-kind snapshots line up; readings absent from a snapshot become None
(NaN in pandas).
"""

from datetime import timezone
from typing import Any, Dict, List

from th1c_lib.models import (
    SPECTRAL_BANDS,
    SPECTRAL_KINDS,
    ReadingKind,
    ScalarReading,
    Snapshot,
    SpectralReading,
    TiltReading,
)
from th1c_lib.protocol import AGGREGATE_ORDER


def _columns() -> List[str]:
    columns = ["timestamp"]
    for kind in AGGREGATE_ORDER:
        if kind is ReadingKind.TILT:
            columns += ["tilt_x", "tilt_y", "tilt_z"]
        elif kind in SPECTRAL_KINDS:
            for band in range(1, SPECTRAL_BANDS + 1):
                columns += [f"{kind.value}_peak_{band}", f"{kind.value}_amp_{band}"]
        else:
            columns.append(kind.value)
    return columns


# Column order for DataFrames: timestamp, then each kind in request order
COLUMNS: List[str] = _columns()


def snapshot_to_row(snapshot: Snapshot) -> Dict[str, Any]:
    """Flatten a Snapshot into a dict with every COLUMNS key.

    Timestamps are normalized to UTC ISO 8601.
    """
    ts = snapshot.ts
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    else:
        ts = ts.astimezone(timezone.utc)

    row: Dict[str, Any] = dict.fromkeys(COLUMNS)
    row["timestamp"] = ts.isoformat()

    for kind, reading in snapshot.readings.items():
        if isinstance(reading, ScalarReading):
            row[kind.value] = reading.value
        elif isinstance(reading, TiltReading):
            row["tilt_x"], row["tilt_y"], row["tilt_z"] = reading.x, reading.y, reading.z
        elif isinstance(reading, SpectralReading):
            for band, (peak, amp) in enumerate(reading.bands, start=1):
                row[f"{kind.value}_peak_{band}"] = peak
                row[f"{kind.value}_amp_{band}"] = amp

    return row
