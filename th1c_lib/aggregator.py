"""Concurrent decoding of the batched "read-all" response.

Ten decoder tasks share one response. Each task sends exactly one message to a
queue and the thread calling decode() is the only writer of the snapshot
mapping, so the decoders never touch shared state.
"""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, Mapping, NamedTuple, Optional, Union

from th1c_lib import parsing, protocol
from th1c_lib.errors import DecodeError, ResponseTooShort
from th1c_lib.models import Reading, ReadingKind, Snapshot

logger = logging.getLogger(__name__)


class FieldResult(NamedTuple):
    """Message sent from a decoder task to the merging writer."""

    kind: ReadingKind
    reading: Optional[Reading]
    error: Optional[BaseException]


def split_line_groups(text: str) -> Dict[ReadingKind, str]:
    """Split an aggregate response into one text block per reading kind.

    Scalar fields and tilt take one line each, spectral fields take seven
    (one blank separator plus six data lines), in AGGREGATE_ORDER.

    Raises:
        ResponseTooShort: If text has fewer lines than all groups need
    """
    lines = text.split(parsing.LF)
    if len(lines) < protocol.AGGREGATE_MIN_LINES:
        raise ResponseTooShort(
            f"Aggregate response has {len(lines)} lines, "
            f"need at least {protocol.AGGREGATE_MIN_LINES}",
            text,
        )

    groups: Dict[ReadingKind, str] = {}
    start = 0
    for kind in protocol.AGGREGATE_ORDER:
        end = start + protocol.GROUP_LINES[kind]
        groups[kind] = parsing.LF.join(lines[start:end])
        start = end
    return groups


class AggregationEngine:
    """Fans the field decoders out over a thread pool and merges the results."""

    def __init__(
        self,
        decoders: Optional[Mapping[ReadingKind, parsing.Decoder]] = None,
        max_workers: int = len(protocol.AGGREGATE_ORDER),
    ) -> None:
        """Initialize engine.

        Args:
            decoders: Decoder per kind. Defaults to parsing.DECODERS.
            max_workers: Size of the decoder thread pool.
        """
        self._decoders = dict(decoders) if decoders is not None else dict(parsing.DECODERS)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="FieldDecoder"
        )
        self._lock = threading.Lock()
        self._closed = False

    def decode(
        self, raw: Union[bytes, str], ts: Optional[datetime] = None
    ) -> Snapshot:
        """Decode an aggregate response into one snapshot.

        Fields whose decoder fails are logged and left out. The snapshot is
        returned only after every task has reported.

        Args:
            raw: Response bytes (or already decoded text)
            ts: Snapshot timestamp. Defaults to now (UTC).

        Returns:
            Snapshot with up to ten readings

        Raises:
            ResponseTooShort: If the response cannot hold all fields
        """
        text = parsing.response_text(raw) if isinstance(raw, bytes) else raw
        groups = split_line_groups(text)

        results: "queue.Queue[FieldResult]" = queue.Queue()
        with self._lock:
            if self._closed:
                raise RuntimeError("AggregationEngine is closed")
            for kind, group in groups.items():
                self._executor.submit(self._decode_task, kind, group, results)

        return Snapshot(
            ts=ts or datetime.now(timezone.utc),
            readings=self._merge(results, expected=len(groups)),
        )

    def close(self) -> None:
        """Shut down the decoder pool."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "AggregationEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _decode_task(
        self, kind: ReadingKind, text: str, results: "queue.Queue[FieldResult]"
    ) -> None:
        """Decode one field and report it. Always sends exactly one message."""
        try:
            reading = self._decoders[kind](text)
        except Exception as e:
            results.put(FieldResult(kind, None, e))
        else:
            results.put(FieldResult(kind, reading, None))

    def _merge(
        self, results: "queue.Queue[FieldResult]", expected: int
    ) -> Dict[ReadingKind, Reading]:
        """Single writer: collect exactly `expected` messages into a mapping."""
        readings: Dict[ReadingKind, Reading] = {}

        for _ in range(expected):
            result = results.get()
            if result.reading is not None:
                readings[result.kind] = result.reading
            elif isinstance(result.error, DecodeError):
                logger.warning(
                    f"Dropping {result.kind.value}: {result.error} "
                    f"(fragment={result.error.fragment!r})"
                )
            else:
                logger.error(
                    f"Decoder for {result.kind.value} crashed: {result.error!r}",
                    exc_info=result.error,
                )

        logger.debug(f"Merged {len(readings)}/{expected} fields")
        return readings
