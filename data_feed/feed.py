"""Background consumer that keeps a window of recent snapshots.

SnapshotFeed drains a PollingSession's consumer queue on its own thread into
a bounded deque, and serves the window as row dicts or a pandas DataFrame. It
keeps nothing beyond the window; older snapshots are dropped.
"""

import logging
import threading
from collections import deque
from typing import Any, Dict, List, Optional

import pandas as pd

from data_feed.schemas import COLUMNS, snapshot_to_row
from th1c_lib.errors import TH1CError
from th1c_lib.models import Snapshot
from th1c_lib.session import PollingSession

logger = logging.getLogger(__name__)


class SnapshotFeed:
    """Consumer thread for one PollingSession."""

    def __init__(self, session: PollingSession, max_snapshots: int = 1000) -> None:
        """Initialize feed.

        Args:
            session: Session whose snapshots are consumed
            max_snapshots: Size of the recent-snapshot window
        """
        if max_snapshots <= 0:
            raise ValueError(f"max_snapshots must be positive, got {max_snapshots}")

        self._session = session
        # Oldest snapshots fall off once the window is full
        self._window: "deque[Snapshot]" = deque(maxlen=max_snapshots)
        self._window_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._count = 0
        self._error: Optional[BaseException] = None

    def start(self) -> None:
        """Start consuming on a background thread."""
        if self.is_running():
            logger.warning("SnapshotFeed already running")
            return

        self._error = None
        self._thread = threading.Thread(
            target=self._consume_loop,
            name="SnapshotFeed",
            daemon=True,
        )
        self._thread.start()
        logger.info("SnapshotFeed started")

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the consumer thread; it ends when the session's loop ends."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def count(self) -> int:
        """Total snapshots consumed since creation."""
        return self._count

    @property
    def error(self) -> Optional[BaseException]:
        """Error that ended the session's stream, if any."""
        return self._error

    def latest(self) -> Optional[Snapshot]:
        with self._window_lock:
            return self._window[-1] if self._window else None

    def latest_row(self) -> Optional[Dict[str, Any]]:
        """Latest snapshot flattened to a row dict, or None."""
        latest = self.latest()
        return snapshot_to_row(latest) if latest else None

    def get_dataframe(self, count: Optional[int] = None) -> pd.DataFrame:
        """Recent snapshots as a DataFrame (one row per snapshot, COLUMNS order).

        Args:
            count: If given, only the newest `count` snapshots
        """
        with self._window_lock:
            snapshots = list(self._window)
        if count is not None:
            snapshots = snapshots[-count:] if count > 0 else []
        return pd.DataFrame([snapshot_to_row(s) for s in snapshots], columns=COLUMNS)

    def recent_rows(self, count: Optional[int] = None) -> List[Dict[str, Any]]:
        """Recent snapshots as JSON-safe row dicts (NaN becomes None)."""
        df = self.get_dataframe(count).astype(object)
        df = df.where(pd.notna(df), None)
        return df.to_dict(orient="records")

    def _consume_loop(self) -> None:
        logger.info(f"SnapshotFeed loop started (thread {threading.get_ident()})")
        try:
            for snapshot in self._session.snapshots():
                with self._window_lock:
                    self._window.append(snapshot)
                self._count += 1
        except TH1CError as e:
            logger.error(f"Snapshot stream ended with error: {e}")
            self._error = e
        logger.info(f"SnapshotFeed loop stopped after {self._count} snapshots")
