"""Consumer-side views of the snapshot stream."""

from data_feed.feed import SnapshotFeed
from data_feed.schemas import COLUMNS, snapshot_to_row

__all__ = ["COLUMNS", "snapshot_to_row", "SnapshotFeed"]
