"""Session configuration."""

from dataclasses import dataclass
from typing import FrozenSet, Optional

from th1c_lib import protocol
from th1c_lib.models import ReadingKind


@dataclass
class SessionConfig:
    """Configuration for a PollingSession.

    Attributes:
        settle_delay_s: Wait between writing a single command and reading its answer.
        batch_settle_delay_s: Wait between writing the aggregate request and reading.
        kinds: If set, published aggregate snapshots are filtered to these kinds.
               Single-kind snapshots always carry their one reading.
        queue_size: Capacity of the consumer queue.
    """

    settle_delay_s: float = protocol.SINGLE_SETTLE_DELAY
    batch_settle_delay_s: float = protocol.BATCH_SETTLE_DELAY
    kinds: Optional[FrozenSet[ReadingKind]] = None
    queue_size: int = 16

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.settle_delay_s < 0:
            raise ValueError(f"settle_delay_s must be >= 0, got {self.settle_delay_s}")
        if self.batch_settle_delay_s < 0:
            raise ValueError(
                f"batch_settle_delay_s must be >= 0, got {self.batch_settle_delay_s}"
            )
        if self.queue_size <= 0:
            raise ValueError(f"queue_size must be positive, got {self.queue_size}")
        if self.kinds is not None:
            self.kinds = frozenset(self.kinds)
            if not self.kinds:
                raise ValueError("kinds filter must not be empty")
