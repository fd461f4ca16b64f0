"""
Slot window planning.

Works out which produced slots can be processed next: only slots that sit
a safety margin behind the finalized tip, at most ``max_slot_range`` slots
past the cursor, and never past the configured end slot.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .config import CONFIG
from .utils import setup_logger


@dataclass
class SlotBatch:
    """
    Slots to process next.

    Attributes:
        slots: Ascending produced slots in the window
        latest_slot: Finalized tip observed while planning
        target_slot: Upper bound of the window, None when nothing was safe to scan
    """
    slots: List[int] = field(default_factory=list)
    latest_slot: Optional[int] = None
    target_slot: Optional[int] = None

    def __bool__(self) -> bool:
        return bool(self.slots)

    def __iter__(self):
        return iter(self.slots)

    def __len__(self) -> int:
        return len(self.slots)


class SlotWindowPlanner:
    """Computes the next bounded, safe range of unprocessed slots."""

    def __init__(self, source, slots_behind_latest: int = None, max_slot_range: int = None):
        """
        Initialize the planner.

        Args:
            source: Ledger source (``SolanaSource`` or compatible)
            slots_behind_latest: Trailing safety margin behind the finalized tip
            max_slot_range: Maximum width of one window
        """
        self.source = source
        self.slots_behind_latest = (
            CONFIG.listener.slots_behind_latest if slots_behind_latest is None else slots_behind_latest
        )
        self.max_slot_range = (
            CONFIG.listener.max_slot_range if max_slot_range is None else max_slot_range
        )
        self.logger = setup_logger(__name__)

    def target_slot(self, cursor: int, latest_slot: int, end_slot: Optional[int] = None) -> Optional[int]:
        """
        Upper bound of the next window, or None if no slot is safe to process yet.

        Args:
            cursor: Last dispatched slot
            latest_slot: Latest finalized slot
            end_slot: Optional inclusive end bound
        """
        if cursor + self.slots_behind_latest >= latest_slot:
            return None
        target = min(latest_slot - self.slots_behind_latest, cursor + self.max_slot_range)
        if end_slot is not None:
            target = min(target, end_slot)
        return target

    def next_batch(self, cursor: int, end_slot: Optional[int] = None) -> SlotBatch:
        """
        Plan the next batch of slots after ``cursor``.

        Args:
            cursor: Last dispatched slot
            end_slot: Optional inclusive end bound

        Returns:
            SlotBatch: Produced slots in ``(cursor, target]``, possibly empty
        """
        latest_slot = self.source.latest_finalized_slot()
        target = self.target_slot(cursor, latest_slot, end_slot)
        if target is None or target <= cursor:
            return SlotBatch(latest_slot=latest_slot)

        self.logger.info(
            f"Latest slot: {latest_slot}. Target slot: {target}. Processed slot: {cursor}. "
            f"Trailing latest {latest_slot - cursor}. Trailing target: {target - cursor}."
        )

        slots = self.source.slots_in_range(cursor, target)
        return SlotBatch(slots=slots, latest_slot=latest_slot, target_slot=target)
