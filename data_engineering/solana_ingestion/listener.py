"""
Block listener.

The listener owns the slot cursor. It repeatedly asks the planner for the
next batch of produced slots and hands each slot to a block processor
running on a bounded worker pool, then drains the pool once an end slot is
reached.

The in-memory cursor advances when a slot is dispatched, not when it is
committed. The durable cursor read at startup (``MAX(slot)`` of the blocks
table) only advances when a block row lands, so after a restart slots that
were dispatched but never committed are picked up again.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from functools import partial
from typing import Callable, Dict, Optional

from .committer import BigQueryCommitter
from .config import CONFIG
from .gate import ConcurrencyGate, Ticket
from .planner import SlotWindowPlanner
from .processor import BlockProcessor
from .solana_client import SolanaSource
from .utils import setup_logger


class ListenerState(Enum):
    INIT = "init"
    DISCOVER = "discover"
    DISPATCH = "dispatch"
    DRAIN = "drain"
    STOPPED = "stopped"


class Listener:
    """
    Discover/dispatch loop over the ledger.

    Attributes:
        cursor: Last dispatched slot
        end_slot: Optional inclusive slot after which dispatch stops
        state: Current ``ListenerState``
        stats: Dispatch and commit counters
    """

    def __init__(
        self,
        project_id: str = None,
        dataset_id: str = None,
        start_slot: Optional[int] = None,
        end_slot: Optional[int] = None,
        source: SolanaSource = None,
        committer_factory: Callable[[], BigQueryCommitter] = None,
        max_in_flight: int = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the listener and resolve the starting cursor.

        Args:
            project_id: GCP project ID
            dataset_id: Dataset receiving blocks and transactions
            start_slot: Explicit cursor; slots after it are processed
            end_slot: Stop after dispatching this slot
            source: Ledger source (defaults to the configured RPC nodes)
            committer_factory: Builds one sink committer per processed slot
            max_in_flight: Maximum concurrently running block processors
            sleep: Sleep function used while idle
        """
        self.state = ListenerState.INIT
        self.logger = setup_logger(__name__)
        self.end_slot = end_slot
        self.sleep = sleep
        self.idle_wait = CONFIG.listener.idle_wait
        self.slots_behind_latest = CONFIG.listener.slots_behind_latest

        self.source = source or SolanaSource()
        self.committer_factory = committer_factory or partial(
            BigQueryCommitter, project_id=project_id, dataset_id=dataset_id
        )
        self.planner = SlotWindowPlanner(self.source, slots_behind_latest=self.slots_behind_latest)
        self.gate = ConcurrencyGate(max_in_flight or CONFIG.listener.max_in_flight)
        self.executor = ThreadPoolExecutor(
            max_workers=self.gate.max_in_flight,
            thread_name_prefix="block-processor"
        )

        self.stats = {
            "dispatched": 0,
            "committed": 0,
            "dropped": 0,
            "failed": 0,
        }
        self._stats_lock = threading.Lock()
        self._fault: Optional[BaseException] = None

        self.cursor = self._resolve_cursor(start_slot)

    def _resolve_cursor(self, start_slot: Optional[int]) -> int:
        """
        Pick the starting cursor.

        Priority: explicit start slot, then the highest slot committed to
        the blocks table, then the finalized tip minus the safety margin.
        """
        if start_slot is not None:
            self.logger.info(f"Start after selected slot {start_slot}")
            return start_slot

        committed_slot = self.committer_factory().get_latest_slot()
        if committed_slot is not None:
            self.logger.info(f"Resume from latest processed slot {committed_slot}")
            return committed_slot

        cursor = max(self.source.latest_finalized_slot() - self.slots_behind_latest, 0)
        self.logger.info("Could not find any previously processed slots.")
        self.logger.info(f"Start at the latest live slot {cursor}")
        return cursor

    @property
    def fault(self) -> Optional[BaseException]:
        """First error raised by a block processor, if any."""
        return self._fault

    @property
    def dispatched_slots(self) -> int:
        """Number of slots handed to block processors so far."""
        with self._stats_lock:
            return self.stats["dispatched"]

    def _run_processor(self, slot: int, ticket: Ticket) -> bool:
        with ticket:
            processor = BlockProcessor(self.source, self.committer_factory())
            return processor.process(slot)

    def _on_processor_done(self, slot: int, future: Future) -> None:
        error = future.exception()
        with self._stats_lock:
            if error is not None:
                self.stats["failed"] += 1
                if self._fault is None:
                    self._fault = error
            elif future.result():
                self.stats["committed"] += 1
            else:
                self.stats["dropped"] += 1
        if error is not None:
            self.logger.error(f"Failed to process block {slot}", exc_info=error)

    def dispatch(self, slot: int) -> Future:
        """
        Run a block processor for ``slot`` once a ticket is free.

        Args:
            slot: Slot to process

        Returns:
            Future: Completes with the processor's commit result
        """
        ticket = self.gate.acquire()
        try:
            future = self.executor.submit(self._run_processor, slot, ticket)
        except BaseException:
            ticket.release()
            raise
        future.add_done_callback(partial(self._on_processor_done, slot))
        with self._stats_lock:
            self.stats["dispatched"] += 1
        return future

    def process_slots(self) -> bool:
        """
        Run one discover/dispatch cycle.

        Returns:
            bool: False once the listener should stop dispatching
        """
        if self._fault is not None:
            self.logger.error("Stop dispatching after a block processor failure")
            return False

        if self.end_slot is not None and self.cursor >= self.end_slot:
            self.logger.info(f"Stop after processing the selected end slot {self.end_slot}")
            return False

        self.state = ListenerState.DISCOVER
        batch = self.planner.next_batch(self.cursor, self.end_slot)

        if not batch:
            if batch.target_slot is not None and batch.target_slot > self.cursor:
                # Finalized window with no produced blocks; those slots were skipped for good.
                self.logger.info(f"No blocks in slots {self.cursor + 1}..{batch.target_slot}")
                self.cursor = batch.target_slot
            self.sleep(self.idle_wait)
            return True

        self.state = ListenerState.DISPATCH
        for slot in batch:
            if self._fault is not None:
                break
            self.dispatch(slot)
            self.cursor = slot

        return True

    def drain(self) -> None:
        """Wait for every in-flight block processor to finish."""
        self.state = ListenerState.DRAIN
        self.logger.info(f"Waiting for {self.gate.outstanding} block processor(s) to finish")
        self.gate.wait_until_idle()
        self.executor.shutdown(wait=True)
        self.state = ListenerState.STOPPED
        self.logger.info(f"Listener stopped at slot {self.cursor}. Stats: {self.stats}")

    def listen(self) -> Dict:
        """
        Process slots until the end slot is reached, then drain.

        Returns:
            Dict: Listener statistics

        Raises:
            Exception: The first error raised by a block processor, after draining
        """
        try:
            while self.process_slots():
                pass
        finally:
            self.drain()

        if self._fault is not None:
            raise self._fault
        return self.stats
