"""
Batched writer of ledger records into BigQuery.

A committer holds the block and transactions of a single slot and writes
them in two phases: first every transaction row in one streaming insert,
then the block row. Each phase is retried a fixed number of times with a
fixed delay; when a phase runs out of attempts the batch is logged and
dropped.

The phases are not atomic. A crash between them leaves transaction rows
without a block row, and reprocessing the slot after a restart sends the
transaction rows again. The durable cursor (``MAX(slot)`` of the blocks
table) only moves when the block phase succeeds.
"""

from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Dict, List, Optional

from google.api_core.exceptions import GoogleAPIError
from requests.exceptions import RequestException

from .config import CONFIG
from .exceptions import SinkInsertError
from .models import Block, Transaction
from .utils import setup_logger, BigQueryHelper, RetryPolicy


# Failures the insert phases retry: request construction, transport and
# reported row errors.
RETRYABLE_SINK_ERRORS = (
    SinkInsertError,
    GoogleAPIError,
    RequestException,
    TimeoutError,
    FutureTimeoutError,
    TypeError,
    ValueError,
)


class BigQueryCommitter:
    """
    Sink committer for one slot.

    Each block processor owns its committer and its own BigQuery client.
    """

    def __init__(
        self,
        bq_helper: BigQueryHelper = None,
        project_id: str = None,
        dataset_id: str = None,
        sleep: Callable[[float], None] = None
    ):
        """
        Initialize the committer.

        Args:
            bq_helper: BigQuery helper (a new one with its own client otherwise)
            project_id: GCP project ID (defaults to config)
            dataset_id: Dataset ID (defaults to config)
            sleep: Sleep function for retry waits (replaceable in tests)
        """
        self.bq = bq_helper or BigQueryHelper(project_id=project_id, dataset_id=dataset_id)
        self.logger = setup_logger(__name__)

        self.blocks_table = CONFIG.bigquery.blocks_table
        self.transactions_table = CONFIG.bigquery.transactions_table
        self.timeout = CONFIG.bigquery.insert_timeout
        self.use_insert_ids = CONFIG.bigquery.use_insert_ids

        retry_kwargs = {}
        if sleep is not None:
            retry_kwargs["sleep"] = sleep
        self.retry_policy = RetryPolicy(
            base_delay=CONFIG.bigquery.insert_retry_delay,
            exponential_base=1.0,
            max_attempts=CONFIG.bigquery.insert_max_attempts,
            exceptions=RETRYABLE_SINK_ERRORS,
            **retry_kwargs
        )

        self.block_pending: Optional[Block] = None
        self.transactions_pending: List[Transaction] = []

    def add_block(self, block: Block) -> None:
        self.block_pending = block

    def add_transaction(self, transaction: Transaction) -> None:
        self.transactions_pending.append(transaction)

    def get_latest_slot(self) -> Optional[int]:
        """
        Read the durable cursor: the highest slot in the blocks table.

        Returns:
            Optional[int]: The slot, or None if the table is missing or empty
        """
        policy = RetryPolicy(
            base_delay=CONFIG.bigquery.insert_retry_delay,
            exponential_base=1.0,
            exceptions=(TimeoutError, FutureTimeoutError),
            sleep=self.retry_policy.sleep
        )
        slot = policy.call(
            lambda: self.bq.get_max_value(self.blocks_table, "slot", timeout=self.timeout),
            description="query the latest committed slot",
            logger=self.logger
        )
        if slot is None or int(slot) < 0:
            return None
        return int(slot)

    def _insert(self, table_id: str, build_rows: Callable[[], List[Dict]], build_ids: Callable[[], List]) -> None:
        rows = build_rows()
        row_ids = build_ids() if self.use_insert_ids else None
        errors = self.bq.insert_rows(table_id, rows, row_ids=row_ids, timeout=self.timeout)
        if errors:
            raise SinkInsertError(f"{len(errors)} row(s) failed to insert into {table_id}", errors)

    def insert_transactions(self) -> bool:
        """
        Insert every pending transaction in one streaming request.

        Returns:
            bool: True if all rows were accepted
        """
        if not self.transactions_pending:
            return True
        try:
            self.retry_policy.call(
                lambda: self._insert(
                    self.transactions_table,
                    lambda: [t.to_row() for t in self.transactions_pending],
                    lambda: [f"{t.slot}:{t.transaction_id}" for t in self.transactions_pending],
                ),
                description=f"insert {len(self.transactions_pending)} transactions",
                logger=self.logger
            )
        except RETRYABLE_SINK_ERRORS as e:
            self.logger.error(f"Dropping transactions after repeated insert failures: {e}")
            return False
        return True

    def insert_block(self) -> bool:
        """
        Insert the pending block row.

        Returns:
            bool: True if the row was accepted
        """
        if self.block_pending is None:
            raise RuntimeError("Failed to find block to insert")
        block = self.block_pending
        try:
            self.retry_policy.call(
                lambda: self._insert(
                    self.blocks_table,
                    lambda: [block.to_row()],
                    lambda: [str(block.slot)],
                ),
                description=f"insert block {block.slot}",
                logger=self.logger
            )
        except RETRYABLE_SINK_ERRORS as e:
            self.logger.error(f"Dropping block {block.slot} after repeated insert failures: {e}")
            return False
        return True

    def commit(self) -> bool:
        """
        Write the pending batch: transactions first, then the block.

        The block is only written once every transaction row is accepted.
        The pending batch is discarded afterwards whatever the outcome.

        Returns:
            bool: True if both phases succeeded
        """
        try:
            count = len(self.transactions_pending)
            if not self.insert_transactions():
                return False
            self.logger.info(f"Transactions recorded: {count}")

            if not self.insert_block():
                return False
            self.logger.info(f"Block recorded: {self.block_pending.slot}")
            return True
        finally:
            self.block_pending = None
            self.transactions_pending = []
