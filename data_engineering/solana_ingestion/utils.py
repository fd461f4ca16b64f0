"""
Utility functions for Solana ledger ingestion.

This module provides common utilities used across the ingestion pipeline,
including logging, retry policies, value conversion, and BigQuery helpers.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from google.cloud import bigquery
from google.cloud.exceptions import NotFound

from .config import CONFIG


# ============================================================================
# LOGGING SETUP
# ============================================================================

def setup_logger(name: str, level: str = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (typically __name__)
        level: Log level (defaults to config setting)

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    level = level or CONFIG.log_level
    logger.setLevel(getattr(logging, level.upper()))

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


# ============================================================================
# RETRY POLICY
# ============================================================================

@dataclass
class RetryPolicy:
    """
    Retry loop with configurable backoff, attempt bound and rotation ceiling.

    Attributes:
        base_delay: Delay before the first retry (seconds)
        exponential_base: Multiplier applied per attempt (1.0 for a fixed delay)
        max_delay: Optional cap on a single delay
        max_attempts: Total attempts before giving up (None retries forever)
        rotate_after: Cumulative wait (seconds) after which ``on_rotate`` is
            called and the backoff starts over
        exceptions: Exception types that trigger a retry
        sleep: Sleep function, replaceable in tests
    """
    base_delay: float = 0.1
    exponential_base: float = 2.0
    max_delay: Optional[float] = None
    max_attempts: Optional[int] = None
    rotate_after: Optional[float] = None
    exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def delay(self, attempt: int) -> float:
        """Return the wait before retry number ``attempt`` (zero based)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def call(
        self,
        func: Callable[[], Any],
        on_rotate: Callable[[], None] = None,
        description: str = "call",
        logger: logging.Logger = None
    ) -> Any:
        """
        Call ``func`` until it succeeds or the attempt bound is exhausted.

        Args:
            func: Zero-argument callable to run
            on_rotate: Hook invoked when the cumulative wait exceeds ``rotate_after``
            description: Human readable name used in log messages
            logger: Logger for retry messages

        Returns:
            Any: The value returned by ``func``

        Raises:
            Exception: The last failure once ``max_attempts`` is exhausted
        """
        logger = logger or setup_logger(__name__)
        attempts = 0
        backoff_attempt = 0
        waited = 0.0

        while True:
            try:
                return func()
            except self.exceptions as e:
                attempts += 1
                if self.max_attempts is not None and attempts >= self.max_attempts:
                    logger.error(f"All {self.max_attempts} attempts to {description} failed: {e}")
                    raise

                if self.rotate_after is not None and waited > self.rotate_after:
                    logger.warning(
                        f"Waited {waited:.1f}s trying to {description}. Switching endpoint."
                    )
                    if on_rotate is not None:
                        on_rotate()
                    backoff_attempt = 0
                    waited = 0.0
                    continue

                delay = self.delay(backoff_attempt)
                if self.max_attempts is not None:
                    logger.warning(
                        f"Attempt {attempts}/{self.max_attempts} to {description} failed: {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                else:
                    logger.warning(
                        f"Attempt to {description} failed: {e}. Retrying in {delay:.2f}s..."
                    )
                self.sleep(delay)
                waited += delay
                backoff_attempt += 1


# ============================================================================
# DATA VALIDATION & TRANSFORMATION
# ============================================================================

MAX_NUMERIC_DECIMALS = 9


def trim_decimals(amount: str, max_decimals: int = MAX_NUMERIC_DECIMALS) -> str:
    """
    Truncate a decimal string to at most ``max_decimals`` fractional digits.

    BigQuery NUMERIC columns hold 9 fractional digits, so longer token
    amounts are cut (not rounded) before insertion.

    Args:
        amount: Decimal amount as a string
        max_decimals: Maximum number of digits after the decimal point

    Returns:
        str: The truncated amount
    """
    integer_part, sep, fraction = amount.partition(".")
    if not sep or len(fraction) <= max_decimals:
        return amount
    return f"{integer_part}.{fraction[:max_decimals]}"


def unix_to_datetime(timestamp: int) -> datetime:
    """
    Convert Unix timestamp to datetime.

    Args:
        timestamp: Unix timestamp (seconds since epoch)

    Returns:
        datetime: UTC datetime object
    """
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


# ============================================================================
# BIGQUERY HELPERS
# ============================================================================

class BigQueryHelper:
    """Helper class for BigQuery operations."""

    def __init__(self, project_id: str = None, dataset_id: str = None, client: bigquery.Client = None):
        """
        Initialize BigQuery helper.

        Args:
            project_id: GCP project ID (defaults to config)
            dataset_id: Dataset holding the ledger tables (defaults to config)
            client: Existing BigQuery client (a new one is created otherwise)
        """
        self.project_id = project_id or CONFIG.bigquery.project_id
        self.dataset_id = dataset_id or CONFIG.bigquery.dataset_id
        self.client = client or bigquery.Client(project=self.project_id)
        self.logger = setup_logger(__name__)

    def table_ref(self, table_id: str) -> str:
        """Return the fully qualified ``project.dataset.table`` name."""
        return f"{self.project_id}.{self.dataset_id}.{table_id}"

    def ensure_dataset_exists(self, location: str = None) -> None:
        """
        Create dataset if it doesn't exist.

        Args:
            location: Dataset location (defaults to config)
        """
        dataset_ref = f"{self.project_id}.{self.dataset_id}"
        try:
            self.client.get_dataset(dataset_ref)
            self.logger.debug(f"Dataset {dataset_ref} already exists")
        except NotFound:
            dataset = bigquery.Dataset(dataset_ref)
            dataset.location = location or CONFIG.bigquery.location
            self.client.create_dataset(dataset)
            self.logger.info(f"Created dataset {dataset_ref}")

    def table_exists(self, table_id: str) -> bool:
        """
        Check if a table exists.

        Args:
            table_id: Table ID

        Returns:
            bool: True if table exists
        """
        try:
            self.client.get_table(self.table_ref(table_id))
            return True
        except NotFound:
            return False

    def create_table(
        self,
        table_id: str,
        schema: List[bigquery.SchemaField],
        partition_field: str = None,
        description: str = None
    ) -> bool:
        """
        Create a table unless it already exists.

        Args:
            table_id: Table ID
            schema: Table schema
            partition_field: Column used for daily time partitioning
            description: Table description

        Returns:
            bool: True if the table was created
        """
        if self.table_exists(table_id):
            self.logger.info(f"Table {self.table_ref(table_id)} already exists")
            return False

        table = bigquery.Table(self.table_ref(table_id), schema=schema)
        if partition_field:
            table.time_partitioning = bigquery.TimePartitioning(
                type_=bigquery.TimePartitioningType.DAY,
                field=partition_field
            )
        if description:
            table.description = description
        self.client.create_table(table)
        self.logger.info(f"Created table {self.table_ref(table_id)}")
        return True

    def execute_query(self, query: str, params: List = None, timeout: float = None) -> List[Dict]:
        """
        Execute a BigQuery query and return results.

        Args:
            query: SQL query string
            params: Query parameters (optional)
            timeout: Seconds to wait for the result

        Returns:
            List[Dict]: Query results as list of dictionaries
        """
        job_config = bigquery.QueryJobConfig()
        if params:
            job_config.query_parameters = params

        query_job = self.client.query(query, job_config=job_config)
        results = query_job.result(timeout=timeout)

        return [dict(row) for row in results]

    def get_max_value(self, table_id: str, column: str, timeout: float = None) -> Optional[Any]:
        """
        Get the maximum value of a column in a table.

        Args:
            table_id: Table ID
            column: Column name
            timeout: Seconds to wait for the query result

        Returns:
            Optional[Any]: Maximum value, or None if the table is missing or empty
        """
        if not self.table_exists(table_id):
            return None

        query = f"""
        SELECT MAX({column}) AS max_value
        FROM `{self.table_ref(table_id)}`
        """

        results = self.execute_query(query, timeout=timeout)
        if results:
            return results[0].get("max_value")
        return None

    def insert_rows(
        self,
        table_id: str,
        rows: List[Dict],
        row_ids: Sequence[Optional[str]] = None,
        timeout: float = None
    ) -> List[Dict]:
        """
        Stream rows into a BigQuery table.

        Args:
            table_id: Target table ID
            rows: List of row dictionaries
            row_ids: Insert ids for best-effort dedup (None entries disable it)
            timeout: Seconds to wait for the request

        Returns:
            List[Dict]: Per-row insert errors reported by BigQuery (empty on success)
        """
        if row_ids is None:
            row_ids = [None] * len(rows)
        return self.client.insert_rows_json(
            self.table_ref(table_id),
            rows,
            row_ids=row_ids,
            timeout=timeout
        )
