"""
Solana JSON-RPC client for ledger ingestion.

This module provides a thin client for a single Solana RPC node and a
retrying wrapper that fails over between nodes. The wrapper never returns
an error to its caller: upstream outages are expected to be transient, so
every call blocks until it succeeds.
"""

import itertools
from typing import Any, Dict, List, Optional

import requests

from .config import CONFIG
from .exceptions import SolanaRpcError
from .utils import setup_logger, RetryPolicy


FINALIZED = "finalized"


class SolanaRpcClient:
    """
    Client for a single Solana JSON-RPC endpoint.

    Every failure (transport, HTTP status or JSON-RPC error object) is
    raised as a ``SolanaRpcError``.
    """

    _request_ids = itertools.count(1)

    def __init__(self, url: str, timeout: float = None):
        """
        Initialize the RPC client.

        Args:
            url: RPC node URL
            timeout: Per-request timeout in seconds (defaults to config)
        """
        self.url = url
        self.timeout = timeout or CONFIG.solana.timeout

    def _make_request(self, method: str, params: List[Any]) -> Any:
        """
        Post a JSON-RPC request and return its ``result`` member.

        Args:
            method: RPC method name
            params: Positional parameters

        Returns:
            Any: The decoded result

        Raises:
            SolanaRpcError: If the request fails or the node returns an error
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise SolanaRpcError(f"{method} request to {self.url} failed: {e}") from e

        if not isinstance(data, dict):
            raise SolanaRpcError(f"{method} response from {self.url} is not a JSON object")

        error = data.get("error")
        if error:
            raise SolanaRpcError(f"{method} returned error from {self.url}: {error}")
        if "result" not in data:
            raise SolanaRpcError(f"{method} response from {self.url} has no result")

        return data["result"]

    def get_slot(self, commitment: str = FINALIZED) -> int:
        """Get the highest slot at the given commitment."""
        result = self._make_request("getSlot", [{"commitment": commitment}])
        try:
            return int(result)
        except (TypeError, ValueError) as e:
            raise SolanaRpcError(f"getSlot returned an invalid slot from {self.url}: {result!r}") from e

    def get_block(self, slot: int, encoding: str = "base64") -> Dict:
        """
        Get a confirmed block with full transaction details.

        Args:
            slot: Slot number
            encoding: Transaction encoding

        Returns:
            Dict: Block with metadata and transactions
        """
        config = {
            "encoding": encoding,
            "commitment": FINALIZED,
            "transactionDetails": "full",
            "rewards": True,
            "maxSupportedTransactionVersion": 0,
        }
        block = self._make_request("getBlock", [slot, config])
        if not isinstance(block, dict):
            raise SolanaRpcError(f"No block available for slot {slot}")
        return block

    def get_blocks(self, start_slot: int, end_slot: Optional[int] = None) -> List[int]:
        """
        List produced slots between two slots (inclusive).

        Args:
            start_slot: First slot of the range
            end_slot: Last slot of the range

        Returns:
            List[int]: Ascending slot numbers that have a block
        """
        params: List[Any] = [start_slot]
        if end_slot is not None:
            params.append(end_slot)
        params.append({"commitment": FINALIZED})
        result = self._make_request("getBlocks", params)
        try:
            return [int(slot) for slot in result]
        except (TypeError, ValueError) as e:
            raise SolanaRpcError(f"getBlocks returned an invalid slot list from {self.url}: {result!r}") from e


class SolanaSource:
    """
    Retrying, failing-over access to the ledger.

    Features:
    - Exponential backoff on every call
    - Endpoint rotation when the finalized slot query keeps failing
    - Calls block until they succeed
    """

    def __init__(
        self,
        endpoints: List[str] = None,
        client_factory=SolanaRpcClient,
        sleep=None
    ):
        """
        Initialize the source.

        Args:
            endpoints: RPC node URLs, primary first (defaults to config)
            client_factory: Callable building a client for one URL
            sleep: Sleep function for retry waits (replaceable in tests)
        """
        self.endpoints = list(CONFIG.solana.endpoints if endpoints is None else endpoints)
        if not self.endpoints:
            raise ValueError("At least one Solana RPC endpoint is required")
        self.client_factory = client_factory
        self.logger = setup_logger(__name__)

        self._active = 0
        self.client = self.client_factory(self.endpoints[0])

        base_delay = CONFIG.solana.initial_backoff
        retry_kwargs = {"exceptions": (SolanaRpcError,)}
        if sleep is not None:
            retry_kwargs["sleep"] = sleep
        self.slot_policy = RetryPolicy(
            base_delay=base_delay,
            rotate_after=CONFIG.solana.endpoint_timeout,
            **retry_kwargs
        )
        self.fetch_policy = RetryPolicy(base_delay=base_delay, **retry_kwargs)

    @property
    def active_endpoint(self) -> str:
        """URL of the node currently in use."""
        return self.endpoints[self._active]

    def rotate_endpoint(self) -> None:
        """Switch to the next configured RPC node."""
        self._active = (self._active + 1) % len(self.endpoints)
        self.client = self.client_factory(self.active_endpoint)
        self.logger.warning(f"Try out RPC node {self.active_endpoint}.")

    def latest_finalized_slot(self) -> int:
        """
        Get the latest finalized slot.

        Returns:
            int: Highest slot at finalized commitment
        """
        return self.slot_policy.call(
            lambda: self.client.get_slot(FINALIZED),
            on_rotate=self.rotate_endpoint,
            description="find the latest finalized slot",
            logger=self.logger
        )

    def block(self, slot: int) -> Dict:
        """
        Get the raw block for a slot.

        Args:
            slot: Slot number

        Returns:
            Dict: Block with base64 encoded transactions and their metadata
        """
        return self.fetch_policy.call(
            lambda: self.client.get_block(slot, "base64"),
            description=f"get block {slot}",
            logger=self.logger
        )

    def slots_in_range(self, from_exclusive: int, to_inclusive: int) -> List[int]:
        """
        List produced slots after ``from_exclusive`` up to ``to_inclusive``.

        Args:
            from_exclusive: Last slot already handled
            to_inclusive: Last slot to include

        Returns:
            List[int]: Ascending slot numbers (skipped slots are absent)
        """
        return self.fetch_policy.call(
            lambda: self.client.get_blocks(from_exclusive + 1, to_inclusive),
            description=f"list slots {from_exclusive + 1}..{to_inclusive}",
            logger=self.logger
        )
