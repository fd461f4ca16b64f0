"""
Per-slot unit of work: fetch the block, build its records, commit them.
"""

from .models import Block, Transaction
from .utils import setup_logger


class BlockProcessor:
    """
    Processes one slot.

    Transactions without metadata, undecodable transactions and transactions
    whose signatures do not verify abort the slot with a ``BlockContentError``;
    nothing is committed for it.
    """

    def __init__(self, source, committer):
        """
        Initialize the processor.

        Args:
            source: Ledger source used to fetch the block
            committer: Sink committer owned by this processor
        """
        self.source = source
        self.committer = committer
        self.logger = setup_logger(__name__)

    def build_records(self, slot: int, raw_block: dict):
        """
        Turn a raw block into its block record and transaction records.

        Returns:
            Tuple[Block, List[Transaction]]: The block and its transactions in block order
        """
        block = Block.from_rpc(slot, raw_block)
        transactions = [
            Transaction.from_rpc(block.block_timestamp, slot, rpc_transaction)
            for rpc_transaction in raw_block.get("transactions") or []
        ]
        return block, transactions

    def process(self, slot: int) -> bool:
        """
        Fetch, transform and commit one slot.

        Args:
            slot: Slot to process

        Returns:
            bool: True if the block and its transactions were committed
        """
        raw_block = self.source.block(slot)
        block, transactions = self.build_records(slot, raw_block)

        self.committer.add_block(block)
        for transaction in transactions:
            self.committer.add_transaction(transaction)

        self.logger.debug(f"Slot {slot}: built {len(transactions)} transactions")
        return self.committer.commit()
