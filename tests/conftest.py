"""
Shared fixtures: signed Solana transactions, raw RPC blocks, and fake
source/sink collaborators for the listener.
"""

from __future__ import annotations

import base64
import threading

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

INSTRUCTION_DATA = bytes([1, 2, 3])
MINT = "EPjFWdd5AufqSSqeM2qJ1w1mF1LRqz6g9J6Y5TvbkRxx"


def build_transaction(signed: bool = True):
    """Return (transaction, payer, target, program_id) for a one-instruction transfer-like tx."""
    payer = Keypair()
    target = Pubkey.new_unique()
    program_id = Pubkey.new_unique()
    instruction = Instruction(program_id, INSTRUCTION_DATA, [AccountMeta(target, False, True)])
    message = Message.new_with_blockhash([instruction], payer.pubkey(), Hash.default())
    if signed:
        transaction = VersionedTransaction(message, [payer])
    else:
        transaction = VersionedTransaction.populate(message, [Signature.default()])
    return transaction, payer.pubkey(), target, program_id


def encode(transaction) -> list:
    return [base64.b64encode(bytes(transaction)).decode("ascii"), "base64"]


def build_meta(account_count: int = 3, **overrides) -> dict:
    meta = {
        "err": None,
        "status": {"Ok": None},
        "fee": 5000,
        "preBalances": [1_000_000] + [10] * (account_count - 1),
        "postBalances": [995_000] + [10] * (account_count - 1),
        "preTokenBalances": [
            {"accountIndex": 1, "mint": MINT, "uiTokenAmount": {"uiAmountString": "123.1234567891"}},
        ],
        "postTokenBalances": [
            {"accountIndex": 1, "mint": MINT, "uiTokenAmount": {"uiAmountString": "5"}},
        ],
        "logMessages": ["Program log: hello"],
        "loadedAddresses": {"writable": [], "readonly": []},
    }
    meta.update(overrides)
    return meta


def build_raw_block(slot: int, transactions: list = None, block_time: int = 1_640_995_200) -> dict:
    return {
        "blockTime": block_time,
        "blockhash": f"hash{slot}",
        "previousBlockhash": f"hash{slot - 1}",
        "parentSlot": slot - 1,
        "rewards": [
            {"pubkey": "Validator1111111111111111111111111111111111", "lamports": 2500,
             "postBalance": 1_002_500, "rewardType": "Fee", "commission": None},
        ],
        "transactions": transactions or [],
    }


@pytest.fixture
def signed_rpc_transaction():
    transaction, payer, target, program_id = build_transaction()
    return {
        "rpc": {"transaction": encode(transaction), "meta": build_meta(), "version": "legacy"},
        "transaction": transaction,
        "payer": payer,
        "target": target,
        "program_id": program_id,
    }


class SleepRecorder:
    """Stands in for time.sleep and records the requested delays."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


class FakeSource:
    """In-memory ledger: every slot up to ``latest`` is produced unless listed in ``skipped``."""

    def __init__(self, latest: int, skipped=(), blocks: dict = None):
        self.latest = latest
        self.skipped = set(skipped)
        self.blocks = blocks or {}
        self.range_calls = []
        self.fetched = []
        self._lock = threading.Lock()

    def latest_finalized_slot(self) -> int:
        return self.latest

    def slots_in_range(self, from_exclusive: int, to_inclusive: int) -> list:
        self.range_calls.append((from_exclusive, to_inclusive))
        return [s for s in range(from_exclusive + 1, to_inclusive + 1) if s not in self.skipped]

    def block(self, slot: int) -> dict:
        with self._lock:
            self.fetched.append(slot)
        return self.blocks.get(slot) or build_raw_block(slot)


class RecordingSink:
    """Collects what every committer built from it commits."""

    def __init__(self, latest_slot=None):
        self.latest_slot = latest_slot
        self.blocks = []
        self.transactions = []
        self._lock = threading.Lock()

    def committer(self):
        return RecordingCommitter(self)


class RecordingCommitter:
    def __init__(self, sink: RecordingSink):
        self.sink = sink
        self.block = None
        self.transactions = []

    def get_latest_slot(self):
        return self.sink.latest_slot

    def add_block(self, block):
        self.block = block

    def add_transaction(self, transaction):
        self.transactions.append(transaction)

    def commit(self) -> bool:
        with self.sink._lock:
            self.sink.transactions.extend(self.transactions)
            self.sink.blocks.append(self.block.slot)
        return True


@pytest.fixture
def recording_sink():
    return RecordingSink()
