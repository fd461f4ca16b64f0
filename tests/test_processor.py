"""
Tests for the per-slot block processor.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import FakeSource, build_meta, build_raw_block, build_transaction, encode

from solana_ingestion.exceptions import MissingMetadataError, SignatureVerificationError
from solana_ingestion.processor import BlockProcessor


def test_process_commits_block_and_transactions(signed_rpc_transaction):
    source = FakeSource(latest=1000, blocks={10: build_raw_block(10, [signed_rpc_transaction["rpc"]])})
    committer = MagicMock()
    committer.commit.return_value = True

    assert BlockProcessor(source, committer).process(10) is True

    block = committer.add_block.call_args.args[0]
    transaction = committer.add_transaction.call_args.args[0]
    assert block.slot == 10
    assert transaction.slot == 10
    assert transaction.block_timestamp == block.block_timestamp
    committer.commit.assert_called_once()


def test_process_reports_dropped_batch():
    committer = MagicMock()
    committer.commit.return_value = False

    assert BlockProcessor(FakeSource(latest=1000), committer).process(10) is False


def test_transactions_keep_block_order():
    transactions = [build_transaction()[0] for _ in range(3)]
    rpc = [{"transaction": encode(t), "meta": build_meta()} for t in transactions]
    source = FakeSource(latest=1000, blocks={10: build_raw_block(10, rpc)})

    _, built = BlockProcessor(source, MagicMock()).build_records(10, source.block(10))

    assert [t.transaction_id for t in built] == [str(t.signatures[0]) for t in transactions]


def test_missing_meta_aborts_slot_without_commit(signed_rpc_transaction):
    rpc = dict(signed_rpc_transaction["rpc"], meta=None)
    source = FakeSource(latest=1000, blocks={10: build_raw_block(10, [rpc])})
    committer = MagicMock()

    with pytest.raises(MissingMetadataError):
        BlockProcessor(source, committer).process(10)
    committer.commit.assert_not_called()


def test_bad_signature_aborts_slot_without_commit(signed_rpc_transaction):
    unsigned, *_ = build_transaction(signed=False)
    rpc = [signed_rpc_transaction["rpc"], {"transaction": encode(unsigned), "meta": build_meta()}]
    source = FakeSource(latest=1000, blocks={10: build_raw_block(10, rpc)})
    committer = MagicMock()

    with pytest.raises(SignatureVerificationError):
        BlockProcessor(source, committer).process(10)
    committer.commit.assert_not_called()
