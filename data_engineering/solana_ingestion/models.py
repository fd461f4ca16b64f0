"""
Warehouse records built from Solana RPC blocks.

Blocks and transactions are parsed from ``getBlock`` responses (base64
transaction encoding) and rendered as JSON rows for the BigQuery
``blocks`` and ``transactions`` tables.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from solders.transaction import VersionedTransaction

from .exceptions import (
    MissingMetadataError,
    SignatureVerificationError,
    TransactionDecodeError,
)
from .utils import trim_decimals, unix_to_datetime


def _isoformat(timestamp: Optional[datetime]) -> Optional[str]:
    return timestamp.isoformat() if timestamp is not None else None


# ============================================================================
# BLOCKS
# ============================================================================

@dataclass
class Reward:
    """Reward credited (or debited) to an account in a block."""
    pubkey: str
    lamports: int
    post_balance: int
    reward_type: Optional[str] = None

    @classmethod
    def from_rpc(cls, reward: Dict) -> "Reward":
        reward_type = reward.get("rewardType")
        return cls(
            pubkey=reward["pubkey"],
            lamports=int(reward["lamports"]),
            post_balance=int(reward["postBalance"]),
            reward_type=reward_type.lower() if reward_type else None,
        )

    def to_row(self) -> Dict:
        return {
            "pubkey": self.pubkey,
            "lamports": self.lamports,
            "post_balance": self.post_balance,
            "reward_type": self.reward_type,
        }


@dataclass
class Block:
    """One row of the blocks table."""
    block_timestamp: Optional[datetime]
    slot: int
    parent_slot: int
    blockhash: str
    previous_blockhash: str
    rewards: List[Reward] = field(default_factory=list)

    @classmethod
    def from_rpc(cls, slot: int, block: Dict) -> "Block":
        """
        Build a block record from a ``getBlock`` response.

        Args:
            slot: Slot the block was produced in
            block: Raw block returned by the RPC node

        Returns:
            Block: The block record
        """
        block_time = block.get("blockTime")
        return cls(
            block_timestamp=unix_to_datetime(block_time) if block_time is not None else None,
            slot=slot,
            parent_slot=int(block["parentSlot"]),
            blockhash=block["blockhash"],
            previous_blockhash=block["previousBlockhash"],
            rewards=[Reward.from_rpc(r) for r in block.get("rewards") or []],
        )

    def to_row(self) -> Dict:
        return {
            "block_timestamp": _isoformat(self.block_timestamp),
            "slot": self.slot,
            "parent_slot": self.parent_slot,
            "blockhash": self.blockhash,
            "previous_blockhash": self.previous_blockhash,
            "rewards": [r.to_row() for r in self.rewards],
        }


# ============================================================================
# TRANSACTIONS
# ============================================================================

@dataclass
class TokenBalance:
    mint: str
    amount: str

    def to_row(self) -> Dict:
        return {"mint": self.mint, "amount": self.amount}


@dataclass
class Account:
    """An account referenced by a transaction, with its balance changes."""
    address: str
    pre_sol_balance: int
    post_sol_balance: int
    pre_token_balances: List[TokenBalance] = field(default_factory=list)
    post_token_balances: List[TokenBalance] = field(default_factory=list)

    def to_row(self) -> Dict:
        return {
            "address": self.address,
            "pre_sol_balance": self.pre_sol_balance,
            "post_sol_balance": self.post_sol_balance,
            "pre_token_balances": [b.to_row() for b in self.pre_token_balances],
            "post_token_balances": [b.to_row() for b in self.post_token_balances],
        }


@dataclass
class Instruction:
    program_id: str
    accounts: List[str]
    data: str  # base64

    def to_row(self) -> Dict:
        return {
            "program_id": self.program_id,
            "accounts": list(self.accounts),
            "data": self.data,
        }


@dataclass
class Transaction:
    """One row of the transactions table."""
    block_timestamp: Optional[datetime]
    slot: int
    transaction_id: str
    is_successful: bool
    error: str
    fee: int
    accounts: List[Account] = field(default_factory=list)
    instructions: List[Instruction] = field(default_factory=list)
    log_messages: List[str] = field(default_factory=list)

    @classmethod
    def from_rpc(cls, block_timestamp: Optional[datetime], slot: int, rpc_transaction: Dict) -> "Transaction":
        """
        Build a transaction record from one entry of a block's transactions.

        The wire transaction is decoded and its signatures verified. Account
        and instruction references are resolved against this transaction's
        own account list.

        Args:
            block_timestamp: Timestamp of the containing block
            slot: Slot of the containing block
            rpc_transaction: ``{"transaction": [data, "base64"], "meta": {...}}``

        Returns:
            Transaction: The transaction record

        Raises:
            MissingMetadataError: If the transaction carries no metadata
            TransactionDecodeError: If the payload cannot be decoded
            SignatureVerificationError: If a signature does not verify
        """
        meta = rpc_transaction.get("meta")
        if meta is None:
            raise MissingMetadataError("Transaction has no meta", slot)

        solana_transaction = decode_transaction(rpc_transaction.get("transaction"), slot)

        message = solana_transaction.message
        addresses = [str(key) for key in message.account_keys]
        loaded = meta.get("loadedAddresses") or {}
        addresses.extend(loaded.get("writable") or [])
        addresses.extend(loaded.get("readonly") or [])

        pre_balances = meta.get("preBalances") or []
        post_balances = meta.get("postBalances") or []
        if len(pre_balances) < len(addresses) or len(post_balances) < len(addresses):
            raise TransactionDecodeError(
                f"Balances do not cover all {len(addresses)} accounts", slot
            )

        accounts = [
            Account(
                address=address,
                pre_sol_balance=int(pre_balances[index]),
                post_sol_balance=int(post_balances[index]),
            )
            for index, address in enumerate(addresses)
        ]

        def account_at(index: int) -> Account:
            if not 0 <= index < len(accounts):
                raise TransactionDecodeError(f"Account index {index} out of range", slot)
            return accounts[index]

        instructions = [
            Instruction(
                program_id=account_at(instruction.program_id_index).address,
                accounts=[account_at(i).address for i in instruction.accounts],
                data=base64.b64encode(bytes(instruction.data)).decode("ascii"),
            )
            for instruction in message.instructions
        ]

        for balance in meta.get("preTokenBalances") or []:
            account_at(balance["accountIndex"]).pre_token_balances.append(_token_balance(balance))
        for balance in meta.get("postTokenBalances") or []:
            account_at(balance["accountIndex"]).post_token_balances.append(_token_balance(balance))

        err = meta.get("err")
        return cls(
            block_timestamp=block_timestamp,
            slot=slot,
            transaction_id=str(solana_transaction.signatures[0]),
            is_successful=_is_successful(meta),
            error=json.dumps(err, separators=(",", ":")) if err is not None else "",
            fee=int(meta.get("fee", 0)),
            accounts=accounts,
            instructions=instructions,
            log_messages=list(meta.get("logMessages") or []),
        )

    def to_row(self) -> Dict:
        return {
            "block_timestamp": _isoformat(self.block_timestamp),
            "slot": self.slot,
            "transaction_id": self.transaction_id,
            "is_successful": self.is_successful,
            "error": self.error,
            "fee": self.fee,
            "accounts": [a.to_row() for a in self.accounts],
            "instructions": [i.to_row() for i in self.instructions],
            "log_messages": list(self.log_messages),
        }


def decode_transaction(encoded: Any, slot: int = None) -> VersionedTransaction:
    """
    Decode and verify a base64 wire transaction.

    Args:
        encoded: ``[data, "base64"]`` pair (or the bare base64 string)
        slot: Slot used in error messages

    Returns:
        VersionedTransaction: The decoded, verified transaction
    """
    if isinstance(encoded, (list, tuple)):
        if len(encoded) != 2 or encoded[1] != "base64":
            raise TransactionDecodeError(f"Unsupported transaction encoding {encoded[1:]!r}", slot)
        encoded = encoded[0]
    if not isinstance(encoded, str):
        raise TransactionDecodeError("Transaction payload is not base64 text", slot)

    try:
        raw = base64.b64decode(encoded, validate=True)
    except binascii.Error as e:
        raise TransactionDecodeError(f"Transaction decode failed: {e}", slot) from e

    try:
        transaction = VersionedTransaction.from_bytes(raw)
    except Exception as e:
        raise TransactionDecodeError(f"Transaction decode failed: {e}", slot) from e

    if not transaction.signatures:
        raise SignatureVerificationError("Transaction has no signatures", slot)
    try:
        verified = transaction.verify_with_results()
    except Exception as e:
        raise SignatureVerificationError(f"Transaction signature verification failed: {e}", slot) from e
    if not all(verified):
        raise SignatureVerificationError(
            f"Transaction signature verification failed for {transaction.signatures[0]}", slot
        )

    return transaction


def _token_balance(balance: Dict) -> TokenBalance:
    ui_amount = balance.get("uiTokenAmount") or {}
    return TokenBalance(
        mint=balance["mint"],
        amount=trim_decimals(ui_amount.get("uiAmountString", "0")),
    )


def _is_successful(meta: Dict) -> bool:
    status = meta.get("status")
    if isinstance(status, dict):
        return "Ok" in status
    return meta.get("err") is None
