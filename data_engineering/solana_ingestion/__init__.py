"""
Solana Ledger Ingestion Module.

This module tails the Solana ledger at finalized commitment and loads
per-block and per-transaction records into Google BigQuery.
"""

__version__ = "0.1.0"
