"""
Listener for Solana transactions.

Tails the Solana ledger and writes blocks and transactions to BigQuery.
Without ``--start-slot`` the listener resumes after the highest slot in the
blocks table, or starts near the finalized tip on an empty table.

Usage:
    python -m solana_ingestion.run_listener --project my-project --dataset solana
    python -m solana_ingestion.run_listener --start-slot 100 --end-slot 105
"""

import argparse
from typing import List

from .config import CONFIG, require_credentials
from .exceptions import ConfigurationError
from .listener import Listener
from .utils import setup_logger


def slot_number(value: str) -> int:
    """Parse a non-negative slot argument."""
    try:
        slot = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not a valid slot number")
    if slot < 0:
        raise argparse.ArgumentTypeError(f"{value!r} is not a valid slot number")
    return slot


def parse_args(argv: List[str] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Listener for Solana transactions."
    )
    parser.add_argument(
        "--project", "-p",
        default=CONFIG.bigquery.project_id or None,
        required=not CONFIG.bigquery.project_id,
        help="Name of the GCP project"
    )
    parser.add_argument(
        "--dataset", "-d",
        default=CONFIG.bigquery.dataset_id,
        help="Name of the dataset that transactions will be written to"
    )
    parser.add_argument(
        "--start-slot", "-s",
        type=slot_number,
        default=None,
        help="Process the blocks after this slot"
    )
    parser.add_argument(
        "--end-slot", "-e",
        type=slot_number,
        default=None,
        help="Stop after processing the block at this slot"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=CONFIG.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    args = parser.parse_args(argv)
    if args.start_slot is not None and args.end_slot is not None and args.end_slot < args.start_slot:
        parser.error("--end-slot must not be lower than --start-slot")
    return args


def main(argv: List[str] = None) -> None:
    """Main entry point for CLI execution."""
    args = parse_args(argv)
    CONFIG.log_level = args.log_level
    logger = setup_logger(__name__)

    try:
        require_credentials()
    except ConfigurationError as e:
        logger.error(str(e))
        raise SystemExit(2)

    listener = Listener(
        project_id=args.project,
        dataset_id=args.dataset,
        start_slot=args.start_slot,
        end_slot=args.end_slot,
    )
    stats = listener.listen()

    print(f"\nListener Statistics:")
    print(f"  Dispatched: {stats['dispatched']}")
    print(f"  Committed: {stats['committed']}")
    print(f"  Dropped: {stats['dropped']}")


if __name__ == "__main__":
    main()
