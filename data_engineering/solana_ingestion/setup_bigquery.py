"""
One-time BigQuery setup for the ledger tables.

Creates the dataset and the ``blocks`` and ``transactions`` tables if they
do not exist yet.

Usage:
    python -m solana_ingestion.setup_bigquery --project my-project --dataset solana
"""

import argparse
from typing import Dict, List

from .config import CONFIG, require_credentials
from .exceptions import ConfigurationError
from .schemas import BLOCKS_SCHEMA, PARTITION_FIELD, TRANSACTIONS_SCHEMA
from .utils import setup_logger, BigQueryHelper


def setup_tables(bq_helper: BigQueryHelper) -> Dict[str, bool]:
    """
    Create the ledger tables.

    Args:
        bq_helper: BigQuery helper bound to the target dataset

    Returns:
        Dict[str, bool]: Table ID -> whether it was created by this call
    """
    bq_helper.ensure_dataset_exists()
    tables = [
        (CONFIG.bigquery.transactions_table, TRANSACTIONS_SCHEMA, "Solana ledger transactions"),
        (CONFIG.bigquery.blocks_table, BLOCKS_SCHEMA, "Solana ledger blocks"),
    ]
    return {
        table_id: bq_helper.create_table(
            table_id,
            schema,
            partition_field=PARTITION_FIELD,
            description=description
        )
        for table_id, schema, description in tables
    }


def parse_args(argv: List[str] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Create the BigQuery dataset and tables for Solana ledger data"
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
        help="Name of the dataset to create the tables in"
    )
    return parser.parse_args(argv)


def main(argv: List[str] = None) -> None:
    """Main entry point for CLI execution."""
    args = parse_args(argv)
    logger = setup_logger(__name__)

    try:
        require_credentials()
    except ConfigurationError as e:
        logger.error(str(e))
        raise SystemExit(2)

    created = setup_tables(BigQueryHelper(project_id=args.project, dataset_id=args.dataset))
    for table_id, was_created in created.items():
        logger.info(f"{table_id}: {'created' if was_created else 'already present'}")


if __name__ == "__main__":
    main()
