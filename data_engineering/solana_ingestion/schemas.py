"""
BigQuery schemas for the ledger tables.

Both tables are partitioned by day on ``block_timestamp``.
"""

from google.cloud import bigquery


PARTITION_FIELD = "block_timestamp"


def _token_balances(name: str) -> bigquery.SchemaField:
    return bigquery.SchemaField(
        name,
        "RECORD",
        mode="REPEATED",
        fields=[
            bigquery.SchemaField("mint", "STRING"),
            bigquery.SchemaField("amount", "NUMERIC"),
        ],
    )


BLOCKS_SCHEMA = [
    bigquery.SchemaField("block_timestamp", "TIMESTAMP", mode="NULLABLE"),
    bigquery.SchemaField("slot", "INTEGER"),
    bigquery.SchemaField("parent_slot", "INTEGER"),
    bigquery.SchemaField("blockhash", "STRING"),
    bigquery.SchemaField("previous_blockhash", "STRING"),
    bigquery.SchemaField(
        "rewards",
        "RECORD",
        mode="REPEATED",
        fields=[
            bigquery.SchemaField("pubkey", "STRING"),
            bigquery.SchemaField("lamports", "INTEGER"),
            bigquery.SchemaField("post_balance", "INTEGER"),
            bigquery.SchemaField("reward_type", "STRING", mode="NULLABLE"),
        ],
    ),
]


TRANSACTIONS_SCHEMA = [
    bigquery.SchemaField("block_timestamp", "TIMESTAMP", mode="NULLABLE"),
    bigquery.SchemaField("slot", "INTEGER"),
    bigquery.SchemaField("transaction_id", "STRING"),
    bigquery.SchemaField("is_successful", "BOOLEAN"),
    bigquery.SchemaField("error", "STRING"),
    bigquery.SchemaField("fee", "INTEGER"),
    bigquery.SchemaField(
        "accounts",
        "RECORD",
        mode="REPEATED",
        fields=[
            bigquery.SchemaField("address", "STRING"),
            bigquery.SchemaField("pre_sol_balance", "INTEGER"),
            bigquery.SchemaField("post_sol_balance", "INTEGER"),
            _token_balances("pre_token_balances"),
            _token_balances("post_token_balances"),
        ],
    ),
    bigquery.SchemaField(
        "instructions",
        "RECORD",
        mode="REPEATED",
        fields=[
            bigquery.SchemaField("program_id", "STRING"),
            bigquery.SchemaField("accounts", "STRING", mode="REPEATED"),
            # base64 text
            bigquery.SchemaField("data", "STRING"),
        ],
    ),
    bigquery.SchemaField("log_messages", "STRING", mode="REPEATED"),
]
