"""
Configuration for Solana ledger ingestion.

This module contains all configuration settings for the listener,
including RPC endpoints, BigQuery settings, and concurrency limits.
"""

import os
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Load environment variables
load_dotenv()


DEFAULT_RPC_ENDPOINTS = [
    "https://api.mainnet-beta.solana.com",
    "https://solana-api.projectserum.com",
]


def _endpoints_from_env() -> List[str]:
    value = os.getenv("SOLANA_RPC_URLS", "")
    endpoints = [url.strip() for url in value.split(",") if url.strip()]
    return endpoints or list(DEFAULT_RPC_ENDPOINTS)


def _default_max_in_flight() -> int:
    return (os.cpu_count() or 1) * 2


@dataclass
class SolanaRpcConfig:
    """Solana JSON-RPC configuration."""
    endpoints: List[str] = field(default_factory=_endpoints_from_env)
    timeout: float = 60.0  # seconds per request
    initial_backoff: float = 0.1
    endpoint_timeout: float = 10.0  # cumulative wait before trying another node


@dataclass
class BigQueryConfig:
    """BigQuery configuration."""
    project_id: str = field(default_factory=lambda: os.getenv("GOOGLE_CLOUD_PROJECT", ""))
    dataset_id: str = field(default_factory=lambda: os.getenv("BIGQUERY_DATASET", "solana_test"))
    credentials_path: str = field(default_factory=lambda: os.getenv("GOOGLE_APPLICATION_CREDENTIALS", ""))
    location: str = "US"

    # Table names
    blocks_table: str = "blocks"
    transactions_table: str = "transactions"

    # Write settings
    insert_timeout: float = 60.0
    insert_max_attempts: int = 10
    insert_retry_delay: float = 1.0
    use_insert_ids: bool = field(
        default_factory=lambda: os.getenv("BIGQUERY_USE_INSERT_IDS", "").lower() in ("1", "true", "yes")
    )


@dataclass
class ListenerConfig:
    """Slot discovery and dispatch settings."""
    slots_behind_latest: int = 200
    max_slot_range: int = 100
    idle_wait: float = 1.0
    max_in_flight: int = field(default_factory=_default_max_in_flight)


@dataclass
class IngestionConfig:
    """Main ingestion configuration."""
    solana: SolanaRpcConfig = field(default_factory=SolanaRpcConfig)
    bigquery: BigQueryConfig = field(default_factory=BigQueryConfig)
    listener: ListenerConfig = field(default_factory=ListenerConfig)

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


def get_config() -> IngestionConfig:
    """
    Get the ingestion configuration.

    Returns:
        IngestionConfig: Configuration instance with all settings.
    """
    return IngestionConfig()


# Singleton config instance
CONFIG = get_config()


def require_credentials() -> str:
    """
    Check that a Google service account key file is configured.

    Returns:
        str: Path to the credentials file

    Raises:
        ConfigurationError: If the variable is unset or the file is missing
    """
    path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")
    if not path:
        raise ConfigurationError("Environment variable GOOGLE_APPLICATION_CREDENTIALS is required")
    if not os.path.isfile(path):
        raise ConfigurationError(f"Credentials file {path} does not exist")
    return path
