"""
Errors raised by the ingestion pipeline.

Source and sink errors are transient and retried by their clients.
Block content errors are fatal for the slot that raised them.
"""


class IngestionError(RuntimeError):
    """Base error for the ingestion pipeline."""


class ConfigurationError(IngestionError):
    """Raised at startup when required settings are missing or invalid."""


class SolanaRpcError(IngestionError):
    """Raised when a JSON-RPC call fails (transport, HTTP status, or RPC error)."""


class BlockContentError(IngestionError):
    """Raised when a fetched block cannot be turned into warehouse records."""

    def __init__(self, message: str, slot: int = None):
        super().__init__(message if slot is None else f"Slot {slot}: {message}")
        self.slot = slot


class MissingMetadataError(BlockContentError):
    """Transaction has no execution metadata."""


class TransactionDecodeError(BlockContentError):
    """Transaction payload could not be decoded."""


class SignatureVerificationError(BlockContentError):
    """Transaction signature verification failed."""


class SinkInsertError(IngestionError):
    """Raised when a BigQuery insert fails or reports row errors."""

    def __init__(self, message: str, errors: list = None):
        super().__init__(message)
        self.errors = errors or []
