"""Services for entry_import module."""
from .api_client import HTTPAPIClient
from .batch_ledger import BatchLedger
from .datasets import DatasetsService

__all__ = [
    "BatchLedger",
    "DatasetsService",
    "HTTPAPIClient",
]
