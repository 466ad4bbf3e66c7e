"""
Datasets service - the remote collaborator for entry uploads.

Implements IEntryUploader against the backend REST API.
"""
import logging
from typing import Any, Dict, Sequence
from urllib.parse import quote

from ..errors import ApiError
from ..models import EntryRecord
from ..protocols import IAPIClient

logger = logging.getLogger(__name__)


class DatasetsService:
    """Dataset lookups and bulk entry creation."""

    def __init__(self, api_client: IAPIClient):
        self._api = api_client

    @staticmethod
    def _dataset_path(dataset_id: str) -> str:
        return f"/datasets/{quote(str(dataset_id), safe='')}"

    async def get_dataset(self, dataset_id: str) -> Dict[str, Any]:
        """Fetch a dataset record."""
        return await self._api.get(self._dataset_path(dataset_id))

    async def create_entries_bulk(self, dataset_id: str, entries: Sequence[EntryRecord]) -> int:
        """
        Create entries in one request.

        The backend does not deduplicate; sending the same entries twice
        creates them twice.

        Returns:
            Number of entries the backend reports as created
        """
        data = await self._api.post(
            f"{self._dataset_path(dataset_id)}/entries/bulk",
            json={"entries": [entry.to_dict() for entry in entries]},
        )
        created = data.get("created") if isinstance(data, dict) else None
        if not isinstance(created, int) or isinstance(created, bool):
            raise ApiError(
                f"Bulk create response missing integer 'created': {data!r}",
                status=200,
                data=data,
            )
        logger.debug(f"Dataset {dataset_id}: {created}/{len(entries)} entries created")
        return created
