"""
BatchLedger - local record of committed batches.

Stores, per dataset, the BLAKE3 digest of every batch the backend accepted so
a retry after a partial failure can skip what is already committed. Opt-in:
without a ledger every retry re-sends every batch.
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Default ledger location
DEFAULT_LEDGER_DIR = Path.home() / ".cache" / "entry_import"
DEFAULT_LEDGER_FILE = "batches.json"


class BatchLedger:
    """
    JSON-backed ledger of committed batch digests.

    Layout: {dataset_id: {digest: {"created": int, "size": int, "committed_at": iso}}}
    """

    def __init__(self, ledger_dir: Optional[Path] = None, ledger_file: str = DEFAULT_LEDGER_FILE):
        """
        Initialize ledger.

        Args:
            ledger_dir: Directory holding the ledger file (default: ~/.cache/entry_import)
            ledger_file: Name of ledger file (default: batches.json)
        """
        self._ledger_dir = Path(ledger_dir) if ledger_dir else DEFAULT_LEDGER_DIR
        self._ledger_file = self._ledger_dir / ledger_file
        self._entries: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._ledger_file

    async def load(self) -> None:
        """Load ledger from disk; a missing or corrupt file starts empty."""
        try:
            if self._ledger_file.exists():
                with open(self._ledger_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
                    logger.warning("BatchLedger: Unexpected ledger layout in %s - starting fresh", self._ledger_file)
                    data = {}
                self._entries = data
                logger.info("BatchLedger: Loaded %d dataset(s) from %s", len(self._entries), self._ledger_file)
            else:
                logger.debug("BatchLedger: No ledger at %s, starting fresh", self._ledger_file)
                self._entries = {}
        except json.JSONDecodeError as e:
            logger.warning("BatchLedger: Failed to parse ledger: %s - starting fresh", e)
            self._entries = {}
        self._dirty = False

    async def save(self) -> None:
        """Write ledger to disk if it changed."""
        if not self._dirty:
            return

        self._ledger_dir.mkdir(parents=True, exist_ok=True)
        with open(self._ledger_file, "w", encoding="utf-8") as f:
            json.dump(self._entries, f, indent=2)

        self._dirty = False
        logger.debug("BatchLedger: Saved ledger to %s", self._ledger_file)

    def is_committed(self, dataset_id: str, digest: str) -> bool:
        return digest in self._entries.get(dataset_id, {})

    def record(self, dataset_id: str, digest: str, created: int, size: int) -> None:
        """Mark a batch as committed."""
        self._entries.setdefault(dataset_id, {})[digest] = {
            "created": created,
            "size": size,
            "committed_at": datetime.now().isoformat(),
        }
        self._dirty = True
        logger.debug("BatchLedger: Recorded %s... for dataset %s", digest[:16], dataset_id)

    def forget(self, dataset_id: str) -> int:
        """Drop every record for a dataset. Returns how many were removed."""
        removed = len(self._entries.pop(dataset_id, {}))
        if removed:
            self._dirty = True
            logger.info("BatchLedger: Forgot %d batch(es) for dataset %s", removed, dataset_id)
        return removed

    def stats(self) -> Dict[str, int]:
        """Get ledger statistics."""
        return {
            "datasets": len(self._entries),
            "batches": sum(len(batches) for batches in self._entries.values()),
        }
