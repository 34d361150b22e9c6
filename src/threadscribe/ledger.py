"""Per-thread record of which Slack files have already been processed."""

from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from threadscribe.extraction.schemas import Attachment
from threadscribe.utils.logging import get_logger
from threadscribe.utils.store import BlobStore

logger = get_logger(__name__)


def thread_key(channel: str, thread_ts: str) -> str:
    """Build the stable blob key for a thread's ledger record."""
    return f"processed/{channel}_{thread_ts}.json"


def filter_unprocessed(
    items: Sequence[Attachment], processed_ids: Iterable[str]
) -> list[Attachment]:
    """Return the items whose id is not in ``processed_ids``, order preserved."""
    processed = set(processed_ids)
    return [item for item in items if item.id not in processed]


def _merge_record(current: Any | None, new_ids: Sequence[str]) -> dict:
    existing = _ids_from_record(current)
    merged = list(existing)
    seen = set(existing)
    for file_id in new_ids:
        if file_id not in seen:
            seen.add(file_id)
            merged.append(file_id)
    return {
        "processedFileIds": merged,
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
    }


def _ids_from_record(record: Any | None) -> list[str]:
    if not isinstance(record, dict):
        return []
    ids = record.get("processedFileIds") or []
    if not isinstance(ids, list):
        return []
    return [str(file_id) for file_id in ids]


class ProcessedLedger:
    """Reads and grows the set of processed file ids for each thread.

    The stored record is ``{"processedFileIds": [...], "lastUpdated": iso}``.
    Ids are only ever added: ``mark_processed`` merges into whatever is
    stored at write time.
    """

    def __init__(self, store: BlobStore, ttl: int | None = None):
        self._store = store
        self._ttl = ttl

    async def get_processed(self, key: str) -> set[str]:
        """Get processed ids for a thread; empty when no record exists yet."""
        record = await self._store.get_json(key)
        ids = set(_ids_from_record(record))
        logger.info("ledger_read", key=key, processed_count=len(ids))
        return ids

    async def mark_processed(self, key: str, new_ids: Sequence[str]) -> None:
        """Merge ``new_ids`` into the thread's record."""
        if not new_ids:
            return

        written = await self._store.update_json(
            key,
            lambda current: _merge_record(current, new_ids),
            ttl=self._ttl,
        )
        logger.info(
            "ledger_written",
            key=key,
            added=len(new_ids),
            total=len(written["processedFileIds"]),
        )
