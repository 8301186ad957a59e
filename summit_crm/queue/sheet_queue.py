"""Queue table stored as a tab of the broadcast spreadsheet."""
from datetime import datetime, timedelta
from typing import Callable, Dict, Hashable, Iterable, List, Optional

from summit_crm.logging_conf import logger
from summit_crm.queue.models import QueueItem, QueueSchema, StatusVocabulary

HEADER_ROWS = 1


def default_key(item: QueueItem) -> Hashable:
    return (item.entity_id, item.subject, item.payload)


class QueueNotFoundError(Exception):
    """The queue sheet (or the spreadsheet holding it) is missing."""


class SheetQueue:
    """Append-only queue table. Rows are never deleted."""

    def __init__(self, document_store, spreadsheet_id: str, schema: QueueSchema, vocabulary: StatusVocabulary):
        self.document_store = document_store
        self.spreadsheet_id = spreadsheet_id
        self.schema = schema
        self.vocabulary = vocabulary
        self._sheet = None

    @property
    def name(self) -> str:
        return self.schema.sheet_name

    def ensure_sheet(self) -> bool:
        """Create the queue sheet with headers. Returns False if it already existed."""
        document = self._open_document()
        if document.get_sheet(self.name):
            logger.info(f"{self.name} sheet already exists. No setup needed.")
            return False
        self._sheet = document.add_sheet(self.name, self.schema.headers, self.schema.header_color)
        logger.info(f"{self.name} sheet created successfully")
        return True

    def sheet(self, refresh: bool = False):
        if self._sheet is None or refresh:
            sheet = self._open_document().get_sheet(self.name)
            if sheet is None:
                raise QueueNotFoundError(f"{self.name} sheet not found. Run setup-queues first.")
            self._sheet = sheet
        return self._sheet

    def append(self, item: QueueItem) -> None:
        self.sheet().append_row(self.schema.to_row(item))
        logger.info(
            f"{self.name} enqueued {item.entity_id}: {item.subject}",
            extra={"queue": self.name, "entity": item.entity_id},
        )

    def load_all(self) -> List[QueueItem]:
        """Read every data row once; each item carries its sheet row number."""
        rows = self.sheet(refresh=True).read_range(HEADER_ROWS + 1, 1, None, self.schema.width)
        items = []
        for offset, row in enumerate(rows):
            if not any(str(cell).strip() for cell in row):
                continue
            items.append(self.schema.from_row(row, HEADER_ROWS + 1 + offset))
        return items

    def update_status(
        self,
        row: int,
        status: str,
        processed_at: Optional[datetime] = None,
        outcome: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        """Rewrite only the status/processed/outcome/error cells of one row."""
        tail = self.schema.status_tail(status, processed_at, outcome, error)
        self.sheet().write_range(row, self.schema.index(self.schema.status_column) + 1, [tail])
        logger.debug(f"{self.name} row {row} -> {status}")

    def read_statuses(self) -> Dict[int, str]:
        """Current status per row, read fresh from the sheet."""
        status_col = self.schema.index(self.schema.status_column) + 1
        values = self.sheet().read_range(HEADER_ROWS + 1, status_col, None, 1)
        return {HEADER_ROWS + 1 + i: str(v[0]).strip() for i, v in enumerate(values)}

    def claim(self, items: Iterable[QueueItem], now: Optional[datetime] = None) -> List[QueueItem]:
        """Mark still-pending items as claimed; return the ones this run now owns.

        Statuses are re-read right before claiming so an item another run has
        already claimed or finished is dropped. This narrows, but does not
        close, the window between two overlapping processor runs.
        """
        now = now or datetime.now()
        current = self.read_statuses()
        claimed = []
        for item in items:
            if item.row is None or not self.vocabulary.is_pending(current.get(item.row, "")):
                logger.info(f"{self.name} row {item.row} no longer pending, skipping")
                continue
            self.update_status(item.row, self.vocabulary.claimed, now)
            item.status = self.vocabulary.claimed
            claimed.append(item)
        return claimed

    def release_stale_claims(self, older_than: timedelta, now: Optional[datetime] = None) -> int:
        """Return claims left behind by a crashed run to pending."""
        now = now or datetime.now()
        released = 0
        for item in self.load_all():
            if item.status != self.vocabulary.claimed:
                continue
            if item.processed_at and now - item.processed_at < older_than:
                continue
            self.update_status(item.row, self.vocabulary.pending)
            released += 1
        if released:
            logger.warning(f"Released {released} stale claims in {self.name}")
        return released

    def requeue_errors(self, key: Callable[[QueueItem], Hashable] = default_key) -> int:
        """Move errored items back to pending (manual retry).

        An errored item is left alone when its dedup key already has a live
        row, e.g. one a later collect re-inserted.
        """
        items = self.load_all()
        live = {key(item) for item in items if item.status in self.vocabulary.blocking}
        count = 0
        for item in items:
            if item.status != self.vocabulary.error:
                continue
            item_key = key(item)
            if item_key in live:
                logger.info(f"{self.name} row {item.row} already queued again, not requeueing")
                continue
            self.update_status(item.row, self.vocabulary.pending)
            live.add(item_key)
            count += 1
        logger.info(f"Requeued {count} errored items in {self.name}")
        return count

    def mark_latest_completed(self, entity_id: str) -> Optional[int]:
        """Mark the most recent pending/notified item for an entity as completed."""
        open_statuses = {self.vocabulary.pending, self.vocabulary.done}
        for item in reversed(self.load_all()):
            if item.entity_id == entity_id and item.status in open_statuses:
                # Only the status cell changes; processed-at keeps the notification time
                status_col = self.schema.index(self.schema.status_column) + 1
                self.sheet().write_range(item.row, status_col, [[self.vocabulary.completed]])
                logger.info(f"Marked {self.name} row {item.row} completed for {entity_id}")
                return item.row
        return None

    def _open_document(self):
        document = self.document_store.open_by_id(self.spreadsheet_id)
        if document is None:
            raise QueueNotFoundError(f"Broadcast spreadsheet {self.spreadsheet_id} is not accessible")
        return document
