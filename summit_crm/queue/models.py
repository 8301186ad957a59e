"""Queue data models."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_PARSE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%Y-%m-%d",
    "%m/%d/%Y",
)


def format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime(TIMESTAMP_FORMAT) if value else ""


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a timestamp as Sheets displays it; None if blank or unrecognized."""
    text = (value or "").strip()
    if not text:
        return None
    for fmt in _PARSE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class StatusVocabulary:
    """Status words one queue uses. ``done`` is "notified" or "processed"."""

    done: str
    pending: str = "pending"
    error: str = "error"
    claimed: str = "claimed"
    completed: str = "completed"

    @property
    def blocking(self) -> FrozenSet[str]:
        """Statuses that block re-inserting an item with the same dedup key."""
        return frozenset({"", self.pending, self.done, self.claimed})

    def is_pending(self, status: str) -> bool:
        return not status or status == self.pending


@dataclass
class QueueItem:
    """One discovered unit of work."""

    entity_id: str
    subject: str
    payload: str = ""
    aux: Dict[str, str] = field(default_factory=dict)
    status: str = "pending"
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    outcome: Optional[str] = None
    error: Optional[str] = None
    row: Optional[int] = field(default=None, compare=False)  # sheet row handle

    @classmethod
    def create(
        cls,
        entity_id: str,
        subject: str,
        payload: str = "",
        aux: Optional[Dict[str, str]] = None,
        status: str = "pending",
    ) -> "QueueItem":
        """Factory method to create a new pending QueueItem."""
        return cls(
            entity_id=entity_id,
            subject=subject,
            payload=payload,
            aux=dict(aux or {}),
            status=status,
            created_at=datetime.now(),
        )


@dataclass(frozen=True)
class QueueSchema:
    """Maps QueueItem fields onto the header columns of a queue sheet.

    The trailing columns from ``status_column`` onward may only hold status,
    processed-at, outcome and error, so a status update is one contiguous write.
    """

    sheet_name: str
    headers: Tuple[str, ...]
    entity_column: str
    subject_column: str
    payload_column: str
    status_column: str
    processed_at_column: str
    outcome_column: Optional[str] = None
    error_column: Optional[str] = None
    aux_columns: Tuple[Tuple[str, str], ...] = ()
    timestamp_column: str = "Timestamp"
    header_color: Tuple[float, float, float] = (0.259, 0.522, 0.957)

    def __post_init__(self):
        tail = set(self.headers[self.index(self.status_column):])
        allowed = {self.status_column, self.processed_at_column, self.outcome_column, self.error_column}
        if not tail <= allowed:
            raise ValueError(f"{self.sheet_name}: unexpected columns after status: {sorted(tail - allowed)}")

    def index(self, header: str) -> int:
        return self.headers.index(header)

    @property
    def width(self) -> int:
        return len(self.headers)

    def to_row(self, item: QueueItem) -> List[str]:
        values = {
            self.timestamp_column: format_timestamp(item.created_at),
            self.entity_column: item.entity_id,
            self.subject_column: item.subject,
            self.payload_column: item.payload,
            self.status_column: item.status,
            self.processed_at_column: format_timestamp(item.processed_at),
        }
        if self.outcome_column:
            values[self.outcome_column] = item.outcome or ""
        if self.error_column:
            values[self.error_column] = item.error or ""
        for name, header in self.aux_columns:
            values[header] = item.aux.get(name, "")
        return [values.get(header, "") for header in self.headers]

    def from_row(self, row: Sequence[str], row_number: int) -> QueueItem:
        cells = list(row) + [""] * (self.width - len(row))

        def cell(header: Optional[str]) -> str:
            return str(cells[self.index(header)]).strip() if header else ""

        return QueueItem(
            entity_id=cell(self.entity_column),
            subject=cell(self.subject_column),
            payload=cell(self.payload_column),
            aux={name: cell(header) for name, header in self.aux_columns},
            status=cell(self.status_column),
            created_at=parse_timestamp(cell(self.timestamp_column)),
            processed_at=parse_timestamp(cell(self.processed_at_column)),
            outcome=cell(self.outcome_column) or None,
            error=cell(self.error_column) or None,
            row=row_number,
        )

    def status_tail(
        self,
        status: str,
        processed_at: Optional[datetime],
        outcome: Optional[str] = None,
        error: Optional[str] = None,
    ) -> List[str]:
        """Values for the columns from status to the end of the row."""
        values = {
            self.status_column: status,
            self.processed_at_column: format_timestamp(processed_at),
        }
        if self.outcome_column:
            values[self.outcome_column] = outcome or ""
        if self.error_column:
            values[self.error_column] = error or ""
        return [values[header] for header in self.headers[self.index(self.status_column):]]
