"""Phase 1: scan student spreadsheets and enqueue new work items."""
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, Set, Tuple

from summit_crm.checkpoint import CheckpointStore
from summit_crm.logging_conf import logger
from summit_crm.queue.models import QueueItem
from summit_crm.queue.sheet_queue import SheetQueue
from summit_crm.roster import Entity, Roster
from summit_crm.scanner import ExecutionTimeGuard, run_batch
from summit_crm.sheets import LinkCell

DedupKey = Tuple[Hashable, ...]


@dataclass(frozen=True)
class MatchRule:
    """Where to look for candidate rows in one tab of a student spreadsheet.

    Columns are 1-based. ``link_cell`` names a single (sheet, A1) cell whose
    link applies to every matching row, for tabs that keep one shared document.
    """

    sheet_name: str
    start_row: int
    title_column: Optional[int] = None
    status_column: Optional[int] = None
    status_predicate: Optional[Callable[[str], bool]] = None
    link_column: Optional[int] = None
    link_cell: Optional[Tuple[str, str]] = None

    def matches(self, status: str) -> bool:
        if self.status_predicate is None:
            return True
        return bool(status) and self.status_predicate(status)


@dataclass
class Candidate:
    """One row of a student tab, read through a MatchRule."""

    entity: Entity
    rule: MatchRule
    row: int
    status: str = ""
    title: str = ""
    link: LinkCell = field(default_factory=LinkCell)


class CollectorStrategy:
    """Per-pipeline hooks for the generic Collector."""

    name = ""
    match_rules: Sequence[MatchRule] = ()

    def prepare(self, entity: Entity, document) -> Dict[str, Any]:
        """Per-document context computed once before the rules run."""
        return {}

    def candidate_key(self, candidate: Candidate, context: Dict[str, Any]) -> Optional[DedupKey]:
        """Dedup key for a matched row, or None if the row is not a candidate."""
        raise NotImplementedError

    def item_key(self, item: QueueItem) -> DedupKey:
        """Dedup key of an item already in the queue."""
        raise NotImplementedError

    def build_item(self, candidate: Candidate, context: Dict[str, Any]) -> Optional[QueueItem]:
        """The new queue item for a candidate, or None if nothing needs doing."""
        raise NotImplementedError


@dataclass
class CollectionResult:
    scanned: int = 0
    new_items: int = 0
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    execution_time_ms: int = 0
    completed: bool = False


class Collector:
    """Batch-scans the roster and appends deduplicated items to a queue."""

    def __init__(
        self,
        strategy: CollectorStrategy,
        queue: SheetQueue,
        roster: Roster,
        document_store,
        checkpoint: CheckpointStore,
        max_execution_seconds: float,
        max_consecutive_empty: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.strategy = strategy
        self.queue = queue
        self.roster = roster
        self.document_store = document_store
        self.checkpoint = checkpoint
        self.max_execution_seconds = max_execution_seconds
        self.max_consecutive_empty = max_consecutive_empty
        self.clock = clock

    def collect(self, batch_size: int, reset_state: bool = False) -> CollectionResult:
        guard = ExecutionTimeGuard(self.max_execution_seconds, clock=self.clock)
        results = CollectionResult()
        name = self.strategy.name

        try:
            start_index = 0 if reset_state else self.checkpoint.get_cursor(name)
            entities = self.roster.list_entities()
            existing = self._existing_keys()
        except Exception as e:
            logger.error(f"[{name}] Fatal error during collection setup: {e}", exc_info=True)
            results.errors.append({"error": f"Fatal error: {e}"})
            results.execution_time_ms = guard.elapsed_ms()
            return results

        logger.info(f"[{name}] Existing queue items (blocking): {len(existing)}")

        def visit(entity: Entity) -> None:
            results.new_items += self._scan_entity(entity, existing)

        batch = run_batch(entities, self.checkpoint, name, batch_size, visit, guard, start_index=start_index)

        results.scanned = batch.scanned
        results.skipped = batch.skipped
        results.errors.extend(batch.errors)
        results.completed = batch.completed
        results.execution_time_ms = guard.elapsed_ms()

        logger.info(
            f"[{name}] Collection complete: Scanned {results.scanned}, New items: {results.new_items}, "
            f"Skipped: {results.skipped}, Time: {results.execution_time_ms}ms"
        )
        return results

    def _existing_keys(self) -> Set[DedupKey]:
        blocking = self.queue.vocabulary.blocking
        return {
            self.strategy.item_key(item)
            for item in self.queue.load_all()
            if item.status in blocking
        }

    def _scan_entity(self, entity: Entity, existing: Set[DedupKey]) -> int:
        document = self.document_store.open_document(entity.document_location)
        if document is None:
            raise RuntimeError(f"Could not open spreadsheet for {entity.id}")

        context = self.strategy.prepare(entity, document)
        added = 0
        for rule in self.strategy.match_rules:
            for candidate in self._candidates(entity, document, rule):
                if not rule.matches(candidate.status):
                    continue
                key = self.strategy.candidate_key(candidate, context)
                if key is None:
                    continue
                if key in existing:
                    logger.debug(f"{entity.id} - {key} already in {self.queue.name}, skipping")
                    continue
                item = self.strategy.build_item(candidate, context)
                if item is None:
                    continue
                self.queue.append(item)
                existing.add(key)
                added += 1
        return added

    def _candidates(self, entity: Entity, document, rule: MatchRule):
        """Yield rows of one tab, stopping after a run of fully empty rows."""
        sheet = document.get_sheet(rule.sheet_name)
        if sheet is None:
            logger.debug(
                f'Sheet "{rule.sheet_name}" not found for {entity.id}. '
                f"Available sheets: {', '.join(document.sheet_names())}"
            )
            return

        statuses = self._read_column(sheet, rule.start_row, rule.status_column)
        titles = self._read_column(sheet, rule.start_row, rule.title_column)
        links: List[LinkCell] = []
        if rule.link_column:
            links = sheet.read_links(rule.start_row, rule.link_column, None)
        shared_link = self._read_shared_link(entity, document, rule)

        num_rows = max(len(statuses), len(titles), len(links))
        consecutive_empty = 0
        for offset in range(num_rows):
            status = statuses[offset] if offset < len(statuses) else ""
            title = titles[offset] if offset < len(titles) else ""
            own_link = links[offset] if offset < len(links) else LinkCell()
            candidate = Candidate(entity, rule, rule.start_row + offset, status, title, shared_link or own_link)
            # a shared link is the same on every row, so it never makes a row non-empty
            if not status.strip() and not title.strip() and not own_link.target:
                consecutive_empty += 1
                if consecutive_empty >= self.max_consecutive_empty:
                    logger.debug(
                        f'  Stopping "{rule.sheet_name}" at row {candidate.row} '
                        f"after {self.max_consecutive_empty} consecutive empty rows"
                    )
                    break
                continue
            consecutive_empty = 0
            yield candidate

    @staticmethod
    def _read_column(sheet, start_row: int, column: Optional[int]) -> List[str]:
        if not column:
            return []
        return [row[0] for row in sheet.read_range(start_row, column, None, 1)]

    @staticmethod
    def _read_shared_link(entity: Entity, document, rule: MatchRule) -> Optional[LinkCell]:
        if not rule.link_cell:
            return None
        sheet_name, cell = rule.link_cell
        sheet = document.get_sheet(sheet_name)
        if sheet is None:
            logger.warning(f'Sheet "{sheet_name}" not found for {entity.id}; no shared link')
            return None
        return sheet.read_link_cell(cell)
