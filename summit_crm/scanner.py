"""Resumable batch scanning bounded by an execution-time ceiling."""
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from summit_crm.checkpoint import CheckpointStore
from summit_crm.logging_conf import logger
from summit_crm.roster import Entity


class ExecutionTimeGuard:
    """Reports when a run is close to the platform's execution ceiling."""

    def __init__(self, limit_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.limit_seconds = limit_seconds
        self.clock = clock
        self.started_at = clock()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def elapsed_ms(self) -> int:
        return int(self.elapsed() * 1000)

    def exceeded(self) -> bool:
        return self.elapsed() > self.limit_seconds


@dataclass
class BatchResult:
    start_index: int = 0
    scanned: int = 0
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    completed: bool = False
    next_index: int = 0


def run_batch(
    entities: Sequence[Entity],
    checkpoint: CheckpointStore,
    cursor_name: str,
    batch_size: int,
    visit: Callable[[Entity], None],
    guard: ExecutionTimeGuard,
    start_index: Optional[int] = None,
) -> BatchResult:
    """Visit the next ``batch_size`` entities after the saved cursor.

    The cursor is persisted on every exit path: the index of the first
    unvisited entity when the guard trips, the batch end otherwise, and 0
    once the end of the roster is reached.
    """
    if start_index is None:
        start_index = checkpoint.get_cursor(cursor_name)
    result = BatchResult(start_index=start_index)
    end_index = min(start_index + batch_size, len(entities))

    logger.info(f"[{cursor_name}] Scanning from index {start_index} of {len(entities)} students")

    for i in range(start_index, end_index):
        if guard.exceeded():
            logger.warning(
                f"[{cursor_name}] Approaching execution time limit. "
                f"Processed {result.scanned} students. Will resume next run."
            )
            checkpoint.save_cursor(cursor_name, i)
            result.next_index = i
            return result

        entity = entities[i]
        result.scanned += 1
        try:
            visit(entity)
        except Exception as e:
            logger.error(f"[{cursor_name}] Error processing student {entity.id}: {e}", exc_info=True)
            result.errors.append({"student": entity.id, "error": str(e)})
            result.skipped += 1

    if end_index >= len(entities):
        result.completed = True
        checkpoint.save_cursor(cursor_name, 0)
        logger.info(f"[{cursor_name}] Completed full scan of all students")
    else:
        result.next_index = end_index
        checkpoint.save_cursor(cursor_name, end_index)
        logger.info(f"[{cursor_name}] Batch complete. Will resume from index {end_index} on next run")
    return result
