"""Phase 2: drain pending queue items and perform their side effects."""
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from summit_crm.logging_conf import logger
from summit_crm.queue.models import QueueItem
from summit_crm.queue.sheet_queue import SheetQueue
from summit_crm.scanner import ExecutionTimeGuard


class ResolutionError(Exception):
    """The side-effect target could not be resolved; the item stays pending."""


@dataclass
class StepResult:
    name: str
    ok: bool
    detail: str = ""


@dataclass
class SideEffectOutcome:
    """Result of one side effect, including its best-effort sub-steps."""

    success: bool
    outcome: str = ""
    steps: List[StepResult] = field(default_factory=list)

    @property
    def failed_steps(self) -> List[StepResult]:
        return [step for step in self.steps if not step.ok]

    def summary(self) -> str:
        """Outcome text, with failed sub-steps appended."""
        if not self.failed_steps:
            return self.outcome
        warnings = "; ".join(f"{step.name} failed: {step.detail}" for step in self.failed_steps)
        return f"{self.outcome} ({warnings})" if self.outcome else warnings


@dataclass
class ProcessingResult:
    processed: int = 0
    succeeded: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    execution_time_ms: int = 0


class ProcessorStrategy:
    """Per-pipeline hooks for the generic Processor."""

    name = ""
    grouped = False

    def start_run(self, items: Sequence[QueueItem]) -> None:
        """Called once per run with the pending items, before grouping."""

    def group_key(self, item: QueueItem) -> str:
        """Key that batches items into one side effect (grouped pipelines only)."""
        return item.entity_id

    def resolve_target(self, items: Sequence[QueueItem]) -> Any:
        """Whatever the side effect needs; raise ResolutionError to leave items pending."""
        raise NotImplementedError

    def perform(self, target: Any, items: Sequence[QueueItem]) -> SideEffectOutcome:
        raise NotImplementedError


class Processor:
    """Claims pending items unit by unit and records their final status."""

    def __init__(
        self,
        strategy: ProcessorStrategy,
        queue: SheetQueue,
        max_execution_seconds: float,
        stale_claim_after: Optional[timedelta] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.strategy = strategy
        self.queue = queue
        self.max_execution_seconds = max_execution_seconds
        self.stale_claim_after = stale_claim_after
        self.clock = clock
        self.now = now

    def process(self) -> ProcessingResult:
        guard = ExecutionTimeGuard(self.max_execution_seconds, clock=self.clock)
        results = ProcessingResult()
        name = self.strategy.name
        vocabulary = self.queue.vocabulary

        try:
            if self.stale_claim_after is not None:
                self.queue.release_stale_claims(self.stale_claim_after, now=self.now())
            items = self.queue.load_all()
        except Exception as e:
            logger.error(f"[{name}] Fatal error during processing setup: {e}", exc_info=True)
            results.errors.append({"error": f"Fatal error: {e}"})
            results.execution_time_ms = guard.elapsed_ms()
            return results

        pending = [item for item in items if vocabulary.is_pending(item.status) and item.entity_id]
        logger.info(f"[{name}] Pending items: {len(pending)}")
        if not pending:
            results.execution_time_ms = guard.elapsed_ms()
            return results
        try:
            self.strategy.start_run(pending)
        except Exception as e:
            logger.error(f"[{name}] Fatal error preparing run: {e}", exc_info=True)
            results.errors.append({"error": f"Fatal error: {e}"})
            results.execution_time_ms = guard.elapsed_ms()
            return results

        for unit_key, unit in self._units(pending).items():
            if guard.exceeded():
                logger.warning(f"[{name}] Approaching execution time limit. Remaining items stay pending.")
                break

            try:
                target = self.strategy.resolve_target(unit)
            except ResolutionError as e:
                logger.warning(f"[{name}] Skipping {unit_key}: {e}")
                results.errors.append({"key": unit_key, "error": str(e)})
                continue

            try:
                claimed = self.queue.claim(unit, now=self.now())
            except Exception as e:
                logger.error(f"[{name}] Failed to claim {unit_key}: {e}", exc_info=True)
                results.errors.append({"key": unit_key, "error": str(e)})
                continue
            if not claimed:
                continue

            results.processed += len(claimed)
            try:
                self._run_unit(unit_key, target, claimed, results)
            except Exception as e:
                logger.error(f"[{name}] Failed to record status for {unit_key}: {e}", exc_info=True)
                results.errors.append({"key": unit_key, "error": str(e)})

        results.execution_time_ms = guard.elapsed_ms()
        logger.info(
            f"[{name}] Processing complete: Processed {results.processed}, Succeeded: {results.succeeded}, "
            f"Errors: {len(results.errors)}, Time: {results.execution_time_ms}ms"
        )
        return results

    def _units(self, pending: List[QueueItem]) -> "OrderedDict[str, List[QueueItem]]":
        units: "OrderedDict[str, List[QueueItem]]" = OrderedDict()
        for item in pending:
            key = self.strategy.group_key(item) if self.strategy.grouped else f"{item.entity_id} (row {item.row})"
            units.setdefault(key, []).append(item)
        return units

    def _run_unit(self, unit_key: str, target: Any, claimed: List[QueueItem], results: ProcessingResult) -> None:
        name = self.strategy.name
        vocabulary = self.queue.vocabulary
        try:
            outcome = self.strategy.perform(target, claimed)
            if not outcome.success:
                raise RuntimeError(outcome.summary() or "side effect failed")
        except Exception as e:
            logger.error(f"[{name}] Error processing {unit_key}: {e}", exc_info=True)
            failed_at = self.now()
            for item in claimed:
                self.queue.update_status(item.row, vocabulary.error, failed_at, error=str(e)[:500])
                item.status = vocabulary.error
            results.errors.append({"key": unit_key, "error": str(e)})
            return

        # one timestamp for the whole unit
        done_at = self.now()
        summary = outcome.summary()
        for item in claimed:
            self.queue.update_status(item.row, vocabulary.done, done_at, outcome=summary)
            item.status = vocabulary.done
            item.processed_at = done_at
            item.outcome = summary
        results.succeeded += len(claimed)
        for step in outcome.failed_steps:
            logger.warning(f"[{name}] {unit_key}: {step.name} failed: {step.detail}")
        logger.info(
            f"[{name}] {unit_key} -> {vocabulary.done} ({len(claimed)} item(s)): {summary}",
            extra={"queue": self.queue.name, "unit": unit_key},
        )
