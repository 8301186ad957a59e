"""Main application - wires the pipelines and exposes them as CLI commands."""
import json
import signal
import sys
import time
from dataclasses import asdict, dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional

import typer

from summit_crm import meeting_notes
from summit_crm.checkpoint import CheckpointStore
from summit_crm.collector import CollectionResult, Collector
from summit_crm.drive import DriveFileStore
from summit_crm.google_client import GoogleClient
from summit_crm.logging_conf import logger, setup_logging
from summit_crm.meetings import MeetingSync, MeetingSyncResult
from summit_crm.notifier import GmailNotifier
from summit_crm.pipelines import outbound_reviews, review_requests, worksheets
from summit_crm.processor import ProcessingResult, Processor
from summit_crm.queue.sheet_queue import SheetQueue
from summit_crm.roster import Roster, RosterError
from summit_crm.settings import Settings
from summit_crm.sheets import SheetsDocumentStore


class PipelineName(str, Enum):
    review_requests = "review_requests"
    outbound_reviews = "outbound_reviews"
    worksheets = "worksheets"


@dataclass
class Pipeline:
    name: str
    queue: SheetQueue
    collector: Collector
    processor: Processor
    batch_size: int


class Application:
    """Owns the shared stores and the three collect/process pipelines."""

    def __init__(self, settings: Settings, document_store=None, file_store=None, notifier=None):
        self.settings = settings
        if document_store is None or file_store is None or notifier is None:
            client = GoogleClient.from_settings(settings)
            document_store = document_store or SheetsDocumentStore(client)
            file_store = file_store or DriveFileStore(client)
            notifier = notifier or GmailNotifier(
                client,
                sender_address=settings.delegated_user,
                sender_name=settings.notify_sender_name,
                redirect_to=settings.notify_redirect_to,
                dry_run=settings.dry_run,
            )
        self.document_store = document_store
        self.file_store = file_store
        self.notifier = notifier
        self.checkpoint = CheckpointStore(settings.checkpoint_dir)
        self.roster = Roster(
            document_store,
            settings.broadcast_spreadsheet_id,
            settings.student_data_sheet,
            settings.advisor_sheets,
        )
        self.pipelines: Dict[str, Pipeline] = {}
        self._register(
            review_requests,
            review_requests.ReviewRequestCollector(),
            review_requests.AdvisorNotifier(self.roster, notifier, settings.advisor_emails),
            settings.collect_batch_size,
        )
        self._register(
            outbound_reviews,
            outbound_reviews.OutboundReviewCollector(),
            outbound_reviews.StudentNotifier(self.roster, document_store, notifier),
            settings.collect_batch_size,
        )
        self._register(
            worksheets,
            worksheets.WorksheetCollector(file_store),
            worksheets.WorksheetRenamer(file_store, document_store),
            settings.worksheet_batch_size,
        )
        self.meeting_sync = MeetingSync(
            document_store,
            self.roster,
            settings.meeting_data_spreadsheet_id,
            settings.meeting_data_sheet,
        )
        self.running = False

    def _register(self, module, collector_strategy, processor_strategy, batch_size: int) -> None:
        queue = SheetQueue(self.document_store, self.settings.broadcast_spreadsheet_id, module.SCHEMA, module.VOCABULARY)
        self.pipelines[module.NAME] = Pipeline(
            name=module.NAME,
            queue=queue,
            collector=Collector(
                collector_strategy,
                queue,
                self.roster,
                self.document_store,
                self.checkpoint,
                self.settings.max_execution_seconds,
                self.settings.max_consecutive_empty_rows,
            ),
            processor=Processor(
                processor_strategy,
                queue,
                self.settings.max_execution_seconds,
                stale_claim_after=timedelta(minutes=self.settings.stale_claim_minutes),
            ),
            batch_size=batch_size,
        )

    def pipeline(self, name: str) -> Pipeline:
        if name not in self.pipelines:
            raise KeyError(f"Unknown pipeline: {name}")
        return self.pipelines[name]

    # Operations

    def setup_queues(self) -> Dict[str, str]:
        """Create any missing queue sheets."""
        status = {}
        for pipeline in self.pipelines.values():
            created = pipeline.queue.ensure_sheet()
            status[pipeline.queue.name] = "created" if created else "exists"
        return status

    def collect(self, name: str, reset_state: bool = False, batch_size: Optional[int] = None) -> CollectionResult:
        pipeline = self.pipeline(name)
        return pipeline.collector.collect(batch_size or pipeline.batch_size, reset_state=reset_state)

    def process(self, name: str) -> ProcessingResult:
        return self.pipeline(name).processor.process()

    def sync_students(self) -> Dict[str, Any]:
        try:
            count = self.roster.sync_from_advisor_sheets()
        except RosterError as e:
            logger.error(f"Student sync failed: {e}")
            return {"success": False, "message": str(e)}
        return {"success": True, "message": f"Wrote {count} students", "count": count}

    def sync_meetings(self) -> MeetingSyncResult:
        return self.meeting_sync.sync()

    def sync_all(self) -> Dict[str, Any]:
        """Rebuild the roster, then push meetings to every student."""
        students = self.sync_students()
        if not students["success"]:
            return {"students": students, "meetings": None}
        return {"students": students, "meetings": asdict(self.sync_meetings())}

    def complete_review(self, student_name: str) -> Dict[str, Any]:
        """Mark a student's latest review request completed."""
        queue = self.pipeline(review_requests.NAME).queue
        row = queue.mark_latest_completed(student_name)
        if row is None:
            return {"success": False, "message": f"No pending or notified review found for {student_name}"}
        return {"success": True, "message": f"Marked review for {student_name} as completed", "row": row}

    def reset_cursor(self, name: str) -> Dict[str, Any]:
        self.pipeline(name)
        self.checkpoint.reset_cursor(name)
        logger.info(f"Reset cursor for {name}")
        return {"success": True, "message": "Collection state reset. Next run will start from beginning."}

    def progress(self, name: str) -> Dict[str, Any]:
        """Scan position; a cursor back at 0 only means complete once a run has saved it."""
        self.pipeline(name)
        started = self.checkpoint.has_cursor(name)
        last_index = self.checkpoint.get_cursor(name)
        try:
            total = len(self.roster.list_entities())
        except RosterError as e:
            return {"error": str(e)}
        return {
            "last_processed_index": last_index,
            "total_students": total,
            "percent_complete": round(last_index / total * 100) if total else 100,
            "started": started,
            "is_complete": started and (last_index == 0 or last_index >= total),
        }

    def requeue_errors(self, name: str) -> Dict[str, Any]:
        pipeline = self.pipeline(name)
        count = pipeline.queue.requeue_errors(key=pipeline.collector.strategy.item_key)
        return {"success": True, "requeued": count}

    def send_meeting_notes(
        self,
        student_name: str,
        meeting_time: str,
        notes: str,
        recipient_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send meeting notes to a roster student (or an explicit address)."""
        student = self.roster.find(student_name)
        email = recipient_email or (student.email if student else None) or ""
        return meeting_notes.send_meeting_notes(
            self.notifier,
            self.document_store,
            student_name,
            meeting_time,
            notes,
            email,
            student_url=student.document_location if student else None,
        )

    # Scheduler loop

    def start(self):
        """Start the application."""
        logger.info("=" * 50)
        logger.info("Summit CRM")
        logger.info("=" * 50)
        logger.info(f"Pipelines: {', '.join(self.pipelines)}")
        logger.info(f"Collect interval: {self.settings.collect_interval}s")
        logger.info(f"Process interval: {self.settings.process_interval}s")
        logger.info("=" * 50)
        self.running = True

    def stop(self):
        """Stop the application."""
        if not self.running:
            return
        self.running = False
        logger.info("Stopped")

    def run(self):
        """Main loop: collectors and processors on their own cadence."""
        self.start()
        next_collect = next_process = time.monotonic()

        while self.running:
            try:
                now = time.monotonic()
                if now >= next_collect:
                    for name in self.pipelines:
                        self._log_result(name, "collect", self.collect(name))
                    next_collect = now + self.settings.collect_interval
                if now >= next_process:
                    for name in self.pipelines:
                        self._log_result(name, "process", self.process(name))
                    next_process = now + self.settings.process_interval
                time.sleep(1)
            except KeyboardInterrupt:
                break
            except Exception as e:
                logger.error(f"Error in main loop: {e}", exc_info=True)
                time.sleep(5)

        self.stop()

    def _log_result(self, name: str, phase: str, result) -> None:
        for error in result.errors:
            logger.warning(f"[{name}] {phase} error: {error}")


def build_application() -> Application:
    """Load settings from the environment and build the application."""
    settings = Settings.from_env()
    settings.validate()
    setup_logging(settings)
    return Application(settings)


cli = typer.Typer(add_completion=False, help="Summit CRM queue pipelines.")


def _application() -> Application:
    try:
        return build_application()
    except ValueError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=1)


def _echo(result: Any) -> None:
    if hasattr(result, "__dataclass_fields__"):
        result = asdict(result)
    typer.echo(json.dumps(result, indent=2, default=str))


@cli.command(help="Run the scheduler loop until interrupted.")
def run() -> None:
    app = _application()

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        app.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    app.run()


@cli.command("setup-queues", help="Create missing queue sheets on the broadcast spreadsheet.")
def setup_queues() -> None:
    _echo(_application().setup_queues())


@cli.command(help="Scan a batch of student spreadsheets into a pipeline's queue.")
def collect(
    pipeline: PipelineName = typer.Argument(..., help="Pipeline to collect for."),
    reset: bool = typer.Option(False, "--reset", help="Start from the first student."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1, help="Students per run."),
) -> None:
    _echo(_application().collect(pipeline.value, reset_state=reset, batch_size=batch_size))


@cli.command(help="Drain a pipeline's pending queue items.")
def process(pipeline: PipelineName = typer.Argument(..., help="Pipeline to process.")) -> None:
    _echo(_application().process(pipeline.value))


@cli.command("collect-reviews", help="Collect review requests.")
def collect_reviews(reset: bool = typer.Option(False, "--reset")) -> None:
    _echo(_application().collect(review_requests.NAME, reset_state=reset))


@cli.command("process-reviews", help="Send grouped advisor notifications.")
def process_reviews() -> None:
    _echo(_application().process(review_requests.NAME))


@cli.command("collect-outbound", help="Collect reviewed tasks.")
def collect_outbound(reset: bool = typer.Option(False, "--reset")) -> None:
    _echo(_application().collect(outbound_reviews.NAME, reset_state=reset))


@cli.command("process-outbound", help="Email students about reviewed tasks.")
def process_outbound() -> None:
    _echo(_application().process(outbound_reviews.NAME))


@cli.command("collect-worksheets", help="Collect misnamed worksheet files.")
def collect_worksheets(reset: bool = typer.Option(False, "--reset")) -> None:
    _echo(_application().collect(worksheets.NAME, reset_state=reset))


@cli.command("process-worksheets", help="Copy, rename and share queued worksheets.")
def process_worksheets() -> None:
    _echo(_application().process(worksheets.NAME))


@cli.command("sync-students", help="Rebuild Student Data from the advisor tabs.")
def sync_students() -> None:
    _echo(_application().sync_students())


@cli.command("sync-meetings", help="Rewrite every student's Meetings tab from the Meeting Data sheet.")
def sync_meetings() -> None:
    _echo(_application().sync_meetings())


@cli.command("sync-all", help="Sync students, then meetings.")
def sync_all() -> None:
    _echo(_application().sync_all())


@cli.command("complete-review", help="Mark a student's latest review request completed.")
def complete_review(student_name: str = typer.Argument(..., help="Student name as on the roster.")) -> None:
    _echo(_application().complete_review(student_name))


@cli.command("reset-cursor", help="Restart a pipeline's scan from the first student.")
def reset_cursor(pipeline: PipelineName = typer.Argument(...)) -> None:
    _echo(_application().reset_cursor(pipeline.value))


@cli.command(help="Show a pipeline's scan progress.")
def progress(pipeline: PipelineName = typer.Argument(...)) -> None:
    _echo(_application().progress(pipeline.value))


@cli.command("requeue-errors", help="Move a pipeline's errored items back to pending.")
def requeue_errors(pipeline: PipelineName = typer.Argument(...)) -> None:
    _echo(_application().requeue_errors(pipeline.value))


@cli.command("send-meeting-notes", help="Email meeting notes to a student, CC the parent on file.")
def send_meeting_notes(
    student_name: str = typer.Argument(...),
    meeting_time: str = typer.Option(..., "--when", help='e.g. "Jan 15, 2024 (10:00 AM)".'),
    notes: str = typer.Option(..., "--notes"),
    email: Optional[str] = typer.Option(None, "--email", help="Override the roster email."),
) -> None:
    _echo(_application().send_meeting_notes(student_name, meeting_time, notes, recipient_email=email))


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
