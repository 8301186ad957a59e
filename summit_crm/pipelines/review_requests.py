"""Review requests: students mark a task "Needs Review", advisors get one email each."""
from typing import Dict, List, Optional, Sequence

from summit_crm.collector import Candidate, CollectorStrategy, MatchRule
from summit_crm.logging_conf import logger
from summit_crm.pipelines.common import (
    HOME_PAGE_SHEET,
    HOME_SUPPLEMENTAL_DOC_CELL,
    SIGNATURE,
    TRACKER_SHEET,
    TRACKER_TITLE_COL,
    Recipient,
    format_submitted,
    task_rules,
)
from summit_crm.processor import ProcessorStrategy, ResolutionError, SideEffectOutcome
from summit_crm.queue.models import QueueItem, QueueSchema, StatusVocabulary
from summit_crm.roster import Roster

NAME = "review_requests"
NEEDS_REVIEW = "needs review"

# Supplemental essays: ApplicationTracker column AL from the school rows, one shared doc
SUPPLEMENTAL_START_ROW = 14
SUPPLEMENTAL_STATUS_COL = 38

VOCABULARY = StatusVocabulary(done="notified")

SCHEMA = QueueSchema(
    sheet_name="ReviewQueue",
    headers=("Timestamp", "Student Name", "Review Type", "Notes", "Status", "Notified At"),
    entity_column="Student Name",
    subject_column="Review Type",
    payload_column="Notes",
    status_column="Status",
    processed_at_column="Notified At",
    header_color=(0.259, 0.522, 0.957),
)


def needs_review(status: str) -> bool:
    return status.strip().lower() == NEEDS_REVIEW


class ReviewRequestCollector(CollectorStrategy):
    name = NAME
    match_rules = task_rules(needs_review) + (
        MatchRule(
            TRACKER_SHEET,
            SUPPLEMENTAL_START_ROW,
            title_column=TRACKER_TITLE_COL,
            status_column=SUPPLEMENTAL_STATUS_COL,
            status_predicate=needs_review,
            link_cell=(HOME_PAGE_SHEET, HOME_SUPPLEMENTAL_DOC_CELL),
        ),
    )

    def candidate_key(self, candidate: Candidate, context):
        title = candidate.title.strip()
        if not title:
            return None
        return (candidate.entity.id, title)

    def item_key(self, item: QueueItem):
        return (item.entity_id, item.subject)

    def build_item(self, candidate: Candidate, context) -> Optional[QueueItem]:
        return QueueItem.create(
            entity_id=candidate.entity.id,
            subject=candidate.title.strip(),
            payload=candidate.link.target,
        )


class AdvisorNotifier(ProcessorStrategy):
    """Sends each advisor one email listing their students' pending requests."""

    name = NAME
    grouped = True

    def __init__(self, roster: Roster, notifier, advisor_emails: Dict[str, str]):
        self.roster = roster
        self.notifier = notifier
        self.advisor_emails = dict(advisor_emails)
        self._advisors: Dict[str, str] = {}

    def start_run(self, items: Sequence[QueueItem]) -> None:
        self._advisors = {e.id: e.advisor for e in self.roster.list_entities() if e.advisor}

    def group_key(self, item: QueueItem) -> str:
        return self._advisors.get(item.entity_id, "")

    def resolve_target(self, items: Sequence[QueueItem]) -> Recipient:
        advisor = self.group_key(items[0])
        if not advisor:
            names = ", ".join(sorted({item.entity_id for item in items}))
            raise ResolutionError(f"No advisor found for {names}")
        email = self.advisor_emails.get(advisor)
        if not email:
            raise ResolutionError(f"No email found for advisor: {advisor}")
        return Recipient(advisor, email)

    def perform(self, target: Recipient, items: Sequence[QueueItem]) -> SideEffectOutcome:
        subject, body = build_advisor_email(target.name, items)
        self.notifier.send(target.email, subject, body)
        logger.info(f"Sent notification to {target.name} ({target.email}) for {len(items)} review requests")
        return SideEffectOutcome(success=True, outcome=f"Notified {target.name}")


def build_advisor_email(advisor: str, items: Sequence[QueueItem]):
    """Subject and plain-text body for one advisor's grouped notification."""
    count = len(items)
    entries: List[str] = []
    for item in items:
        entry = f"• {item.entity_id} - {item.subject or 'General'}\n  Submitted: {format_submitted(item.created_at)}"
        if item.payload.strip():
            entry += f"\n  Link: {item.payload.strip()}"
        entries.append(entry)

    subject = f"{count} Task{'s' if count > 1 else ''} Need{'s' if count == 1 else ''} Review - Summit CRM"
    body = (
        f"Hi {advisor},\n\n"
        f"The following task{'s need' if count > 1 else ' needs'} review:\n\n"
        + "\n\n".join(entries)
        + "\n\nYou can access each student's spreadsheet from the Student Data sheet.\n\n"
        + SIGNATURE
    )
    return subject, body
