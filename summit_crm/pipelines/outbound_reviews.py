"""Outbound reviews: advisors mark a task "Reviewed: <feedback>", the student is emailed."""
from typing import Dict, Optional, Sequence

from summit_crm.collector import Candidate, CollectorStrategy
from summit_crm.logging_conf import logger
from summit_crm.pipelines.common import (
    HOME_PAGE_SHEET,
    HOME_STUDENT_EMAIL_CELL,
    SIGNATURE,
    Recipient,
    task_rules,
)
from summit_crm.processor import ProcessorStrategy, ResolutionError, SideEffectOutcome
from summit_crm.queue.models import QueueItem, QueueSchema, StatusVocabulary
from summit_crm.roster import Entity, Roster

NAME = "outbound_reviews"
REVIEWED_PREFIX = "reviewed:"
EMAIL_SUBJECT = "Your Submission Has Been Reviewed - Summit"

VOCABULARY = StatusVocabulary(done="notified")

SCHEMA = QueueSchema(
    sheet_name="OutboundQueue",
    headers=("Timestamp", "Student Name", "Task Title", "Feedback Text", "Document Link", "Status", "Notified At"),
    entity_column="Student Name",
    subject_column="Task Title",
    payload_column="Feedback Text",
    status_column="Status",
    processed_at_column="Notified At",
    aux_columns=(("document_link", "Document Link"),),
    header_color=(0.204, 0.659, 0.325),
)


def is_reviewed(status: str) -> bool:
    return status.strip().lower().startswith(REVIEWED_PREFIX)


def feedback_from_status(status: str) -> str:
    """Text after the "Reviewed:" prefix."""
    return status.strip()[len(REVIEWED_PREFIX):].strip()


class OutboundReviewCollector(CollectorStrategy):
    name = NAME
    match_rules = task_rules(is_reviewed)

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
            payload=feedback_from_status(candidate.status),
            aux={"document_link": candidate.link.target},
        )


class StudentNotifier(ProcessorStrategy):
    """Emails each student about one reviewed submission."""

    name = NAME

    def __init__(self, roster: Roster, document_store, notifier):
        self.roster = roster
        self.document_store = document_store
        self.notifier = notifier
        self._students: Dict[str, Entity] = {}
        self._emails: Dict[str, Optional[str]] = {}

    def start_run(self, items: Sequence[QueueItem]) -> None:
        self._students = {e.id: e for e in self.roster.list_entities()}
        self._emails = {}

    def resolve_target(self, items: Sequence[QueueItem]) -> Recipient:
        name = items[0].entity_id
        if name not in self._emails:
            self._emails[name] = self._student_email(name)
        email = self._emails[name]
        if not email:
            raise ResolutionError(f"No email found for student: {name}")
        return Recipient(name, email)

    def _student_email(self, name: str) -> Optional[str]:
        """Roster email, else the one on the student's Home Page."""
        student = self._students.get(name)
        if student is None:
            return None
        if student.email:
            return student.email

        try:
            document = self.document_store.open_document(student.document_location)
            home = document.get_sheet(HOME_PAGE_SHEET) if document else None
            if home is None:
                return None
            email = home.read_cell(HOME_STUDENT_EMAIL_CELL).strip()
        except Exception as e:
            logger.warning(f"Error fetching email from Home Page for {name}: {e}")
            return None
        if email:
            logger.debug(f"Retrieved email from Home Page {HOME_STUDENT_EMAIL_CELL} for {name}: {email}")
        return email or None

    def perform(self, target: Recipient, items: Sequence[QueueItem]) -> SideEffectOutcome:
        item = items[0]
        self.notifier.send(target.email, EMAIL_SUBJECT, build_student_email(target.name, item))
        logger.info(f'Sent review notification to {target.name} ({target.email}) for "{item.subject}"')
        return SideEffectOutcome(success=True, outcome=f"Notified {target.name}")


def build_student_email(student: str, item: QueueItem) -> str:
    lines = [f"Hi {student},", "", f'Your submission "{item.subject or "General"}" has been reviewed.']
    if item.payload:
        lines += ["", "Feedback:", item.payload]
    link = item.aux.get("document_link", "").strip()
    if link:
        lines += ["", f"Document: {link}"]
    lines += ["", SIGNATURE]
    return "\n".join(lines)
