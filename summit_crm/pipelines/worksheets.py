"""Worksheet validation.

Worksheet files linked from a student's Tasks tab must start with the
student's last name. Files that don't are copied into the student's folder
as "{LastName} - {OriginalName}", shared with the student, and the task cell
is re-pointed at the copy.
"""
from typing import List, Optional, Sequence

from summit_crm.collector import Candidate, CollectorStrategy, MatchRule
from summit_crm.drive import DriveFileStore, extract_file_id
from summit_crm.google_client import GoogleAPIError
from summit_crm.logging_conf import logger
from summit_crm.pipelines.common import (
    HOME_FOLDER_CELL,
    HOME_PAGE_SHEET,
    TASKS_LINK_COL,
    TASKS_SHEET,
    TASKS_START_ROW,
    TASKS_TITLE_COL,
)
from summit_crm.processor import ProcessorStrategy, ResolutionError, SideEffectOutcome, StepResult
from summit_crm.queue.models import QueueItem, QueueSchema, StatusVocabulary
from summit_crm.roster import Entity

NAME = "worksheets"

VOCABULARY = StatusVocabulary(done="processed")

SCHEMA = QueueSchema(
    sheet_name="WorksheetQueue",
    headers=(
        "Timestamp",
        "Student Name",
        "Student Email",
        "Last Name",
        "Original File ID",
        "Original File Name",
        "Target Folder ID",
        "Cell Row",
        "Student Spreadsheet ID",
        "Status",
        "Processed At",
        "New File URL",
        "Error Message",
    ),
    entity_column="Student Name",
    subject_column="Original File Name",
    payload_column="Original File ID",
    status_column="Status",
    processed_at_column="Processed At",
    outcome_column="New File URL",
    error_column="Error Message",
    aux_columns=(
        ("student_email", "Student Email"),
        ("last_name", "Last Name"),
        ("target_folder_id", "Target Folder ID"),
        ("cell_row", "Cell Row"),
        ("student_spreadsheet_id", "Student Spreadsheet ID"),
    ),
    header_color=(0.204, 0.659, 0.325),
)


def extract_last_name(full_name: str) -> str:
    """Everything after the first space: "Mary Jane Watson" -> "Jane Watson"."""
    trimmed = (full_name or "").strip()
    if " " not in trimmed:
        return trimmed
    return trimmed.split(" ", 1)[1].strip()


def worksheet_url(candidate: Candidate) -> str:
    """Hyperlink of the cell, or its text when that is a bare Google URL."""
    if candidate.link.url:
        return candidate.link.url
    text = candidate.link.text.strip()
    return text if "google.com" in text else ""


def new_file_name(last_name: str, original_name: str) -> str:
    return f"{last_name} - {original_name}"


class WorksheetCollector(CollectorStrategy):
    name = NAME
    match_rules = (
        MatchRule(TASKS_SHEET, TASKS_START_ROW, title_column=TASKS_TITLE_COL, link_column=TASKS_LINK_COL),
    )

    def __init__(self, file_store: DriveFileStore):
        self.file_store = file_store

    def prepare(self, entity: Entity, document):
        target_folder_id = ""
        home = document.get_sheet(HOME_PAGE_SHEET)
        if home is not None:
            target_folder_id = extract_file_id(home.read_link_cell(HOME_FOLDER_CELL).target) or ""
        if not target_folder_id:
            logger.warning(f"No target folder on {HOME_PAGE_SHEET} {HOME_FOLDER_CELL} for {entity.id}")
        return {
            "spreadsheet_id": document.id,
            "target_folder_id": target_folder_id,
            "last_name": extract_last_name(entity.id),
        }

    def candidate_key(self, candidate: Candidate, context):
        file_id = extract_file_id(worksheet_url(candidate))
        if not file_id:
            return None
        return (candidate.entity.id, file_id, str(candidate.row))

    def item_key(self, item: QueueItem):
        return (item.entity_id, item.payload, item.aux.get("cell_row", ""))

    def build_item(self, candidate: Candidate, context) -> Optional[QueueItem]:
        file_id = extract_file_id(worksheet_url(candidate))
        try:
            drive_file = self.file_store.get_file(file_id)
        except GoogleAPIError as e:
            logger.warning(f"{candidate.entity.id} row {candidate.row}: could not access file {file_id} ({e})")
            return None

        last_name = context["last_name"]
        if drive_file.name.lower().startswith(last_name.lower()):
            return None

        logger.info(
            f'{candidate.entity.id} row {candidate.row}: "{drive_file.name}" '
            f'needs "{new_file_name(last_name, drive_file.name)}"'
        )
        return QueueItem.create(
            entity_id=candidate.entity.id,
            subject=drive_file.name,
            payload=file_id,
            aux={
                "student_email": candidate.entity.email or "",
                "last_name": last_name,
                "target_folder_id": context["target_folder_id"],
                "cell_row": str(candidate.row),
                "student_spreadsheet_id": context["spreadsheet_id"],
            },
        )


class WorksheetRenamer(ProcessorStrategy):
    """Copy-rename-share one worksheet and re-point its task cell."""

    name = NAME

    def __init__(self, file_store: DriveFileStore, document_store):
        self.file_store = file_store
        self.document_store = document_store

    def resolve_target(self, items: Sequence[QueueItem]) -> QueueItem:
        item = items[0]
        if not item.payload:
            raise ResolutionError("Missing original file ID")
        if not item.aux.get("target_folder_id"):
            raise ResolutionError("Missing target folder ID")
        return item

    def perform(self, target: QueueItem, items: Sequence[QueueItem]) -> SideEffectOutcome:
        item = target
        name = new_file_name(item.aux.get("last_name", ""), item.subject)
        folder = self.file_store.get_folder(item.aux["target_folder_id"])
        copied = self.file_store.copy(item.payload, name, folder.id)

        steps: List[StepResult] = [
            self._share(copied.id, item.aux.get("student_email", "")),
            self._update_cell(item, name, copied.url),
        ]
        return SideEffectOutcome(success=True, outcome=copied.url, steps=steps)

    def _share(self, file_id: str, email: str) -> StepResult:
        if not email:
            return StepResult("share", True, "no student email")
        try:
            self.file_store.share_with(file_id, email)
        except Exception as e:
            return StepResult("share", False, str(e))
        return StepResult("share", True, email)

    def _update_cell(self, item: QueueItem, text: str, url: str) -> StepResult:
        try:
            row = int(item.aux.get("cell_row", ""))
            document = self.document_store.open_by_id(item.aux.get("student_spreadsheet_id", ""))
            if document is None:
                return StepResult("update cell", False, "student spreadsheet not accessible")
            sheet = document.get_sheet(TASKS_SHEET)
            if sheet is None:
                return StepResult("update cell", False, f"{TASKS_SHEET} sheet not found")
            sheet.write_link(row, TASKS_LINK_COL, text, url)
        except Exception as e:
            return StepResult("update cell", False, str(e))
        return StepResult("update cell", True, f"row {row}")
