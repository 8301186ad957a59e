"""Meeting sync: copy each student's meetings from the Meeting Data sheet
into the Meetings tab of their own spreadsheet."""
import time
from dataclasses import dataclass, field
from typing import Dict, List

from summit_crm.logging_conf import logger
from summit_crm.roster import Roster

MEETINGS_SHEET = "Meetings"
MEETINGS_START_ROW = 3
MEETINGS_FIRST_COL = 2  # B:D
MEETINGS_WIDTH = 3

# Meeting Data columns: A name, B email, C advisor, D description, E date
MEETING_DATA_WIDTH = 5


class MeetingDataError(Exception):
    """The Meeting Data spreadsheet or tab cannot be read."""


@dataclass
class Meeting:
    student_name: str
    email: str = ""
    advisor: str = ""
    description: str = ""
    date: str = ""

    def to_row(self) -> List[str]:
        return [self.date, self.description, self.advisor]


@dataclass
class MeetingSyncResult:
    total_meetings: int = 0
    total_students: int = 0
    students_updated: int = 0
    students_skipped: int = 0
    meetings_written: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    execution_time_ms: int = 0


def load_meetings(document_store, spreadsheet_id: str, sheet_name: str = "") -> List[Meeting]:
    """Read Meeting Data rows up to the first fully empty row.

    With no ``sheet_name`` the first tab is used.
    """
    document = document_store.open_by_id(spreadsheet_id)
    if document is None:
        raise MeetingDataError(f"Meeting data spreadsheet {spreadsheet_id} is not accessible")
    if not sheet_name:
        names = document.sheet_names()
        if not names:
            return []
        sheet_name = names[0]
    sheet = document.get_sheet(sheet_name)
    if sheet is None:
        raise MeetingDataError(f'Meeting data sheet "{sheet_name}" not found')

    meetings = []
    for row in sheet.read_range(2, 1, None, MEETING_DATA_WIDTH):
        values = [str(v).strip() for v in row]
        if not any(values):
            break
        name, email, advisor, description, date = values
        meetings.append(Meeting(name, email, advisor, description, date))
    return meetings


def group_by_student(meetings: List[Meeting]) -> Dict[str, List[Meeting]]:
    grouped: Dict[str, List[Meeting]] = {}
    for meeting in meetings:
        grouped.setdefault(meeting.student_name, []).append(meeting)
    return grouped


class MeetingSync:
    """Rewrites every roster student's Meetings tab from the Meeting Data sheet."""

    def __init__(self, document_store, roster: Roster, spreadsheet_id: str, sheet_name: str = ""):
        self.document_store = document_store
        self.roster = roster
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name

    def sync(self) -> MeetingSyncResult:
        started = time.monotonic()
        results = MeetingSyncResult()

        try:
            if not self.spreadsheet_id:
                raise MeetingDataError("MEETING_DATA_SPREADSHEET_ID is not configured")
            meetings = load_meetings(self.document_store, self.spreadsheet_id, self.sheet_name)
            results.total_meetings = len(meetings)
            if not meetings:
                logger.warning("No meetings found in Meeting Data sheet")
                return results
            by_student = group_by_student(meetings)
            students = self.roster.list_entities()
        except Exception as e:
            logger.error(f"Fatal error in meeting sync: {e}", exc_info=True)
            results.errors.append({"error": f"Fatal error: {e}"})
            return results

        results.total_students = len(students)
        logger.info(f"Syncing {len(meetings)} meetings for {len(by_student)} students")

        for student in students:
            rows = [m.to_row() for m in by_student.get(student.id, [])]
            try:
                document = self.document_store.open_document(student.document_location)
                if document is None:
                    raise MeetingDataError("Failed to open spreadsheet")
                sheet = document.get_sheet(MEETINGS_SHEET)
                if sheet is None:
                    raise MeetingDataError(f"{MEETINGS_SHEET} sheet not found")
                sheet.clear_range(MEETINGS_START_ROW, MEETINGS_FIRST_COL, None, MEETINGS_WIDTH)
                if rows:
                    sheet.write_range(MEETINGS_START_ROW, MEETINGS_FIRST_COL, rows)
            except Exception as e:
                logger.warning(f"Meeting sync skipped {student.id}: {e}")
                results.errors.append({"student": student.id, "error": str(e)})
                results.students_skipped += 1
                continue
            results.students_updated += 1
            results.meetings_written += len(rows)
            logger.debug(f"{student.id}: wrote {len(rows)} meeting rows")

        results.execution_time_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Meeting sync complete: Updated {results.students_updated}, Skipped: {results.students_skipped}, "
            f"Rows: {results.meetings_written}, Time: {results.execution_time_ms}ms"
        )
        return results
