"""Student spreadsheet layout and email helpers shared by the pipelines."""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from summit_crm.collector import MatchRule

TASKS_SHEET = "Tasks"
TRACKER_SHEET = "ApplicationTracker"
HOME_PAGE_SHEET = "Home Page"

# Tasks: C=status, D=title, H=document link, data from row 3
TASKS_START_ROW = 3
TASKS_STATUS_COL = 3
TASKS_TITLE_COL = 4
TASKS_LINK_COL = 8

# ApplicationTracker: D=school, E=status, data from row 4
TRACKER_START_ROW = 4
TRACKER_STATUS_COL = 5
TRACKER_TITLE_COL = 4

# Home Page cells
HOME_FOLDER_CELL = "C6"
HOME_SUPPLEMENTAL_DOC_CELL = "C8"
HOME_STUDENT_EMAIL_CELL = "F5"
HOME_PARENT_EMAIL_CELL = "F11"

SIGNATURE = "--\nSummit CRM Automated Notification"


@dataclass(frozen=True)
class Recipient:
    name: str
    email: str


def task_rules(predicate: Callable[[str], bool]) -> Tuple[MatchRule, MatchRule]:
    """Rules for the Tasks and ApplicationTracker status columns."""
    return (
        MatchRule(
            TASKS_SHEET,
            TASKS_START_ROW,
            title_column=TASKS_TITLE_COL,
            status_column=TASKS_STATUS_COL,
            status_predicate=predicate,
            link_column=TASKS_LINK_COL,
        ),
        MatchRule(
            TRACKER_SHEET,
            TRACKER_START_ROW,
            title_column=TRACKER_TITLE_COL,
            status_column=TRACKER_STATUS_COL,
            status_predicate=predicate,
        ),
    )


def format_submitted(timestamp: Optional[datetime]) -> str:
    """Format as "Jan 5, 3:07 PM"."""
    if not timestamp:
        return "Unknown time"
    hour = timestamp.hour % 12 or 12
    ampm = "PM" if timestamp.hour >= 12 else "AM"
    return f"{timestamp.strftime('%b')} {timestamp.day}, {hour}:{timestamp.minute:02d} {ampm}"


def looks_like_email(value: Optional[str]) -> bool:
    return bool(value) and "@" in value
