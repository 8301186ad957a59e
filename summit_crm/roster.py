"""Student roster kept on the broadcast spreadsheet."""
from dataclasses import dataclass
from typing import Dict, List, Optional

from summit_crm.logging_conf import logger

# Student Data columns (1-based): A=name, B=spreadsheet URL, C=email, D=advisor
NAME_COL = 1
URL_COL = 2
EMAIL_COL = 3
ADVISOR_COL = 4
ROSTER_WIDTH = 4

# Advisor tabs: row 2 holds student spreadsheet URLs, row 3 their names, from column B
ADVISOR_URL_ROW = 2
ADVISOR_FIRST_COL = 2
ADVISOR_MAX_COLS = 200


class RosterError(Exception):
    """The roster could not be read."""


@dataclass(frozen=True)
class Entity:
    """A student: the unit every collector scans."""

    id: str
    document_location: str
    email: Optional[str] = None
    advisor: Optional[str] = None


class Roster:
    """Reads (and rebuilds) the Student Data tab."""

    def __init__(self, document_store, spreadsheet_id: str, sheet_name: str, advisor_sheets=()):
        self.document_store = document_store
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.advisor_sheets = tuple(advisor_sheets)

    def list_entities(self) -> List[Entity]:
        """All students with a name and spreadsheet URL, in sheet order."""
        rows = self._data_sheet().read_range(2, 1, None, ROSTER_WIDTH)
        entities = []
        seen = set()
        for row in rows:
            name = row[NAME_COL - 1].strip()
            url = row[URL_COL - 1].strip()
            if not name or not url:
                continue
            if name in seen:
                logger.warning(f"Duplicate student name in {self.sheet_name}: {name} (keeping first)")
                continue
            seen.add(name)
            entities.append(
                Entity(
                    id=name,
                    document_location=url,
                    email=row[EMAIL_COL - 1].strip() or None,
                    advisor=row[ADVISOR_COL - 1].strip() or None,
                )
            )
        return entities

    def find(self, name: str) -> Optional[Entity]:
        for entity in self.list_entities():
            if entity.id == name:
                return entity
        return None

    def sync_from_advisor_sheets(self) -> int:
        """Rebuild Student Data from the advisor tabs. Returns rows written.

        Emails are maintained by hand in column C, so they are carried over
        by student name.
        """
        document = self._open_document()
        data_sheet = document.get_sheet(self.sheet_name)
        if data_sheet is None:
            raise RosterError(f"Student Data sheet not found: {self.sheet_name}")

        existing = data_sheet.read_range(2, 1, None, ROSTER_WIDTH)
        emails: Dict[str, str] = {
            row[NAME_COL - 1].strip(): row[EMAIL_COL - 1].strip()
            for row in existing
            if row[NAME_COL - 1].strip()
        }

        rows_to_write = []
        for advisor in self.advisor_sheets:
            sheet = document.get_sheet(advisor)
            if sheet is None:
                logger.warning(f"Advisor sheet not found: {advisor}")
                continue
            urls_row, names_row = self._read_advisor_rows(sheet)
            for url, name in zip(urls_row, names_row):
                if not url.strip():
                    continue
                name = name.strip()
                rows_to_write.append([name, url.strip(), emails.get(name, ""), advisor])

        if existing:
            data_sheet.clear_range(2, 1, len(existing), ROSTER_WIDTH)
        if rows_to_write:
            data_sheet.write_range(2, 1, rows_to_write)
        logger.info(f"Wrote {len(rows_to_write)} students to {self.sheet_name}")
        return len(rows_to_write)

    def _read_advisor_rows(self, sheet):
        values = sheet.read_range(ADVISOR_URL_ROW, ADVISOR_FIRST_COL, 2, ADVISOR_MAX_COLS)
        return values[0], values[1]

    def _data_sheet(self):
        sheet = self._open_document().get_sheet(self.sheet_name)
        if sheet is None:
            raise RosterError(f"Student Data sheet not found: {self.sheet_name}")
        return sheet

    def _open_document(self):
        document = self.document_store.open_by_id(self.spreadsheet_id)
        if document is None:
            raise RosterError("Failed to open broadcast spreadsheet")
        return document
