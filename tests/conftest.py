"""In-memory stand-ins for the Google document store, Drive and Gmail."""
from datetime import datetime
from itertools import count
from typing import Dict, List, Optional, Tuple

import pytest
from googleapiclient.errors import HttpError

from summit_crm.checkpoint import CheckpointStore
from summit_crm.drive import DriveFile
from summit_crm.google_client import GoogleAPIError
from summit_crm.roster import Roster
from summit_crm.settings import Settings
from summit_crm.sheets import LinkCell, parse_a1, spreadsheet_id_from_locator

BROADCAST_ID = "broadcast-spreadsheet-0001"


def student_url(spreadsheet_id: str) -> str:
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit"


class Resp(dict):
    """Header dict carrying status/reason, the way HttpError expects its response."""

    def __init__(self, status, reason="Reason", headers=None):
        super().__init__(headers or {})
        self.status = status
        self.reason = reason


def http_error(status, body=b"", headers=None) -> HttpError:
    return HttpError(Resp(status, headers=headers), body)


class FakeSheet:
    """A sparse grid of display values plus per-cell hyperlinks."""

    _ids = count(100)

    def __init__(self, name: str):
        self.name = name
        self.sheet_id = next(self._ids)
        self.cells: Dict[Tuple[int, int], str] = {}
        self.links: Dict[Tuple[int, int], str] = {}
        self.writes: List[Tuple[int, int, list]] = []
        self.fail_reads = False

    # test helpers

    def set(self, cell: str, value: str, url: Optional[str] = None) -> None:
        row, col = parse_a1(cell)
        self.cells[(row, col)] = value
        if url:
            self.links[(row, col)] = url

    def set_row(self, row: int, values, start_col: int = 1) -> None:
        for offset, value in enumerate(values):
            self.cells[(row, start_col + offset)] = "" if value is None else str(value)

    def get(self, row: int, col: int) -> str:
        return self.cells.get((row, col), "")

    def row_values(self, row: int, num_cols: int) -> List[str]:
        return [self.get(row, c) for c in range(1, num_cols + 1)]

    def last_row(self, cols=None) -> int:
        rows = [
            r for (r, c), v in self.cells.items()
            if str(v).strip() and (cols is None or c in cols)
        ]
        rows += [r for (r, c) in self.links if cols is None or c in cols]
        return max(rows, default=0)

    # document store interface

    def read_range(self, row: int, col: int, num_rows: Optional[int], num_cols: int) -> List[List[str]]:
        if self.fail_reads:
            raise GoogleAPIError(500, "backend error")
        if num_rows is None:
            last = self.last_row(range(col, col + num_cols))
            num_rows = max(last - row + 1, 0)
        return [[self.get(r, c) for c in range(col, col + num_cols)] for r in range(row, row + num_rows)]

    def read_cell(self, cell: str) -> str:
        row, col = parse_a1(cell)
        return self.get(row, col)

    def read_links(self, row: int, col: int, num_rows: Optional[int]) -> List[LinkCell]:
        if num_rows is None:
            num_rows = max(self.last_row({col}) - row + 1, 0)
        return [LinkCell(self.get(r, col), self.links.get((r, col))) for r in range(row, row + num_rows)]

    def read_link_cell(self, cell: str) -> LinkCell:
        row, col = parse_a1(cell)
        return self.read_links(row, col, 1)[0]

    def write_range(self, row: int, col: int, values) -> None:
        self.writes.append((row, col, [list(v) for v in values]))
        for r_off, values_row in enumerate(values):
            for c_off, value in enumerate(values_row):
                self.cells[(row + r_off, col + c_off)] = "" if value is None else str(value)

    def clear_range(self, row: int, col: int, num_rows: Optional[int], num_cols: int) -> None:
        last = row + num_rows - 1 if num_rows else self.last_row()
        for r in range(row, last + 1):
            for c in range(col, col + num_cols):
                self.cells.pop((r, c), None)
                self.links.pop((r, c), None)

    def append_row(self, values) -> None:
        self.write_range(self.last_row() + 1, 1, [values])

    def write_link(self, row: int, col: int, text: str, url: str) -> None:
        self.cells[(row, col)] = text
        self.links[(row, col)] = url


class FakeDocument:
    def __init__(self, spreadsheet_id: str, title: str = ""):
        self.id = spreadsheet_id
        self.title = title or spreadsheet_id
        self.sheets: Dict[str, FakeSheet] = {}

    def sheet(self, name: str) -> FakeSheet:
        """Get or create a tab (test helper)."""
        if name not in self.sheets:
            self.sheets[name] = FakeSheet(name)
        return self.sheets[name]

    def sheet_names(self) -> List[str]:
        return list(self.sheets)

    def get_sheet(self, name: str) -> Optional[FakeSheet]:
        return self.sheets.get(name)

    def add_sheet(self, name, headers, header_color) -> FakeSheet:
        sheet = self.sheet(name)
        sheet.write_range(1, 1, [list(headers)])
        return sheet


class FakeDocumentStore:
    def __init__(self):
        self.documents: Dict[str, FakeDocument] = {}
        self.failing: Dict[str, Exception] = {}
        self.opened: List[str] = []

    def add(self, spreadsheet_id: str, title: str = "") -> FakeDocument:
        document = FakeDocument(spreadsheet_id, title)
        self.documents[spreadsheet_id] = document
        return document

    def open_document(self, locator: str) -> Optional[FakeDocument]:
        spreadsheet_id = spreadsheet_id_from_locator(locator)
        if not spreadsheet_id:
            return None
        return self.open_by_id(spreadsheet_id)

    def open_by_id(self, spreadsheet_id: str) -> Optional[FakeDocument]:
        self.opened.append(spreadsheet_id)
        if spreadsheet_id in self.failing:
            raise self.failing[spreadsheet_id]
        return self.documents.get(spreadsheet_id)


class FakeFileStore:
    def __init__(self):
        self.files: Dict[str, DriveFile] = {}
        self.copies: List[Tuple[str, str, str]] = []
        self.shares: List[Tuple[str, str]] = []
        self.share_error: Optional[Exception] = None
        self.copy_error: Optional[Exception] = None

    def add_file(self, file_id: str, name: str) -> DriveFile:
        drive_file = DriveFile(file_id, name, f"https://docs.google.com/document/d/{file_id}/edit")
        self.files[file_id] = drive_file
        return drive_file

    def add_folder(self, folder_id: str, name: str = "Student folder") -> DriveFile:
        folder = DriveFile(
            folder_id,
            name,
            f"https://drive.google.com/drive/folders/{folder_id}",
            "application/vnd.google-apps.folder",
        )
        self.files[folder_id] = folder
        return folder

    def get_file(self, file_id: str) -> DriveFile:
        if file_id not in self.files:
            raise GoogleAPIError(404, f"HTTP 404: File not found: {file_id}")
        return self.files[file_id]

    def get_folder(self, folder_id: str) -> DriveFile:
        folder = self.get_file(folder_id)
        if not folder.is_folder:
            raise ValueError(f"{folder_id} is not a folder")
        return folder

    def copy(self, file_id: str, new_name: str, folder_id: str) -> DriveFile:
        if self.copy_error:
            raise self.copy_error
        self.get_file(file_id)
        self.copies.append((file_id, new_name, folder_id))
        return self.add_file(f"copy-{len(self.copies)}-{file_id}", new_name)

    def share_with(self, file_id: str, email: str, role: str = "writer") -> None:
        if self.share_error:
            raise self.share_error
        self.shares.append((file_id, email))


class FakeNotifier:
    def __init__(self):
        self.sent: List[dict] = []
        self.error: Optional[Exception] = None

    def send(self, to, subject, body, html_body=None, cc=None) -> str:
        if self.error:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "body": body, "html_body": html_body, "cc": cc})
        return f"msg-{len(self.sent)}"


class FakeClock:
    """Monotonic clock that advances only when told to (or on every read)."""

    def __init__(self, start: float = 0.0, step: float = 0.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path):
    return Settings(
        broadcast_spreadsheet_id=BROADCAST_ID,
        service_account_file=str(tmp_path / "sa.json"),
        advisor_emails={"Maggie": "maggie@example.com", "Jackie": "jackie@example.com"},
        checkpoint_dir=tmp_path / "checkpoints",
        logs_dir=tmp_path / "logs",
    )


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def broadcast(store):
    document = store.add(BROADCAST_ID, "Broadcast")
    document.sheet("Student Data").set_row(1, ["Name", "URL", "Email", "Advisor"])
    return document


@pytest.fixture
def roster(store, broadcast):
    return Roster(store, BROADCAST_ID, "Student Data", ("Maggie", "Jackie"))


@pytest.fixture
def checkpoint(tmp_path):
    return CheckpointStore(tmp_path / "checkpoints")


@pytest.fixture
def files():
    return FakeFileStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


def add_student(store, broadcast, name, email="", advisor="Maggie", spreadsheet_id=None) -> FakeDocument:
    """Register a student on the roster and return their (empty) spreadsheet."""
    spreadsheet_id = spreadsheet_id or "student-" + name.lower().replace(" ", "-")
    data = broadcast.sheet("Student Data")
    row = data.last_row() + 1
    data.set_row(row, [name, student_url(spreadsheet_id), email, advisor])
    return store.add(spreadsheet_id, name)


def queue_rows(broadcast, sheet_name: str, num_cols: int) -> List[List[str]]:
    sheet = broadcast.get_sheet(sheet_name)
    return [sheet.row_values(r, num_cols) for r in range(2, sheet.last_row() + 1)]


def at(*args) -> datetime:
    return datetime(*args)
