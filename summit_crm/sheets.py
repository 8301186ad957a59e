"""Google Sheets document store.

Wraps the Sheets v4 service behind three small types so the pipelines never
deal with A1 strings or API payloads:

* ``SheetsDocumentStore`` opens spreadsheets by URL or ID.
* ``SheetsDocument`` resolves tabs by name and can add new ones.
* ``SheetsSheet`` reads and writes 1-based row/column ranges, including
  hyperlinks embedded in rich-text cells.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from summit_crm.google_client import GoogleAPIError, GoogleClient
from summit_crm.logging_conf import logger

SPREADSHEET_URL_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")
SPREADSHEET_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{20,}$")
A1_CELL_RE = re.compile(r"^([A-Za-z]+)(\d+)$")

LINK_FIELDS = "sheets(data(rowData(values(formattedValue,hyperlink,textFormatRuns(format(link(uri)))))))"


@dataclass(frozen=True)
class LinkCell:
    """A cell's display text and the hyperlink behind it, if any."""

    text: str = ""
    url: Optional[str] = None

    @property
    def target(self) -> str:
        """Hyperlink if present, else the trimmed display text."""
        if self.url:
            return self.url
        return self.text.strip()


def column_letter(col: int) -> str:
    letters = ""
    while col > 0:
        col, rem = divmod(col - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def parse_a1(cell: str) -> Tuple[int, int]:
    """'C8' -> (8, 3)."""
    match = A1_CELL_RE.match(cell.strip())
    if not match:
        raise ValueError(f"Invalid A1 cell reference: {cell}")
    letters, row = match.groups()
    col = 0
    for ch in letters.upper():
        col = col * 26 + (ord(ch) - 64)
    return int(row), col


def quote_sheet(name: str) -> str:
    return "'" + name.replace("'", "''") + "'"


def a1_range(sheet: str, row: int, col: int, num_rows: Optional[int], num_cols: int) -> str:
    """Build an A1 range; ``num_rows=None`` leaves the range open to the last row."""
    start = f"{column_letter(col)}{row}"
    end_col = column_letter(col + num_cols - 1)
    end = f"{end_col}{row + num_rows - 1}" if num_rows else end_col
    return f"{quote_sheet(sheet)}!{start}:{end}"


def spreadsheet_id_from_locator(locator: str) -> Optional[str]:
    """Extract a spreadsheet ID from a URL, or accept a bare ID."""
    locator = (locator or "").strip()
    match = SPREADSHEET_URL_RE.search(locator)
    if match:
        return match.group(1)
    if SPREADSHEET_ID_RE.match(locator):
        return locator
    return None


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class SheetsSheet:
    """One tab of a spreadsheet."""

    def __init__(self, client: GoogleClient, spreadsheet_id: str, sheet_id: int, name: str):
        self.client = client
        self.spreadsheet_id = spreadsheet_id
        self.sheet_id = sheet_id
        self.name = name

    @property
    def _spreadsheets(self):
        return self.client.sheets.spreadsheets()

    def read_range(self, row: int, col: int, num_rows: Optional[int], num_cols: int) -> List[List[str]]:
        """Read display values, padded to ``num_cols`` (and ``num_rows`` when given)."""
        rng = a1_range(self.name, row, col, num_rows, num_cols)
        response = self.client.execute(
            self._spreadsheets.values().get(
                spreadsheetId=self.spreadsheet_id,
                range=rng,
                valueRenderOption="FORMATTED_VALUE",
                majorDimension="ROWS",
            )
        )
        rows = [
            [_cell_text(v) for v in r] + [""] * (num_cols - len(r))
            for r in response.get("values", [])
        ]
        if num_rows:
            rows.extend([[""] * num_cols for _ in range(num_rows - len(rows))])
        return rows

    def read_cell(self, cell: str) -> str:
        row, col = parse_a1(cell)
        return self.read_range(row, col, 1, 1)[0][0]

    def read_links(self, row: int, col: int, num_rows: Optional[int]) -> List[LinkCell]:
        """Read one column as LinkCells (rich-text link, formula link or plain text)."""
        rng = a1_range(self.name, row, col, num_rows, 1)
        response = self.client.execute(
            self._spreadsheets.get(
                spreadsheetId=self.spreadsheet_id,
                ranges=[rng],
                includeGridData=True,
                fields=LINK_FIELDS,
            )
        )
        sheets = response.get("sheets") or [{}]
        data = (sheets[0].get("data") or [{}])[0]
        cells = []
        for row_data in data.get("rowData", []):
            values = row_data.get("values") or [{}]
            cells.append(self._to_link_cell(values[0]))
        if num_rows:
            cells.extend([LinkCell() for _ in range(num_rows - len(cells))])
        return cells

    def read_link_cell(self, cell: str) -> LinkCell:
        row, col = parse_a1(cell)
        return self.read_links(row, col, 1)[0]

    def write_range(self, row: int, col: int, values: Sequence[Sequence[Any]]) -> None:
        if not values:
            return
        num_cols = max(len(r) for r in values)
        rng = a1_range(self.name, row, col, len(values), num_cols)
        self.client.execute(
            self._spreadsheets.values().update(
                spreadsheetId=self.spreadsheet_id,
                range=rng,
                valueInputOption="USER_ENTERED",
                body={"range": rng, "majorDimension": "ROWS", "values": [list(r) for r in values]},
            )
        )

    def clear_range(self, row: int, col: int, num_rows: Optional[int], num_cols: int) -> None:
        rng = a1_range(self.name, row, col, num_rows, num_cols)
        self.client.execute(
            self._spreadsheets.values().clear(spreadsheetId=self.spreadsheet_id, range=rng, body={})
        )

    def append_row(self, values: Sequence[Any]) -> None:
        self.client.execute(
            self._spreadsheets.values().append(
                spreadsheetId=self.spreadsheet_id,
                range=f"{quote_sheet(self.name)}!A1",
                valueInputOption="USER_ENTERED",
                insertDataOption="INSERT_ROWS",
                body={"majorDimension": "ROWS", "values": [list(values)]},
            )
        )

    def write_link(self, row: int, col: int, text: str, url: str) -> None:
        """Replace a cell with display text hyperlinked to ``url``."""
        cell = {
            "userEnteredValue": {"stringValue": text},
            "textFormatRuns": [{"startIndex": 0, "format": {"link": {"uri": url}}}],
        }
        request = {
            "updateCells": {
                "rows": [{"values": [cell]}],
                "fields": "userEnteredValue,textFormatRuns",
                "start": {"sheetId": self.sheet_id, "rowIndex": row - 1, "columnIndex": col - 1},
            }
        }
        self.client.execute(
            self._spreadsheets.batchUpdate(spreadsheetId=self.spreadsheet_id, body={"requests": [request]})
        )

    @staticmethod
    def _to_link_cell(value: Dict[str, Any]) -> LinkCell:
        text = value.get("formattedValue") or ""
        url = value.get("hyperlink")
        if not url:
            for run in value.get("textFormatRuns") or []:
                uri = ((run.get("format") or {}).get("link") or {}).get("uri")
                if uri:
                    url = uri
                    break
        return LinkCell(text=text, url=url or None)


class SheetsDocument:
    """An opened spreadsheet with its tab index."""

    def __init__(self, client: GoogleClient, spreadsheet_id: str, title: str, sheet_ids: Dict[str, int]):
        self.client = client
        self.id = spreadsheet_id
        self.title = title
        self._sheet_ids = dict(sheet_ids)

    def sheet_names(self) -> List[str]:
        return list(self._sheet_ids)

    def get_sheet(self, name: str) -> Optional[SheetsSheet]:
        sheet_id = self._sheet_ids.get(name)
        if sheet_id is None:
            return None
        return SheetsSheet(self.client, self.id, sheet_id, name)

    def add_sheet(self, name: str, headers: Sequence[str], header_color: Tuple[float, float, float]) -> SheetsSheet:
        """Insert a tab with a bold, colored, frozen header row."""
        spreadsheets = self.client.sheets.spreadsheets()
        add_request = {"addSheet": {"properties": {"title": name, "gridProperties": {"frozenRowCount": 1}}}}
        response = self.client.execute(
            spreadsheets.batchUpdate(spreadsheetId=self.id, body={"requests": [add_request]})
        )
        sheet_id = response["replies"][0]["addSheet"]["properties"]["sheetId"]
        self._sheet_ids[name] = sheet_id
        sheet = SheetsSheet(self.client, self.id, sheet_id, name)
        sheet.write_range(1, 1, [list(headers)])

        red, green, blue = header_color
        format_request = {
            "repeatCell": {
                "range": {
                    "sheetId": sheet_id,
                    "startRowIndex": 0,
                    "endRowIndex": 1,
                    "startColumnIndex": 0,
                    "endColumnIndex": len(headers),
                },
                "cell": {
                    "userEnteredFormat": {
                        "backgroundColor": {"red": red, "green": green, "blue": blue},
                        "textFormat": {"bold": True, "foregroundColor": {"red": 1, "green": 1, "blue": 1}},
                    }
                },
                "fields": "userEnteredFormat(backgroundColor,textFormat)",
            }
        }
        self.client.execute(spreadsheets.batchUpdate(spreadsheetId=self.id, body={"requests": [format_request]}))
        return sheet


class SheetsDocumentStore:
    """Opens spreadsheets; inaccessible documents come back as None."""

    def __init__(self, client: GoogleClient):
        self.client = client

    def open_document(self, locator: str) -> Optional[SheetsDocument]:
        spreadsheet_id = spreadsheet_id_from_locator(locator)
        if not spreadsheet_id:
            logger.warning(f"Not a spreadsheet URL: {locator}")
            return None
        return self.open_by_id(spreadsheet_id)

    def open_by_id(self, spreadsheet_id: str) -> Optional[SheetsDocument]:
        try:
            response = self.client.execute(
                self.client.sheets.spreadsheets().get(
                    spreadsheetId=spreadsheet_id,
                    fields="spreadsheetId,properties.title,sheets.properties(sheetId,title)",
                )
            )
        except GoogleAPIError as e:
            if e.is_not_found:
                logger.warning(f"Spreadsheet {spreadsheet_id} is not accessible: {e}")
                return None
            raise

        sheet_ids = {
            s["properties"]["title"]: s["properties"]["sheetId"]
            for s in response.get("sheets", [])
        }
        title = response.get("properties", {}).get("title", "")
        return SheetsDocument(self.client, response.get("spreadsheetId", spreadsheet_id), title, sheet_ids)
