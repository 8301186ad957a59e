import pytest

from summit_crm.google_client import GoogleAPIError
from summit_crm.pipelines import worksheets
from summit_crm.pipelines.worksheets import extract_last_name, new_file_name
from summit_crm.processor import Processor
from summit_crm.queue.models import QueueItem
from summit_crm.queue.sheet_queue import SheetQueue

from conftest import BROADCAST_ID, queue_rows


@pytest.mark.parametrize(
    "full_name, last_name",
    [
        ("John Smith", "Smith"),
        ("Mary Jane Watson", "Jane Watson"),
        ("  Cher  ", "Cher"),
        ("", ""),
    ],
)
def test_extract_last_name(full_name, last_name):
    assert extract_last_name(full_name) == last_name


def test_new_file_name():
    assert new_file_name("Doe", "Essay Draft") == "Doe - Essay Draft"


@pytest.fixture
def worksheet_queue(store, broadcast):
    queue = SheetQueue(store, BROADCAST_ID, worksheets.SCHEMA, worksheets.VOCABULARY)
    queue.ensure_sheet()
    return queue


@pytest.fixture
def student_doc(store):
    doc = store.add("student-jane-doe", "Jane Doe")
    doc.sheet("Tasks").set("H4", "Essay Draft", url="https://docs.google.com/document/d/orig1/edit")
    return doc


def enqueue_worksheet(queue, **overrides):
    aux = {
        "student_email": "jane@example.com",
        "last_name": "Doe",
        "target_folder_id": "folder9",
        "cell_row": "4",
        "student_spreadsheet_id": "student-jane-doe",
    }
    aux.update(overrides)
    queue.append(QueueItem.create("Jane Doe", "Essay Draft", "orig1", aux=aux))


def run(store, files, queue):
    return Processor(worksheets.WorksheetRenamer(files, store), queue, 280).process()


def test_copy_share_and_relink(store, broadcast, files, worksheet_queue, student_doc):
    files.add_file("orig1", "Essay Draft")
    files.add_folder("folder9")
    enqueue_worksheet(worksheet_queue)

    result = run(store, files, worksheet_queue)

    assert result.succeeded == 1
    assert files.copies == [("orig1", "Doe - Essay Draft", "folder9")]
    new_id = "copy-1-orig1"
    assert files.shares == [(new_id, "jane@example.com")]

    tasks = student_doc.get_sheet("Tasks")
    assert tasks.get(4, 8) == "Doe - Essay Draft"
    assert tasks.links[(4, 8)] == f"https://docs.google.com/document/d/{new_id}/edit"

    row = queue_rows(broadcast, "WorksheetQueue", 13)[0]
    assert row[9] == "processed"
    assert row[11] == f"https://docs.google.com/document/d/{new_id}/edit"
    assert row[12] == ""


def test_share_failure_is_partial_success(store, broadcast, files, worksheet_queue, student_doc):
    files.add_file("orig1", "Essay Draft")
    files.add_folder("folder9")
    files.share_error = GoogleAPIError(400, "HTTP 400: invalid sharing request")
    enqueue_worksheet(worksheet_queue)

    result = run(store, files, worksheet_queue)

    assert result.succeeded == 1
    row = queue_rows(broadcast, "WorksheetQueue", 13)[0]
    assert row[9] == "processed"
    assert "share failed: HTTP 400: invalid sharing request" in row[11]
    # the cell update still ran
    assert student_doc.get_sheet("Tasks").get(4, 8) == "Doe - Essay Draft"


def test_cell_update_failure_is_partial_success(store, broadcast, files, worksheet_queue):
    files.add_file("orig1", "Essay Draft")
    files.add_folder("folder9")
    enqueue_worksheet(worksheet_queue, student_spreadsheet_id="gone-spreadsheet")

    result = run(store, files, worksheet_queue)

    assert result.succeeded == 1
    row = queue_rows(broadcast, "WorksheetQueue", 13)[0]
    assert row[9] == "processed"
    assert "update cell failed: student spreadsheet not accessible" in row[11]


def test_no_student_email_skips_sharing(store, broadcast, files, worksheet_queue, student_doc):
    files.add_file("orig1", "Essay Draft")
    files.add_folder("folder9")
    enqueue_worksheet(worksheet_queue, student_email="")

    run(store, files, worksheet_queue)

    assert files.shares == []
    assert queue_rows(broadcast, "WorksheetQueue", 13)[0][9] == "processed"


def test_copy_failure_is_item_error(store, broadcast, files, worksheet_queue, student_doc):
    files.add_file("orig1", "Essay Draft")
    files.add_folder("folder9")
    files.copy_error = GoogleAPIError(403, "HTTP 403: storage quota exceeded")
    enqueue_worksheet(worksheet_queue)

    result = run(store, files, worksheet_queue)

    assert result.succeeded == 0
    row = queue_rows(broadcast, "WorksheetQueue", 13)[0]
    assert row[9] == "error"
    assert row[11] == ""
    assert row[12] == "HTTP 403: storage quota exceeded"


def test_target_folder_must_be_a_folder(store, broadcast, files, worksheet_queue, student_doc):
    files.add_file("orig1", "Essay Draft")
    files.add_file("folder9", "Not a folder")
    enqueue_worksheet(worksheet_queue)

    run(store, files, worksheet_queue)

    row = queue_rows(broadcast, "WorksheetQueue", 13)[0]
    assert row[9] == "error"
    assert row[12] == "folder9 is not a folder"


def test_missing_folder_id_leaves_item_pending(store, broadcast, files, worksheet_queue):
    enqueue_worksheet(worksheet_queue, target_folder_id="")

    result = run(store, files, worksheet_queue)

    assert result.errors == [{"key": "Jane Doe (row 2)", "error": "Missing target folder ID"}]
    assert queue_rows(broadcast, "WorksheetQueue", 13)[0][9] == "pending"
    assert files.copies == []
