import json

from summit_crm.checkpoint import CheckpointStore


def test_cursor_defaults_to_zero(checkpoint):
    assert checkpoint.get_cursor("worksheets") == 0


def test_cursor_survives_new_instance(tmp_path):
    CheckpointStore(tmp_path).save_cursor("worksheets", 12)
    assert CheckpointStore(tmp_path).get_cursor("worksheets") == 12


def test_cursors_are_per_pipeline(checkpoint):
    checkpoint.save_cursor("review_requests", 3)
    checkpoint.save_cursor("outbound_reviews", 7)
    checkpoint.reset_cursor("review_requests")

    assert checkpoint.get_cursor("review_requests") == 0
    assert checkpoint.get_cursor("outbound_reviews") == 7


def test_file_layout(tmp_path):
    store = CheckpointStore(tmp_path)
    store.save_cursor("review_requests", 4)

    data = json.loads((tmp_path / "cursors.json").read_text())
    assert data["values"] == {"last_processed_index.review_requests": "4"}
    assert "updated_at" in data


def test_malformed_cursor_is_ignored(checkpoint):
    checkpoint.set("last_processed_index.worksheets", "abc")
    assert checkpoint.get_cursor("worksheets") == 0


def test_corrupt_file_reads_as_empty(tmp_path):
    (tmp_path / "cursors.json").write_text("{not json")
    store = CheckpointStore(tmp_path)

    assert store.get_cursor("worksheets") == 0
    store.save_cursor("worksheets", 1)
    assert store.get_cursor("worksheets") == 1


def test_delete_missing_key_is_noop(checkpoint):
    checkpoint.delete("nothing")
    assert checkpoint.get("nothing") is None
