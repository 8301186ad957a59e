import pytest

from summit_crm.settings import Settings, _parse_mapping


def test_parse_mapping():
    assert _parse_mapping("Maggie=maggie@x.com, Jackie = jackie@x.com,broken,Empty=") == {
        "Maggie": "maggie@x.com",
        "Jackie": "jackie@x.com",
    }
    assert _parse_mapping("") == {}


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BROADCAST_SPREADSHEET_ID", "sheet1")
    monkeypatch.setenv("ADVISOR_SHEETS", "Maggie, Jackie ,")
    monkeypatch.setenv("ADVISOR_EMAILS", "Maggie=m@x.com")
    monkeypatch.setenv("DRY_RUN", "yes")
    monkeypatch.setenv("NOTIFY_REDIRECT_TO", "")
    monkeypatch.setenv("CHECKPOINT_DIR", str(tmp_path))

    settings = Settings.from_env()

    assert settings.broadcast_spreadsheet_id == "sheet1"
    assert settings.advisor_sheets == ("Maggie", "Jackie")
    assert settings.advisor_emails == {"Maggie": "m@x.com"}
    assert settings.dry_run is True
    assert settings.notify_redirect_to is None
    assert settings.checkpoint_dir == tmp_path


def test_validate_collects_all_errors(tmp_path):
    settings = Settings(
        service_account_file=str(tmp_path / "missing.json"),
        collect_batch_size=0,
        checkpoint_dir=tmp_path / "cp",
    )

    with pytest.raises(ValueError) as exc:
        settings.validate()

    message = str(exc.value)
    assert "BROADCAST_SPREADSHEET_ID is required" in message
    assert "GOOGLE_SERVICE_ACCOUNT_FILE not found" in message
    assert "Batch sizes must be at least 1" in message


def test_validate_accepts_complete_config(tmp_path):
    key_file = tmp_path / "sa.json"
    key_file.write_text("{}")
    settings = Settings(
        broadcast_spreadsheet_id="sheet1",
        service_account_file=str(key_file),
        checkpoint_dir=tmp_path / "cp",
    )

    settings.validate()

    assert (tmp_path / "cp").is_dir()
