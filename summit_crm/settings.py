"""Configuration for Summit CRM."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _parse_list(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _parse_mapping(value: str) -> Dict[str, str]:
    """Parse "Maggie=maggie@x.com,Jackie=jackie@x.com" into a dict."""
    mapping = {}
    for part in value.split(","):
        if "=" not in part:
            continue
        key, val = part.split("=", 1)
        if key.strip() and val.strip():
            mapping[key.strip()] = val.strip()
    return mapping


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at entry and passed down."""

    # Google
    broadcast_spreadsheet_id: str = ""
    service_account_file: str = ""
    delegated_user: str = ""

    # Broadcast spreadsheet layout
    student_data_sheet: str = "Student Data"
    advisor_sheets: Tuple[str, ...] = ("Maggie", "Jackie")
    advisor_emails: Dict[str, str] = field(default_factory=dict)

    # Meeting Data (first tab when no sheet name is set)
    meeting_data_spreadsheet_id: str = ""
    meeting_data_sheet: str = ""

    # Batching
    max_execution_seconds: float = 280.0  # 4m40s, below the 5-6 minute platform ceiling
    collect_batch_size: int = 50
    worksheet_batch_size: int = 30
    max_consecutive_empty_rows: int = 20
    stale_claim_minutes: int = 30

    # Scheduler loop
    collect_interval: int = 3600
    process_interval: int = 600

    # State
    checkpoint_dir: Path = BASE_DIR / "checkpoints"
    logs_dir: Path = BASE_DIR / "logs"

    # Email
    notify_redirect_to: Optional[str] = None
    notify_sender_name: str = "Summit CRM"
    dry_run: bool = False

    # Logging
    log_level: str = "INFO"
    betterstack_source_token: Optional[str] = None
    betterstack_ingest_host: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            broadcast_spreadsheet_id=os.getenv("BROADCAST_SPREADSHEET_ID", ""),
            service_account_file=os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE", ""),
            delegated_user=os.getenv("GOOGLE_DELEGATED_USER", ""),
            student_data_sheet=os.getenv("STUDENT_DATA_SHEET", "Student Data"),
            advisor_sheets=_parse_list(os.getenv("ADVISOR_SHEETS", "Maggie,Jackie")),
            advisor_emails=_parse_mapping(os.getenv("ADVISOR_EMAILS", "")),
            meeting_data_spreadsheet_id=os.getenv("MEETING_DATA_SPREADSHEET_ID", ""),
            meeting_data_sheet=os.getenv("MEETING_DATA_SHEET", ""),
            max_execution_seconds=float(os.getenv("MAX_EXECUTION_SECONDS", "280")),
            collect_batch_size=int(os.getenv("COLLECT_BATCH_SIZE", "50")),
            worksheet_batch_size=int(os.getenv("WORKSHEET_BATCH_SIZE", "30")),
            max_consecutive_empty_rows=int(os.getenv("MAX_CONSECUTIVE_EMPTY_ROWS", "20")),
            stale_claim_minutes=int(os.getenv("STALE_CLAIM_MINUTES", "30")),
            collect_interval=int(os.getenv("COLLECT_INTERVAL", "3600")),
            process_interval=int(os.getenv("PROCESS_INTERVAL", "600")),
            checkpoint_dir=Path(os.getenv("CHECKPOINT_DIR", str(BASE_DIR / "checkpoints"))),
            logs_dir=Path(os.getenv("LOGS_DIR", str(BASE_DIR / "logs"))),
            notify_redirect_to=os.getenv("NOTIFY_REDIRECT_TO") or None,
            notify_sender_name=os.getenv("NOTIFY_SENDER_NAME", "Summit CRM"),
            dry_run=_env_bool("DRY_RUN"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            betterstack_source_token=os.getenv("BETTERSTACK_SOURCE_TOKEN") or None,
            betterstack_ingest_host=os.getenv("BETTERSTACK_INGEST_HOST") or None,
        )

    def validate(self) -> None:
        """Validate required configuration."""
        errors = []

        if not self.broadcast_spreadsheet_id:
            errors.append("BROADCAST_SPREADSHEET_ID is required")

        if not self.service_account_file:
            errors.append("GOOGLE_SERVICE_ACCOUNT_FILE is required")
        elif not Path(self.service_account_file).is_file():
            errors.append(f"GOOGLE_SERVICE_ACCOUNT_FILE not found: {self.service_account_file}")

        if self.max_execution_seconds <= 0:
            errors.append("MAX_EXECUTION_SECONDS must be positive")

        if self.collect_batch_size < 1 or self.worksheet_batch_size < 1:
            errors.append("Batch sizes must be at least 1")

        try:
            self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Cannot create CHECKPOINT_DIR: {e}")

        if errors:
            raise ValueError("Config errors:\n  " + "\n  ".join(errors))
