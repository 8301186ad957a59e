"""Google API services shared by the Sheets, Drive and Gmail adapters."""
import json
import socket
import time
from typing import Any, Dict, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from summit_crm.logging_conf import logger
from summit_crm.settings import Settings

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/gmail.send",
]

MAX_RETRIES = 3
DEFAULT_RETRY_AFTER = 30


class GoogleAPIError(Exception):
    """A Google API call failed after retries."""

    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code in (403, 404)


def _retry_after(value: Any) -> int:
    """Seconds from a Retry-After header; HTTP-date or missing values use the default."""
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER


class GoogleClient:
    """Discovery-built Sheets, Drive and Gmail services with a retrying executor."""

    def __init__(self, sheets=None, drive=None, gmail=None):
        self.sheets = sheets
        self.drive = drive
        self.gmail = gmail

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleClient":
        creds = service_account.Credentials.from_service_account_file(
            settings.service_account_file, scopes=SCOPES
        )
        if settings.delegated_user:
            creds = creds.with_subject(settings.delegated_user)
        return cls(
            sheets=build("sheets", "v4", credentials=creds, cache_discovery=False),
            drive=build("drive", "v3", credentials=creds, cache_discovery=False),
            gmail=build("gmail", "v1", credentials=creds, cache_discovery=False),
        )

    def execute(self, request, retry_count: int = 0) -> Dict[str, Any]:
        """Execute an API request with retry logic."""
        try:
            response = request.execute()

        except HttpError as e:
            status = e.resp.status
            if status == 429 and retry_count < MAX_RETRIES:
                retry_after = _retry_after(e.resp.get("retry-after"))
                logger.warning(f"Rate limited. Waiting {retry_after}s...")
                time.sleep(retry_after)
                return self.execute(request, retry_count + 1)

            if status >= 500 and retry_count < MAX_RETRIES:
                wait_time = 2 ** retry_count
                logger.warning(f"Server error {status}. Retrying in {wait_time}s...")
                time.sleep(wait_time)
                return self.execute(request, retry_count + 1)

            raise GoogleAPIError(status, self._error_message(e)) from e

        except (ConnectionError, TimeoutError, socket.timeout) as e:
            if retry_count < MAX_RETRIES:
                wait_time = 2 ** retry_count
                time.sleep(wait_time)
                return self.execute(request, retry_count + 1)
            logger.error(f"Google API request failed: {e}")
            raise GoogleAPIError(None, str(e)) from e

        return response or {}

    @staticmethod
    def _error_message(error: HttpError) -> str:
        status = error.resp.status
        try:
            body = json.loads(error.content.decode("utf-8"))
            detail = body.get("error", {})
            message = detail.get("message") if isinstance(detail, dict) else str(detail)
        except (ValueError, AttributeError):
            message = error.content[:200].decode("utf-8", "replace") if error.content else ""
        return f"HTTP {status}: {message or error.resp.reason}"
