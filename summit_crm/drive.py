"""Google Drive file operations used by worksheet validation."""
import re
from dataclasses import dataclass
from typing import Optional

from summit_crm.google_client import GoogleClient
from summit_crm.logging_conf import logger

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id,name,mimeType,webViewLink"

# docs.google.com/document/d/ID/edit, drive.google.com/file/d/ID/view,
# drive.google.com/open?id=ID, drive.google.com/drive/folders/ID
FILE_ID_PATTERNS = [
    re.compile(r"/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"[?&]id=([a-zA-Z0-9_-]+)"),
    re.compile(r"/folders/([a-zA-Z0-9_-]+)"),
]


def extract_file_id(url: str) -> Optional[str]:
    """Extract a Drive file or folder ID from a Google URL."""
    if not url or not isinstance(url, str):
        return None
    for pattern in FILE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


@dataclass(frozen=True)
class DriveFile:
    id: str
    name: str
    url: str
    mime_type: str = ""

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE


class DriveFileStore:
    """Fetches, copies and shares Drive files."""

    def __init__(self, client: GoogleClient):
        self.client = client

    def get_file(self, file_id: str) -> DriveFile:
        response = self.client.execute(
            self.client.drive.files().get(fileId=file_id, fields=FILE_FIELDS, supportsAllDrives=True)
        )
        return self._to_file(response)

    def get_folder(self, folder_id: str) -> DriveFile:
        folder = self.get_file(folder_id)
        if not folder.is_folder:
            raise ValueError(f"{folder_id} is not a folder")
        return folder

    def copy(self, file_id: str, new_name: str, folder_id: str) -> DriveFile:
        """Copy a file into ``folder_id`` under ``new_name``."""
        response = self.client.execute(
            self.client.drive.files().copy(
                fileId=file_id,
                body={"name": new_name, "parents": [folder_id]},
                fields=FILE_FIELDS,
                supportsAllDrives=True,
            )
        )
        copied = self._to_file(response)
        logger.info(f"Copied {file_id} -> {copied.id} ({new_name})")
        return copied

    def share_with(self, file_id: str, email: str, role: str = "writer") -> None:
        self.client.execute(
            self.client.drive.permissions().create(
                fileId=file_id,
                body={"role": role, "type": "user", "emailAddress": email},
                sendNotificationEmail=False,
                supportsAllDrives=True,
            )
        )

    @staticmethod
    def _to_file(data: dict) -> DriveFile:
        file_id = data["id"]
        return DriveFile(
            id=file_id,
            name=data.get("name", ""),
            url=data.get("webViewLink") or f"https://drive.google.com/file/d/{file_id}/view",
            mime_type=data.get("mimeType", ""),
        )
