"""Checkpoint management for resumable scans."""
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from summit_crm.logging_conf import logger


class CheckpointStore:
    """Durable key-value store backed by a JSON file.

    Holds one scan cursor per pipeline so a collection that spans more
    students than one run allows resumes where the previous run stopped.
    """

    def __init__(self, checkpoint_dir: Path, filename: str = "cursors.json"):
        self.checkpoint_file: Path = Path(checkpoint_dir) / filename
        self.checkpoint_file.parent.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = str(value)
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def get_cursor(self, name: str) -> int:
        """Get the last processed index for a pipeline (0 if unset or unreadable)."""
        raw = self.get(self._cursor_key(name))
        try:
            return max(int(raw or "0"), 0)
        except ValueError:
            logger.warning(f"Ignoring malformed cursor for {name}: {raw!r}")
            return 0

    def has_cursor(self, name: str) -> bool:
        return self.get(self._cursor_key(name)) is not None

    def save_cursor(self, name: str, index: int) -> None:
        self.set(self._cursor_key(name), str(index))
        logger.debug(f"Saved cursor {name}={index}")

    def reset_cursor(self, name: str) -> None:
        self.delete(self._cursor_key(name))

    def _cursor_key(self, name: str) -> str:
        return f"last_processed_index.{name}"

    def _load(self) -> Dict[str, Any]:
        try:
            if self.checkpoint_file.exists():
                with open(self.checkpoint_file, "r") as f:
                    return json.load(f).get("values", {})
        except Exception as e:
            logger.warning(f"Failed to read checkpoint: {e}")
        return {}

    def _save(self, values: Dict[str, Any]) -> None:
        data = {
            "values": values,
            "updated_at": datetime.now().isoformat(),
        }
        tmp_path = self.checkpoint_file.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.checkpoint_file)
