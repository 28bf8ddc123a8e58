import json
import logging
import os
from pathlib import Path
import tempfile

logger = logging.getLogger(__name__)


class MemoryStorage:
    """Key-value storage that lives as long as the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._values.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove_item(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFileStorage:
    """Key-value storage backed by one small JSON object on disk.

    Every write rewrites the whole file through a temp file and an atomic
    rename, so a crash mid-write leaves the previous contents in place.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def get_item(self, key: str) -> str | None:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        values = self._read_all()
        values[key] = value
        self._write_all(values)

    def remove_item(self, key: str) -> None:
        values = self._read_all()
        if values.pop(key, None) is not None:
            self._write_all(values)

    def _read_all(self) -> dict[str, object]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            logger.warning(f"Ignoring unreadable storage file {self.path}: {error}")
            return {}
        return payload if isinstance(payload, dict) else {}

    def _write_all(self, values: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(values, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
