"""Incremental CSV sink for assembled VM rows."""
import csv
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .base import format_cell

logger = logging.getLogger(__name__)


class CsvRecordSink:
    """Appends rows to one CSV file, writing the header when the file is new."""

    def __init__(self, path: Path, columns: Sequence[str]) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.columns: List[str] = list(columns)
        self.rows_written = 0
        file_exists = self._prepare_target()
        self._file = self.path.open("a" if file_exists else "w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file)
        if not file_exists:
            self._writer.writerow(self.columns)
            self._file.flush()

    def write(self, record: Dict[str, Any]) -> None:
        self._writer.writerow([format_cell(record.get(column)) for column in self.columns])
        self.rows_written += 1

    def _sync(self) -> None:
        try:
            os.fsync(self._file.fileno())
        except OSError as exc:
            logger.debug("fsync not supported for %s: %s", self.path, exc)

    def close(self) -> None:
        if self._file.closed:
            return
        self._file.flush()
        self._sync()
        self._file.close()

    def __enter__(self) -> "CsvRecordSink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _prepare_target(self) -> bool:
        """True when an existing file already has this header and can be appended to.

        A file with a different header is moved aside so columns never shift
        under an old header.
        """
        if not self.path.exists() or self.path.stat().st_size == 0:
            return False
        with self.path.open("r", newline="", encoding="utf-8") as existing:
            current_header = next(csv.reader(existing), [])
        if current_header == self.columns:
            return True
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        backup = self.path.with_suffix(self.path.suffix + f".bak-{timestamp}")
        self.path.rename(backup)
        logger.warning("Header of %s changed; previous file moved to %s", self.path, backup.name)
        return False
