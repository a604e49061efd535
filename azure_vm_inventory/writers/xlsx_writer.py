import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence

from openpyxl import Workbook, load_workbook

logger = logging.getLogger(__name__)

SHEET_TITLE = "VMs"


def _xlsx_cell(value: Any) -> Any:
    # openpyxl rejects timezone-aware datetimes.
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class XlsxRecordSink:
    """Collects rows into a single-sheet workbook saved on close."""

    def __init__(self, path: Path, columns: Sequence[str]) -> None:
        self.path = Path(path)
        self.columns: List[str] = list(columns)
        self.rows_written = 0
        self._closed = False
        self.wb, self.ws = self._open_workbook()

    def _open_workbook(self):
        if self.path.exists():
            wb = load_workbook(self.path)
            ws = wb[SHEET_TITLE] if SHEET_TITLE in wb.sheetnames else wb.active
            header = [cell.value for cell in next(ws.iter_rows(min_row=1, max_row=1), [])]
            if header == self.columns:
                return wb, ws
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
            backup = self.path.with_suffix(self.path.suffix + f".bak-{timestamp}")
            self.path.rename(backup)
            logger.warning("Header of %s changed; previous file moved to %s", self.path, backup.name)

        wb = Workbook()
        # Remove default sheet to keep a single, named sheet
        wb.remove(wb.active)
        ws = wb.create_sheet(title=SHEET_TITLE)
        ws.append(self.columns)
        return wb, ws

    def write(self, record: Dict[str, Any]) -> None:
        self.ws.append([_xlsx_cell(record.get(column)) for column in self.columns])
        self.rows_written += 1

    def close(self) -> None:
        if self._closed:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.wb.save(self.path)
        self._closed = True

    def __enter__(self) -> "XlsxRecordSink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
