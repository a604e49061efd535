from pathlib import Path
from typing import Sequence, Union

from .base import format_cell, output_path
from .csv_writer import CsvRecordSink
from .xlsx_writer import XlsxRecordSink

RecordSink = Union[CsvRecordSink, XlsxRecordSink]


def open_sink(fmt: str, path: Path, columns: Sequence[str]) -> RecordSink:
    if fmt == "xlsx":
        return XlsxRecordSink(path, columns)
    if fmt == "csv":
        return CsvRecordSink(path, columns)
    raise ValueError(f"Unsupported output format {fmt!r}")


__all__ = ["CsvRecordSink", "XlsxRecordSink", "RecordSink", "format_cell", "open_sink", "output_path"]
