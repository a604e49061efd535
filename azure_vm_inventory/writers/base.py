import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def format_cell(value: Any) -> Any:
    """Render a row value for delimited output: ``None`` becomes empty."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(DATETIME_FORMAT)
    return value


def safe_filename(value: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", value or "").strip("._")
    return cleaned or "unnamed"


def output_path(out_dir: Path, subscription_name: str, subscription_id: str, kind: str, fmt: str) -> Path:
    stem = "_".join(
        [safe_filename(subscription_name or subscription_id), safe_filename(subscription_id), kind, "vms"]
    )
    return Path(out_dir) / f"{stem}.{fmt}"
