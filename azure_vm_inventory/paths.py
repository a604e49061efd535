"""Total lookups over the JSON trees returned by Resource Manager.

Every accessor here returns ``None`` (or the supplied default) instead of
raising when a value is missing, so record assembly never fails on a field
that a given API version or machine kind does not carry.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

_SEGMENT_RE = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
_INDEX_RE = re.compile(r"\[(\d+)\]")
_FRACTION_RE = re.compile(r"\.(\d+)")

_MISSING = object()


def _parse_path(path: str) -> Optional[List[Tuple[str, List[int]]]]:
    steps: List[Tuple[str, List[int]]] = []
    for raw in path.split("."):
        match = _SEGMENT_RE.match(raw)
        if not match:
            return None
        key, indexes = match.group(1), match.group(2)
        if not key and not indexes:
            return None
        steps.append((key, [int(i) for i in _INDEX_RE.findall(indexes)]))
    return steps


def _step_index(node: Any, index: int) -> Any:
    if not isinstance(node, (list, tuple)):
        return _MISSING
    if index >= len(node):
        return _MISSING
    return node[index]


def get_path(record: Any, path: str, default: Any = None) -> Any:
    """Return the value at dotted ``path`` (``a.b[0].c``) or ``default``."""
    if record is None or not path:
        return default
    steps = _parse_path(path)
    if steps is None:
        return default

    node = record
    for key, indexes in steps:
        if key:
            if not isinstance(node, Mapping):
                return default
            node = node.get(key, _MISSING)
            if node is _MISSING or node is None:
                return default
        for index in indexes:
            node = _step_index(node, index)
            if node is _MISSING or node is None:
                return default
    return node


def first_match(items: Any, predicate: Callable[[Any], bool]) -> Any:
    """First element of ``items`` satisfying ``predicate``; ``None`` if none."""
    if not isinstance(items, (list, tuple)):
        return None
    for item in items:
        try:
            if predicate(item):
                return item
        except (AttributeError, KeyError, TypeError):
            continue
    return None


def path_segment(resource_id: Any, position: int) -> Optional[str]:
    """1-indexed segment of a slash-delimited resource id.

    A resource id starts with ``/`` so segment 1 is empty and
    ``/subscriptions/<s>/resourceGroups/<rg>/providers/<ns>/<type>/<name>``
    puts ``<name>`` at position 9.
    """
    if not isinstance(resource_id, str) or position < 1:
        return None
    parts = resource_id.split("/")
    if position > len(parts):
        return None
    value = parts[position - 1]
    return value or None


def resource_group_of(resource_id: Any) -> Optional[str]:
    if not isinstance(resource_id, str):
        return None
    parts = [p for p in resource_id.strip("/").split("/") if p]
    for idx, part in enumerate(parts):
        if part.lower() == "resourcegroups" and idx + 1 < len(parts):
            return parts[idx + 1]
    return None


def id_key(value: Any) -> Optional[str]:
    """Join key for resource ids; ARM does not preserve id casing across APIs."""
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip().rstrip("/").lower()


def index_by_id(items: Iterable[Any], path: str = "id") -> Dict[str, Any]:
    indexed: Dict[str, Any] = {}
    for item in items or []:
        key = id_key(get_path(item, path))
        if key and key not in indexed:
            indexed[key] = item
    return indexed


def group_by_id(items: Iterable[Any], path: str) -> Dict[str, List[Any]]:
    """Group items by the id found at ``path``, keeping source order."""
    grouped: Dict[str, List[Any]] = {}
    for item in items or []:
        key = id_key(get_path(item, path))
        if key:
            grouped.setdefault(key, []).append(item)
    return grouped


def lookup(mapping: Optional[Mapping[str, Any]], resource_id: Any, default: Any = None) -> Any:
    key = id_key(resource_id)
    if not key or not mapping:
        return default
    return mapping.get(key, default)


def parse_utc(value: Any) -> Optional[datetime]:
    """ISO-8601 string to an aware UTC datetime; ``None`` when unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        candidate = value.strip()
        if candidate.endswith("Z") or candidate.endswith("z"):
            candidate = candidate[:-1] + "+00:00"
        # fromisoformat before 3.11 only takes 3 or 6 fraction digits
        candidate = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), candidate, count=1)
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def as_list(value: Any) -> Sequence[Any]:
    if isinstance(value, (list, tuple)):
        return value
    return []
