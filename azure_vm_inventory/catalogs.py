"""Tenant-wide reference data: the VM size catalog and the tag-name catalog.

Both catalogs are built once before the subscription loop and fix part of
the output schema (size columns are resolved against the size catalog, one
``TAG [name]`` column is emitted per tag-name catalog entry).
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import ArmRequestError
from .models import MachineSize, Subscription

logger = logging.getLogger(__name__)

# Size names reported by ARM mapped to the names classic machines and old
# templates still use.
SIZE_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("Basic_A0", "ExtraSmall"),
    ("Basic_A1", "Small"),
    ("Basic_A2", "Medium"),
    ("Basic_A3", "Large"),
    ("Basic_A4", "ExtraLarge"),
    ("Standard_A5", "A5"),
    ("Standard_A6", "A6"),
    ("Standard_A7", "A7"),
    ("Standard_A8", "A8"),
    ("Standard_A9", "A9"),
    ("Standard_A10", "A10"),
    ("Standard_A11", "A11"),
)

SizeFetcher = Callable[[str], Sequence[MachineSize]]
TagFetcher = Callable[[Subscription], Sequence[str]]


def dedupe_sizes(sizes: Iterable[MachineSize]) -> List[MachineSize]:
    """Keep the first descriptor seen for every size name."""
    seen: Dict[str, MachineSize] = {}
    for size in sizes:
        if size.name not in seen:
            seen[size.name] = size
    return list(seen.values())


def add_size_aliases(sizes: Sequence[MachineSize]) -> List[MachineSize]:
    by_name = {size.name: size for size in sizes}
    aliased = list(sizes)
    for source, alias in SIZE_ALIASES:
        descriptor = by_name.get(source)
        if descriptor is None:
            continue
        aliased.append(descriptor.renamed(alias))
    return dedupe_sizes(aliased)


def _fetch_location(location: str, fetch_sizes: SizeFetcher) -> Optional[List[MachineSize]]:
    try:
        return list(fetch_sizes(location))
    except ArmRequestError as exc:
        logger.warning("Azure vmSizes failed for %s, skipping location: %s", location, exc.detail)
        return None


def build_size_catalog(
    locations: Sequence[str],
    fetch_sizes: SizeFetcher,
    *,
    max_workers: int = 1,
) -> List[MachineSize]:
    """Union the sizes of every location, dedupe by name and add legacy aliases.

    A location whose size listing fails is skipped. Results are merged in the
    order of ``locations`` whatever the number of workers, so the descriptor
    kept for a duplicated name does not depend on scheduling.
    """
    locations = list(dict.fromkeys(locations))
    results: List[Optional[List[MachineSize]]]
    workers = min(max(1, max_workers), len(locations)) if locations else 1
    if workers <= 1:
        results = [_fetch_location(loc, fetch_sizes) for loc in locations]
    else:
        with ThreadPoolExecutor(max_workers=workers) as ex:
            results = list(ex.map(lambda loc: _fetch_location(loc, fetch_sizes), locations))

    collected: List[MachineSize] = []
    skipped = 0
    for sizes in results:
        if sizes is None:
            skipped += 1
            continue
        collected.extend(sizes)

    catalog = add_size_aliases(dedupe_sizes(collected))
    logger.info(
        "Size catalog: %s sizes from %s locations (%s skipped)",
        len(catalog),
        len(locations) - skipped,
        skipped,
    )
    return catalog


def index_sizes(catalog: Iterable[MachineSize]) -> Dict[str, MachineSize]:
    index: Dict[str, MachineSize] = {}
    for size in catalog:
        index.setdefault(size.name.lower(), size)
    return index


def build_tag_catalog(subscriptions: Iterable[Subscription], fetch_tags: TagFetcher) -> List[str]:
    """Sorted, deduplicated union of the tag names used in every subscription."""
    names = set()
    for subscription in subscriptions:
        names.update(name for name in fetch_tags(subscription) if name)
    catalog = sorted(names)
    logger.info("Tag catalog: %s tag names", len(catalog))
    return catalog
