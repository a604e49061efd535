from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import service
from .arm_client import AzureArmClient
from .assembler import (
    ClassicAssembler,
    RecordAssembler,
    ResourceManagerAssembler,
    SubscriptionJoins,
)
from .catalogs import build_size_catalog, build_tag_catalog, index_sizes
from .errors import (
    ArmRequestError,
    ConfigurationError,
    InventoryError,
    SubscriptionFetchError,
)
from .models import MachineSize, Subscription
from .paths import group_by_id, index_by_id
from .settings import Settings
from .writers import open_sink, output_path

logger = logging.getLogger(__name__)

REPORT_FILENAME = "inventory_run_report.json"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def select_subscriptions(available: Sequence[Subscription], requested: Sequence[str]) -> List[Subscription]:
    """Resolve requested ids or display names; all enabled subscriptions when none requested."""
    enabled = []
    for sub in available:
        if (sub.state or "").lower() == "disabled":
            logger.info("Skipping disabled subscription %s (%s)", sub.name, sub.id)
            continue
        enabled.append(sub)
    if not requested:
        return enabled

    by_id = {sub.id.lower(): sub for sub in enabled}
    by_name = {sub.name.lower(): sub for sub in enabled if sub.name}
    selected: Dict[str, Subscription] = {}
    for value in requested:
        key = value.strip().lower()
        sub = by_id.get(key) or by_name.get(key)
        if sub is None:
            raise ConfigurationError(f"Azure subscription '{value}' is not available to this identity")
        selected[sub.id] = sub
    return list(selected.values())


class InventoryRunner:
    """Builds the tenant catalogs, then exports every subscription in turn.

    Any failure other than a per-location size listing stops the run; the
    run report is written either way.
    """

    def __init__(self, settings: Settings, client: Optional[AzureArmClient] = None) -> None:
        self.settings = settings
        self.client = client or AzureArmClient(settings)
        self.run_id = f"{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"
        self.report: Dict[str, Any] = {
            "run_id": self.run_id,
            "started_at": _utc_now(),
            "finished_at": None,
            "status": "running",
            "error": None,
            "config": settings.summary(),
            "catalogs": {"sizes": 0, "tags": 0},
            "subscriptions": [],
            "summary": {
                "subscriptions_targeted": 0,
                "subscriptions_ok": 0,
                "rows_arm": 0,
                "rows_classic": 0,
                "duration_sec": 0,
            },
        }

    @property
    def report_path(self) -> Path:
        return Path(self.settings.out_dir) / REPORT_FILENAME

    def execute(self) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            subscriptions = select_subscriptions(
                service.list_subscriptions(self.client), self.settings.subscriptions
            )
            self.report["summary"]["subscriptions_targeted"] = len(subscriptions)
            if not subscriptions:
                logger.warning("No subscriptions to inventory")
                self.report["status"] = "ok"
                return self.report
            logger.info("Inventorying %s subscription(s)", len(subscriptions))

            sizes = self._size_catalog(subscriptions[0])
            tags = build_tag_catalog(
                subscriptions,
                lambda sub: self._fetch(sub, "tag names", service.list_tag_names),
            )
            self.report["catalogs"] = {"sizes": len(sizes), "tags": len(tags)}

            sizes_by_name = index_sizes(sizes)
            assemblers: List[RecordAssembler] = [
                ResourceManagerAssembler(sizes_by_name, tags, nic_slots=self.settings.nic_slots)
            ]
            if self.settings.include_classic:
                assemblers.append(ClassicAssembler(sizes_by_name, tags))

            for index, subscription in enumerate(subscriptions, start=1):
                logger.info(
                    "[%s/%s] Subscription %s (%s)",
                    index,
                    len(subscriptions),
                    subscription.name,
                    subscription.id,
                )
                self._inventory_subscription(subscription, assemblers)
            self.report["status"] = "ok"
            return self.report
        except InventoryError as exc:
            self.report["status"] = "failed"
            self.report["error"] = str(exc)
            raise
        finally:
            self.report["finished_at"] = _utc_now()
            self.report["summary"]["duration_sec"] = round(time.perf_counter() - start, 2)
            self._write_report()

    def _fetch(self, subscription: Subscription, what: str, fetcher: Callable[..., Any], *args: Any) -> Any:
        try:
            return fetcher(self.client, subscription.id, *args)
        except ArmRequestError as exc:
            raise SubscriptionFetchError(subscription.id, what, exc) from exc

    def _size_catalog(self, subscription: Subscription) -> List[MachineSize]:
        locations = self._fetch(subscription, "compute locations", service.list_compute_locations)
        logger.info("Collecting VM sizes for %s locations", len(locations))
        return build_size_catalog(
            locations,
            lambda location: service.list_vm_sizes(self.client, subscription.id, location),
            max_workers=self.settings.size_fetch_workers,
        )

    def _inventory_subscription(self, subscription: Subscription, assemblers: Sequence[RecordAssembler]) -> None:
        entry: Dict[str, Any] = {
            "id": subscription.id,
            "name": subscription.name,
            "status": "running",
            "rows": {},
            "files": [],
        }
        self.report["subscriptions"].append(entry)
        try:
            for assembler in assemblers:
                machines, joins = self._collect(subscription, assembler.kind)
                rows = self._export(subscription, assembler, machines, joins, entry)
                entry["rows"][assembler.kind] = rows
                self.report["summary"][f"rows_{assembler.kind}"] += rows
        except InventoryError as exc:
            entry["status"] = "failed"
            entry["error"] = str(exc)
            raise
        entry["status"] = "ok"
        self.report["summary"]["subscriptions_ok"] += 1

    def _collect(self, subscription: Subscription, kind: str):
        if kind == ClassicAssembler.kind:
            dates = self._fetch(
                subscription, "classic VM timestamps", service.list_resource_dates, service.CLASSIC_VM_RESOURCE_TYPE
            )
            if not dates:
                # No classic machines: skip the classic compute endpoint entirely.
                return [], SubscriptionJoins(subscription)
            machines = self._fetch(subscription, "classic VMs", service.list_classic_vms)
            return machines, SubscriptionJoins(subscription, dates_by_id=index_by_id(dates))

        machines = self._fetch(subscription, "VMs", service.list_vms)
        if not machines:
            return [], SubscriptionJoins(subscription)
        statuses = self._fetch(subscription, "VM statuses", service.list_vm_statuses)
        dates = self._fetch(subscription, "VM timestamps", service.list_resource_dates, service.VM_RESOURCE_TYPE)
        interfaces = self._fetch(subscription, "network interfaces", service.list_network_interfaces)
        joins = SubscriptionJoins(
            subscription,
            statuses_by_id=index_by_id(statuses),
            dates_by_id=index_by_id(dates),
            interfaces_by_vm_id=group_by_id(interfaces, "properties.virtualMachine.id"),
        )
        return machines, joins

    def _export(
        self,
        subscription: Subscription,
        assembler: RecordAssembler,
        machines: Sequence[Any],
        joins: SubscriptionJoins,
        entry: Dict[str, Any],
    ) -> int:
        if not machines:
            logger.info("  %s VMs: none", assembler.kind)
            return 0
        fmt = self.settings.output_format
        path = output_path(self.settings.out_dir, subscription.name, subscription.id, assembler.kind, fmt)
        with open_sink(fmt, path, assembler.columns()) as sink:
            for machine in machines:
                sink.write(assembler.assemble(machine, joins))
            written = sink.rows_written
        entry["files"].append(str(path))
        logger.info("  %s VMs: %s rows -> %s", assembler.kind, written, path)
        return written

    def _write_report(self) -> None:
        path = self.report_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as f:
                json.dump(self.report, f, indent=2)
        except OSError as exc:
            logger.error("Could not write run report %s: %s", path, exc)
