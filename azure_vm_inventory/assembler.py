"""Flatten one virtual machine plus its joined data into one ordered row.

Two variants share the column mechanics: :class:`ResourceManagerAssembler`
for ``Microsoft.Compute/virtualMachines`` and :class:`ClassicAssembler` for
``Microsoft.ClassicCompute/virtualMachines``. An assembler is built once per
run from the tag catalog and the NIC slot count, so every row it produces
carries exactly :meth:`RecordAssembler.columns`, in that order, whatever data
the machine actually has. Unreadable fields become ``None``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .models import MachineSize, Subscription
from .paths import (
    as_list,
    first_match,
    get_path,
    lookup,
    parse_utc,
    path_segment,
    resource_group_of,
)

DEFAULT_NIC_SLOTS = 2
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Positions (1-indexed, leading empty segment included) inside ids such as
# /subscriptions/<s>/resourceGroups/<rg>/providers/Microsoft.Network/virtualNetworks/<vnet>/subnets/<subnet>
NAME_SEGMENT = 9
CHILD_NAME_SEGMENT = 11

IDENTITY_COLUMNS: Tuple[str, ...] = (
    "Created (UTC)",
    "Modified (UTC)",
    "Subscription Name",
    "Subscription ID",
    "Resource Group",
    "VM Name",
    "Location",
    "Resource ID",
)

SIZE_COLUMNS: Tuple[str, ...] = (
    "VM Size",
    "VM Processor Cores",
    "VM Memory (GB)",
    "VM Max Data Disks",
)

NIC_COLUMN_TEMPLATES: Tuple[str, ...] = (
    "NIC {n}",
    "NIC {n} Primary",
    "NIC {n} Accelerated Networking",
    "NIC {n} Primary Config",
    "NIC {n} Primary Config IP",
    "NIC {n} Primary Config Allocation",
    "NIC {n} VNET",
    "NIC {n} Subnet",
)


def tag_column(name: str) -> str:
    return f"TAG [{name}]"


def nic_columns(slot: int) -> List[str]:
    """Column names of the 1-based NIC ``slot``."""
    return [template.format(n=slot) for template in NIC_COLUMN_TEMPLATES]


def storage_host(uri: Any) -> Optional[str]:
    if not isinstance(uri, str) or not uri.strip():
        return None
    try:
        return urlparse(uri.strip()).hostname
    except ValueError:
        return None


def os_disk_type(os_disk: Any, vhd_uri_path: str = "vhd.uri") -> Optional[str]:
    if get_path(os_disk, "managedDisk") is not None:
        return "Managed"
    if get_path(os_disk, vhd_uri_path):
        return "Unmanaged"
    return None


def hybrid_benefit(os_type: Any, license_type: Any) -> str:
    if not isinstance(os_type, str) or os_type.lower() != "windows":
        return "Not Supported"
    return "Enabled" if license_type else "Not Enabled"


def format_window(start: Any, end: Any) -> Optional[str]:
    start_utc = parse_utc(start)
    end_utc = parse_utc(end)
    if start_utc is None or end_utc is None:
        return None
    return f"{start_utc.strftime(DATETIME_FORMAT)} - {end_utc.strftime(DATETIME_FORMAT)} UTC"


def tag_value(tags: Any, name: str, catalog_names: Collection[str] = ()) -> Any:
    if not isinstance(tags, Mapping):
        return None
    if name in tags:
        return tags[name]
    # Tag names are case-insensitive in ARM; a key with its own catalog column
    # only fills that column.
    lowered = name.lower()
    for key, value in tags.items():
        if isinstance(key, str) and key.lower() == lowered and key not in catalog_names:
            return value
    return None


def _status_by_prefix(statuses: Any, prefix: str) -> Any:
    return first_match(
        statuses,
        lambda s: isinstance(get_path(s, "code"), str) and s["code"].startswith(prefix),
    )


@dataclass(frozen=True)
class SubscriptionJoins:
    """Auxiliary lists of one subscription, indexed by lower-cased resource id."""

    subscription: Subscription
    statuses_by_id: Mapping[str, Any] = field(default_factory=dict)
    dates_by_id: Mapping[str, Any] = field(default_factory=dict)
    interfaces_by_vm_id: Mapping[str, List[Any]] = field(default_factory=dict)


class RecordAssembler:
    kind = ""
    machine_columns: Tuple[str, ...] = ()

    def __init__(
        self,
        sizes_by_name: Mapping[str, MachineSize],
        tag_catalog: Sequence[str],
        *,
        nic_slots: int = DEFAULT_NIC_SLOTS,
    ) -> None:
        self.sizes_by_name = sizes_by_name
        self.tag_catalog = list(tag_catalog)
        self._tag_names = frozenset(self.tag_catalog)
        self.nic_slots = max(0, int(nic_slots))
        self._columns = self._build_columns()

    def _interface_columns(self) -> List[str]:
        return []

    def _build_columns(self) -> List[str]:
        columns = list(IDENTITY_COLUMNS)
        columns.extend(self.machine_columns)
        columns.extend(self._interface_columns())
        columns.extend(tag_column(name) for name in self.tag_catalog)
        return columns

    def columns(self) -> List[str]:
        return list(self._columns)

    def assemble(self, machine: Any, joins: SubscriptionJoins) -> Dict[str, Any]:
        row: Dict[str, Any] = dict.fromkeys(self._columns)
        resource_id = get_path(machine, "id")
        dates = lookup(joins.dates_by_id, resource_id)

        row["Created (UTC)"] = parse_utc(get_path(dates, "createdTime"))
        row["Modified (UTC)"] = parse_utc(get_path(dates, "changedTime"))
        row["Subscription Name"] = joins.subscription.name or None
        row["Subscription ID"] = joins.subscription.id
        row["Resource Group"] = resource_group_of(resource_id)
        row["VM Name"] = get_path(machine, "name")
        row["Location"] = get_path(machine, "location")
        row["Resource ID"] = resource_id

        self._fill_machine(row, machine, joins)

        tags = get_path(machine, "tags")
        for name in self.tag_catalog:
            row[tag_column(name)] = tag_value(tags, name, self._tag_names)

        if list(row) != self._columns:
            raise KeyError(f"{type(self).__name__} wrote columns outside its schema")
        return row

    def _fill_machine(self, row: Dict[str, Any], machine: Any, joins: SubscriptionJoins) -> None:
        raise NotImplementedError

    def _fill_size(self, row: Dict[str, Any], size_name: Any) -> None:
        row["VM Size"] = size_name
        size = None
        if isinstance(size_name, str) and size_name:
            size = self.sizes_by_name.get(size_name.lower())
        if size is None:
            return
        row["VM Processor Cores"] = size.number_of_cores
        row["VM Memory (GB)"] = size.memory_in_gb
        row["VM Max Data Disks"] = size.max_data_disk_count


class ResourceManagerAssembler(RecordAssembler):
    kind = "arm"
    machine_columns = (
        "VM ID",
        "PowerState",
        "Provisioning State",
        "Status Code",
        "Maintenance - Self Service Window",
        "Maintenance - Scheduled Window",
        "Availability Set",
        "Availability Zone",
        *SIZE_COLUMNS,
        "OS Type",
        "OS Name",
        "Image Publisher",
        "Image Offer",
        "Image SKU",
        "Image Version",
        "Windows Hybrid Benefit",
        "OS Disk Name",
        "OS Disk Type",
        "OS Disk Size (GB)",
        "OS Disk Caching",
        "OS Disk Storage Account",
        "Data Disk Count",
        "Boot Diagnostics Enabled",
        "Boot Diagnostics Storage",
        "Computer Name",
        "Admin Username",
    )

    def _interface_columns(self) -> List[str]:
        columns: List[str] = []
        for slot in range(1, self.nic_slots + 1):
            columns.extend(nic_columns(slot))
        return columns

    def _fill_machine(self, row: Dict[str, Any], machine: Any, joins: SubscriptionJoins) -> None:
        resource_id = get_path(machine, "id")
        props = get_path(machine, "properties")
        storage = get_path(props, "storageProfile")
        os_disk = get_path(storage, "osDisk")
        os_type = get_path(os_disk, "osType")

        row["VM ID"] = get_path(props, "vmId")
        self._fill_status(row, lookup(joins.statuses_by_id, resource_id))
        row["Availability Set"] = path_segment(get_path(props, "availabilitySet.id"), NAME_SEGMENT)
        zones = [str(z) for z in as_list(get_path(machine, "zones")) if z is not None]
        row["Availability Zone"] = ",".join(zones) or None
        self._fill_size(row, get_path(props, "hardwareProfile.vmSize"))

        row["OS Type"] = os_type
        row["Image Publisher"] = get_path(storage, "imageReference.publisher")
        row["Image Offer"] = get_path(storage, "imageReference.offer")
        row["Image SKU"] = get_path(storage, "imageReference.sku")
        row["Image Version"] = get_path(storage, "imageReference.exactVersion") or get_path(
            storage, "imageReference.version"
        )
        row["Windows Hybrid Benefit"] = hybrid_benefit(os_type, get_path(props, "licenseType"))

        row["OS Disk Name"] = get_path(os_disk, "name")
        row["OS Disk Type"] = os_disk_type(os_disk)
        row["OS Disk Size (GB)"] = get_path(os_disk, "diskSizeGB")
        row["OS Disk Caching"] = get_path(os_disk, "caching")
        row["OS Disk Storage Account"] = storage_host(get_path(os_disk, "vhd.uri"))
        data_disks = get_path(storage, "dataDisks")
        row["Data Disk Count"] = len(data_disks) if isinstance(data_disks, list) else None

        row["Boot Diagnostics Enabled"] = get_path(props, "diagnosticsProfile.bootDiagnostics.enabled")
        row["Boot Diagnostics Storage"] = storage_host(
            get_path(props, "diagnosticsProfile.bootDiagnostics.storageUri")
        )
        row["Computer Name"] = get_path(props, "osProfile.computerName")
        row["Admin Username"] = get_path(props, "osProfile.adminUsername")

        interfaces = lookup(joins.interfaces_by_vm_id, resource_id) or []
        for slot in range(1, self.nic_slots + 1):
            nic = interfaces[slot - 1] if slot <= len(interfaces) else None
            self._fill_interface(row, slot, nic)

    def _fill_status(self, row: Dict[str, Any], status: Any) -> None:
        view = get_path(status, "properties.instanceView")
        statuses = get_path(view, "statuses")
        power = _status_by_prefix(statuses, "PowerState/")
        provisioning = _status_by_prefix(statuses, "ProvisioningState/")

        row["PowerState"] = get_path(power, "displayStatus")
        row["Provisioning State"] = get_path(provisioning, "displayStatus")
        row["Status Code"] = get_path(power, "code")
        row["OS Name"] = get_path(view, "osName")

        maintenance = get_path(view, "maintenanceRedeployStatus")
        if get_path(maintenance, "isCustomerInitiatedMaintenanceAllowed") is True:
            row["Maintenance - Self Service Window"] = format_window(
                get_path(maintenance, "preMaintenanceWindowStartTime"),
                get_path(maintenance, "preMaintenanceWindowEndTime"),
            )
            row["Maintenance - Scheduled Window"] = format_window(
                get_path(maintenance, "maintenanceWindowStartTime"),
                get_path(maintenance, "maintenanceWindowEndTime"),
            )

    def _fill_interface(self, row: Dict[str, Any], slot: int, nic: Any) -> None:
        if nic is None:
            return
        config = first_match(
            get_path(nic, "properties.ipConfigurations"),
            lambda c: get_path(c, "properties.primary") is True,
        )
        subnet_id = get_path(config, "properties.subnet.id")
        values = (
            get_path(nic, "name"),
            get_path(nic, "properties.primary"),
            get_path(nic, "properties.enableAcceleratedNetworking"),
            get_path(config, "name"),
            get_path(config, "properties.privateIPAddress"),
            get_path(config, "properties.privateIPAllocationMethod"),
            path_segment(subnet_id, NAME_SEGMENT),
            path_segment(subnet_id, CHILD_NAME_SEGMENT),
        )
        for column, value in zip(nic_columns(slot), values):
            row[column] = value


class ClassicAssembler(RecordAssembler):
    """Classic machines embed their status and network data in the resource."""

    kind = "classic"
    machine_columns = (
        "PowerState",
        "Provisioning State",
        "Status Code",
        "Cloud Service",
        *SIZE_COLUMNS,
        "OS Type",
        "Image Name",
        "Windows Hybrid Benefit",
        "OS Disk Name",
        "OS Disk Type",
        "OS Disk Caching",
        "OS Disk Storage Account",
        "Data Disk Count",
        "Computer Name",
        "Private IP",
        "Public IP",
        "VNET",
        "Subnet",
    )

    def _fill_machine(self, row: Dict[str, Any], machine: Any, joins: SubscriptionJoins) -> None:
        props = get_path(machine, "properties")
        view = get_path(props, "instanceView")
        os_disk = get_path(props, "storageProfile.operatingSystemDisk")
        os_type = get_path(os_disk, "operatingSystem")

        row["PowerState"] = get_path(view, "powerState")
        row["Provisioning State"] = get_path(props, "provisioningState")
        row["Status Code"] = get_path(view, "status")
        row["Cloud Service"] = get_path(props, "domainName.name")
        self._fill_size(row, get_path(props, "hardwareProfile.size"))

        row["OS Type"] = os_type
        row["Image Name"] = get_path(os_disk, "sourceImageName")
        row["Windows Hybrid Benefit"] = hybrid_benefit(os_type, get_path(props, "licenseType"))
        row["OS Disk Name"] = get_path(os_disk, "diskName")
        row["OS Disk Type"] = os_disk_type(os_disk, vhd_uri_path="vhdUri")
        row["OS Disk Caching"] = get_path(os_disk, "caching")
        row["OS Disk Storage Account"] = storage_host(get_path(os_disk, "vhdUri"))
        data_disks = get_path(props, "storageProfile.dataDisks")
        row["Data Disk Count"] = len(data_disks) if isinstance(data_disks, list) else None

        row["Computer Name"] = get_path(view, "computerName")
        row["Private IP"] = get_path(view, "privateIpAddress")
        public_ips = [str(ip) for ip in as_list(get_path(view, "publicIpAddresses")) if ip]
        row["Public IP"] = ",".join(public_ips) or None
        row["VNET"] = get_path(props, "networkProfile.virtualNetwork.name")
        row["Subnet"] = get_path(props, "networkProfile.virtualNetwork.subnetNames[0]")


ASSEMBLERS = {
    ResourceManagerAssembler.kind: ResourceManagerAssembler,
    ClassicAssembler.kind: ClassicAssembler,
}

