from __future__ import annotations

import logging
from typing import Any, Dict, List

from .arm_client import AzureArmClient
from .models import MachineSize, Subscription
from .paths import get_path

logger = logging.getLogger(__name__)

VM_RESOURCE_TYPE = "Microsoft.Compute/virtualMachines"
CLASSIC_VM_RESOURCE_TYPE = "Microsoft.ClassicCompute/virtualMachines"


def _location_name(display_name: str) -> str:
    return display_name.replace(" ", "").lower()


def list_subscriptions(client: AzureArmClient) -> List[Subscription]:
    params = {"api-version": client.subscriptions_api_version}
    raw = client.arm_get_paged("/subscriptions", params=params)
    subscriptions: List[Subscription] = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("subscriptionId"):
            continue
        subscriptions.append(Subscription.model_validate(entry))
    return subscriptions


def list_compute_locations(client: AzureArmClient, subscription_id: str) -> List[str]:
    """Locations where the subscription can create virtual machines."""
    path = f"/subscriptions/{subscription_id}/providers/Microsoft.Compute"
    payload = client.arm_get(path, params={"api-version": client.resources_api_version})
    resource_types = get_path(payload, "resourceTypes") or []
    locations: List[str] = []
    for entry in resource_types:
        if get_path(entry, "resourceType") != "virtualMachines":
            continue
        for display_name in get_path(entry, "locations") or []:
            if isinstance(display_name, str) and display_name.strip():
                locations.append(_location_name(display_name))
    logger.debug("Subscription %s exposes %s compute locations", subscription_id, len(locations))
    return list(dict.fromkeys(locations))


def list_vm_sizes(client: AzureArmClient, subscription_id: str, location: str) -> List[MachineSize]:
    path = f"/subscriptions/{subscription_id}/providers/Microsoft.Compute/locations/{location}/vmSizes"
    payload = client.arm_get(path, params={"api-version": client.compute_api_version})
    sizes = payload.get("value") if isinstance(payload, dict) else []
    result: List[MachineSize] = []
    if isinstance(sizes, list):
        for entry in sizes:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            result.append(MachineSize.model_validate(entry))
    return result


def list_tag_names(client: AzureArmClient, subscription_id: str) -> List[str]:
    path = f"/subscriptions/{subscription_id}/tagNames"
    raw = client.arm_get_paged(path, params={"api-version": client.resources_api_version})
    names: List[str] = []
    for entry in raw:
        name = get_path(entry, "tagName")
        if isinstance(name, str) and name:
            names.append(name)
    return names


def list_vms(client: AzureArmClient, subscription_id: str) -> List[dict]:
    path = f"/subscriptions/{subscription_id}/providers/{VM_RESOURCE_TYPE}"
    params = {"api-version": client.compute_api_version}
    return client.arm_get_paged(path, params=params)


def list_vm_statuses(client: AzureArmClient, subscription_id: str) -> List[dict]:
    """Same listing as :func:`list_vms` but with the instance view only."""
    path = f"/subscriptions/{subscription_id}/providers/{VM_RESOURCE_TYPE}"
    params = {"api-version": client.compute_api_version, "statusOnly": "true"}
    return client.arm_get_paged(path, params=params)


def list_resource_dates(client: AzureArmClient, subscription_id: str, resource_type: str) -> List[Dict[str, Any]]:
    path = f"/subscriptions/{subscription_id}/resources"
    params = {
        "api-version": client.resources_api_version,
        "$filter": f"resourceType eq '{resource_type}'",
        "$expand": "createdTime,changedTime",
    }
    raw = client.arm_get_paged(path, params=params)
    return [
        {
            "id": entry.get("id"),
            "createdTime": entry.get("createdTime"),
            "changedTime": entry.get("changedTime"),
        }
        for entry in raw
        if isinstance(entry, dict) and entry.get("id")
    ]


def list_network_interfaces(client: AzureArmClient, subscription_id: str) -> List[dict]:
    path = f"/subscriptions/{subscription_id}/providers/Microsoft.Network/networkInterfaces"
    params = {"api-version": client.network_api_version}
    return client.arm_get_paged(path, params=params)


def list_classic_vms(client: AzureArmClient, subscription_id: str) -> List[dict]:
    path = f"/subscriptions/{subscription_id}/providers/{CLASSIC_VM_RESOURCE_TYPE}"
    params = {"api-version": client.classic_compute_api_version}
    return client.arm_get_paged(path, params=params)
