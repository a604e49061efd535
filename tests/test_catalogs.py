from __future__ import annotations

import pytest

from azure_vm_inventory.catalogs import (
    SIZE_ALIASES,
    add_size_aliases,
    build_size_catalog,
    build_tag_catalog,
    index_sizes,
)
from azure_vm_inventory.errors import ArmRequestError, AuthorizationError
from azure_vm_inventory.models import MachineSize, Subscription


def _size(name, cores=1, memory=1024, disks=2):
    return MachineSize(name=name, number_of_cores=cores, memory_in_mb=memory, max_data_disk_count=disks)


def _names(catalog):
    return [s.name for s in catalog]


def test_size_catalog_dedupes_across_locations() -> None:
    per_location = {
        "eastus": [_size("Standard_A2", cores=2), _size("Standard_D2s_v3", cores=2)],
        "westeurope": [_size("Standard_A2", cores=99), _size("Standard_E4s_v3", cores=4)],
    }
    catalog = build_size_catalog(["eastus", "westeurope"], lambda loc: per_location[loc])

    assert _names(catalog) == ["Standard_A2", "Standard_D2s_v3", "Standard_E4s_v3"]
    # first location wins for duplicated names
    assert catalog[0].number_of_cores == 2


def test_size_catalog_skips_failing_location(caplog) -> None:
    def fetch(location):
        if location == "brokenregion":
            raise ArmRequestError(404, "Azure ARM error (404): NoRegisteredProviderFound")
        return [_size("Standard_B1s")]

    catalog = build_size_catalog(["brokenregion", "eastus"], fetch)

    assert _names(catalog) == ["Standard_B1s"]
    assert "brokenregion" in caplog.text


def test_size_catalog_does_not_absorb_authorization_errors() -> None:
    def fetch(location):
        raise AuthorizationError("Azure ARM error (403)")

    with pytest.raises(AuthorizationError):
        build_size_catalog(["eastus"], fetch)


def test_size_catalog_parallel_keeps_location_order() -> None:
    per_location = {
        "a": [_size("Shared", cores=1)],
        "b": [_size("Shared", cores=2)],
        "c": [_size("Shared", cores=3), _size("Only_C")],
    }
    catalog = build_size_catalog(["a", "b", "c"], lambda loc: per_location[loc], max_workers=3)

    assert _names(catalog) == ["Shared", "Only_C"]
    assert catalog[0].number_of_cores == 1


def test_alias_synthesis_copies_source_descriptor() -> None:
    catalog = add_size_aliases([_size("Basic_A0", cores=1, memory=768), _size("Standard_A5", cores=2)])
    by_name = {s.name: s for s in catalog}

    assert by_name["ExtraSmall"].number_of_cores == 1
    assert by_name["ExtraSmall"].memory_in_mb == 768
    assert by_name["A5"].number_of_cores == 2
    # Basic_A1 missing: no Small alias
    assert "Small" not in by_name
    assert len(catalog) == 4


def test_alias_synthesis_does_not_duplicate_existing_names() -> None:
    catalog = add_size_aliases([_size("Basic_A1", cores=1), _size("Small", cores=7)])
    assert _names(catalog) == ["Basic_A1", "Small"]
    assert catalog[1].number_of_cores == 7


def test_alias_table_is_complete() -> None:
    aliases = dict(SIZE_ALIASES)
    assert aliases["Basic_A4"] == "ExtraLarge"
    assert aliases["Standard_A11"] == "A11"
    assert len(aliases) == 12


def test_index_sizes_is_case_insensitive() -> None:
    index = index_sizes([_size("Standard_A2", cores=2)])
    assert index["standard_a2"].number_of_cores == 2


def test_memory_in_gb_truncates() -> None:
    assert _size("x", memory=4096).memory_in_gb == 4
    assert _size("x", memory=4097).memory_in_gb == 4
    assert _size("x", memory=1023).memory_in_gb == 0
    assert MachineSize(name="x").memory_in_gb is None


def test_machine_size_accepts_arm_payload() -> None:
    size = MachineSize.model_validate(
        {
            "name": "Standard_A2",
            "numberOfCores": 2,
            "osDiskSizeInMB": 1047552,
            "resourceDiskSizeInMB": 138240,
            "memoryInMB": 3584,
            "maxDataDiskCount": 4,
        }
    )
    assert size.number_of_cores == 2
    assert size.memory_in_gb == 3
    assert size.max_data_disk_count == 4


def test_tag_catalog_sorted_union() -> None:
    subs = [Subscription(id="s1", name="one"), Subscription(id="s2", name="two")]
    tags = {"s1": ["b", "a"], "s2": ["c", "b"]}

    assert build_tag_catalog(subs, lambda sub: tags[sub.id]) == ["a", "b", "c"]


def test_tag_catalog_empty() -> None:
    assert build_tag_catalog([], lambda sub: ["never"]) == []
    assert build_tag_catalog([Subscription(id="s1")], lambda sub: []) == []
