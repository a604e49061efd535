from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILE = ".env"

OUTPUT_FORMATS = ("csv", "xlsx")


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    logger.warning("Invalid boolean %r, using default=%s", value, default)
    return default


def _as_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid int for %r, using default=%s", value, default)
        return default


def _ensure_range(name: str, value: int, minimum: int, maximum: int) -> int:
    if value < minimum:
        logger.warning(
            "%s (%s) is lower than minimum %s; using %s",
            name,
            value,
            minimum,
            minimum,
        )
        return minimum
    if value > maximum:
        logger.warning(
            "%s (%s) is higher than maximum %s; using %s",
            name,
            value,
            maximum,
            maximum,
        )
        return maximum
    return value


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    items = []
    for raw in value.replace(";", ",").split(","):
        cleaned = raw.strip()
        if cleaned:
            items.append(cleaned)
    return items


def _normalize_format(value: Optional[str]) -> str:
    if value is None:
        return "csv"
    normalized = value.strip().lower()
    if normalized in OUTPUT_FORMATS:
        return normalized
    logger.warning("Invalid INVENTORY_FORMAT=%r, defaulting to csv", value)
    return "csv"


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or default).strip() or default


@dataclass(frozen=True)
class Settings:
    log_level: str

    # Identity
    azure_tenant_id: Optional[str]
    azure_client_id: Optional[str]
    azure_client_secret: Optional[str]
    azure_authority_host: str

    # Resource Manager
    azure_api_base: str
    azure_api_version_compute: str
    azure_api_version_network: str
    azure_api_version_resources: str
    azure_api_version_subscriptions: str
    azure_api_version_classic_compute: str
    request_timeout_sec: int

    # Inventory
    subscriptions: List[str]
    out_dir: Path
    output_format: str
    nic_slots: int
    include_classic: bool
    size_fetch_workers: int

    @property
    def azure_missing_envs(self) -> List[str]:
        missing = []
        if not self.azure_tenant_id:
            missing.append("AZURE_TENANT_ID")
        if not self.azure_client_id:
            missing.append("AZURE_CLIENT_ID")
        if not self.azure_client_secret:
            missing.append("AZURE_CLIENT_SECRET")
        return missing

    @property
    def azure_configured(self) -> bool:
        return not self.azure_missing_envs

    def summary(self) -> dict:
        """Non-secret view of the settings for logs and the run report."""
        return {
            "tenant_id": self.azure_tenant_id,
            "client_id": self.azure_client_id,
            "api_base": self.azure_api_base,
            "subscriptions": list(self.subscriptions),
            "out_dir": str(self.out_dir),
            "output_format": self.output_format,
            "nic_slots": self.nic_slots,
            "include_classic": self.include_classic,
        }


def _build_settings() -> Settings:
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    nic_slots = _ensure_range("INVENTORY_NIC_SLOTS", _as_int(os.getenv("INVENTORY_NIC_SLOTS"), 2), 1, 8)
    size_fetch_workers = _ensure_range(
        "SIZE_FETCH_WORKERS", _as_int(os.getenv("SIZE_FETCH_WORKERS"), 4), 1, 16
    )
    request_timeout_sec = _ensure_range(
        "REQUEST_TIMEOUT_SEC", _as_int(os.getenv("REQUEST_TIMEOUT_SEC"), 30), 1, 600
    )

    return Settings(
        log_level=log_level,
        azure_tenant_id=os.getenv("AZURE_TENANT_ID"),
        azure_client_id=os.getenv("AZURE_CLIENT_ID"),
        azure_client_secret=os.getenv("AZURE_CLIENT_SECRET"),
        azure_authority_host=_env_str("AZURE_AUTHORITY_HOST", "https://login.microsoftonline.com"),
        azure_api_base=_env_str("AZURE_API_BASE", "https://management.azure.com"),
        azure_api_version_compute=_env_str("AZURE_API_VERSION_COMPUTE", "2024-07-01"),
        azure_api_version_network=_env_str("AZURE_API_VERSION_NETWORK", "2024-05-01"),
        azure_api_version_resources=_env_str("AZURE_API_VERSION_RESOURCES", "2021-04-01"),
        azure_api_version_subscriptions=_env_str("AZURE_API_VERSION_SUBSCRIPTIONS", "2022-12-01"),
        azure_api_version_classic_compute=_env_str("AZURE_API_VERSION_CLASSIC_COMPUTE", "2017-04-01"),
        request_timeout_sec=request_timeout_sec,
        subscriptions=_split_list(os.getenv("AZURE_SUBSCRIPTIONS")),
        out_dir=Path(_env_str("INVENTORY_OUT_DIR", "./out")),
        output_format=_normalize_format(os.getenv("INVENTORY_FORMAT")),
        nic_slots=nic_slots,
        include_classic=_as_bool(os.getenv("INVENTORY_INCLUDE_CLASSIC"), default=True),
        size_fetch_workers=size_fetch_workers,
    )


def load_settings(env_file: Optional[str] = None) -> Settings:
    env_path = Path(env_file) if env_file else Path.cwd() / DEFAULT_ENV_FILE
    if env_path.exists():
        load_dotenv(env_path)
    elif env_file:
        logger.warning("Env file %s not found; using process environment only", env_path)
    return _build_settings()
