from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Subscription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="subscriptionId")
    name: str = Field(default="", alias="displayName")
    state: Optional[str] = None
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")


class MachineSize(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    number_of_cores: Optional[int] = Field(default=None, alias="numberOfCores")
    memory_in_mb: Optional[int] = Field(default=None, alias="memoryInMB")
    max_data_disk_count: Optional[int] = Field(default=None, alias="maxDataDiskCount")

    @property
    def memory_in_gb(self) -> Optional[int]:
        if self.memory_in_mb is None:
            return None
        return self.memory_in_mb // 1024

    def renamed(self, name: str) -> "MachineSize":
        return self.model_copy(update={"name": name})
