from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Field aliases keep the JSON keys read by the status page.


class ServiceStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(..., alias="Path", description="Routed path prefix")
    port: int = Field(-1, alias="Port", description="Backend port, -1 for the service default")
    map_prefix: str = Field("", alias="Map", description="Prefix the path is rewritten to")
    description: str = Field("", alias="Description")


class PodStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pod_name: str = Field(..., alias="PodName")
    ip: str = Field(..., alias="IP")


class EndpointStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., alias="Name", description="namespace/name of the service")
    port: int = Field(..., alias="Port")
    backends: list[PodStatus] = Field(default_factory=list, alias="Backends", description="Pods in index order")
