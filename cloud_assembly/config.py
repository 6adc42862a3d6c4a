from __future__ import annotations

import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


ENV_PREFIX = "CLOUD_ASSEMBLY_"
_TRUE_VALUES = {"1", "true", "yes", "on"}


class PublishingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    registry: Optional[str] = Field(
        None,
        description="Registry host, may contain ${AWS::AccountId}, ${AWS::Region} and ${AWS::Partition}",
    )
    account: Optional[str] = Field(None, description="Account the destinations belong to")
    region: Optional[str] = Field(None, description="Default region for destinations without one")
    partition: str = Field("aws", description="Partition used to resolve ${AWS::Partition}")
    insecure_registry: bool = Field(False, description="Talk plain http to the registry")
    registry_token: Optional[str] = Field(None, description="Pre-issued bearer token for registry lookups")
    subprocess_output_destination: Literal["stdio", "ignore"] = "stdio"
    request_timeout_sec: float = Field(30.0, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None, **overrides: Any) -> "PublishingConfig":
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in ("registry", "account", "region", "partition", "registry_token"):
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw:
                values[name] = raw
        insecure = env.get(f"{ENV_PREFIX}INSECURE_REGISTRY")
        if insecure is not None:
            values["insecure_registry"] = insecure.strip().lower() in _TRUE_VALUES
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
