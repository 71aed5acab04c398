from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field, field_validator


DNS_LABEL_RE = re.compile(r"^[a-z]([-a-z0-9]{0,61}[a-z0-9])?$")

APP_LABEL = "app"


def validate_name(name: str) -> None:
    if not DNS_LABEL_RE.match(name):
        raise ValueError(
            f"Invalid name {name!r}. Use lowercase letters/numbers and hyphen, starting with a letter (max 63 chars)."
        )


def app_selector(name: str) -> dict[str, str]:
    return {APP_LABEL: name}


class WorkloadSpec(BaseModel):
    name: str = Field(..., description="Workload name, unique within the namespace (dns-safe)")
    image: str = Field(..., min_length=1, description="Container image (name:tag)")
    port: int = Field(..., ge=1, le=65535, description="Container port the workload listens on")
    replicas: int = Field(1, ge=0, le=2**31 - 1)
    namespace: str = Field(..., description="Namespace the workload lives in")

    @field_validator("name", "namespace")
    @classmethod
    def _dns_label(cls, v: str) -> str:
        validate_name(v)
        return v

    @property
    def selector(self) -> dict[str, str]:
        return app_selector(self.name)


class ResourceKind(str, Enum):
    REPLICA_GROUP = "ReplicaGroup"
    SERVICE_ENDPOINT = "ServiceEndpoint"


@dataclass(frozen=True)
class ReplicaGroup:
    namespace: str
    name: str
    image: str
    port: int
    replicas: int
    labels: dict[str, str] = field(default_factory=dict)
    port_name: str = "http"
    termination_grace_period_s: int = 0
    uid: str | None = None

    kind = ResourceKind.REPLICA_GROUP


@dataclass(frozen=True)
class ServiceEndpoint:
    namespace: str
    name: str
    target_port: int
    selector: dict[str, str] = field(default_factory=dict)
    port: int = 80
    protocol: str = "TCP"
    port_name: str = "http"
    uid: str | None = None

    kind = ResourceKind.SERVICE_ENDPOINT


@dataclass(frozen=True)
class Instance:
    """A pod observed through a label selector. Only ever read, never written."""

    namespace: str
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    phase: str | None = None
    conditions: dict[str, str] = field(default_factory=dict)  # type -> "True"|"False"|"Unknown"

    @property
    def is_ready(self) -> bool:
        # Running is not enough; the kubelet must report Ready=True.
        return self.conditions.get("Ready") == "True"
