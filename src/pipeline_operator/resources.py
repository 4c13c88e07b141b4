"""Managed resource kinds and their status."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from kubernetes.client import V1OwnerReference

from . import crd
from .conditions import Condition


class Kind(Enum):
    """The resource kinds this operator reconciles."""

    DATASET = (crd.KIND_DATASET, crd.PLURAL_DATASETS,
               (crd.CONDITION_CONTAINER_READY, crd.CONDITION_DATA_READY))
    MODEL = (crd.KIND_MODEL, crd.PLURAL_MODELS,
             (crd.CONDITION_CONTAINER_READY, crd.CONDITION_MODEL_READY))
    SERVER = (crd.KIND_SERVER, crd.PLURAL_SERVERS,
              (crd.CONDITION_CONTAINER_READY, crd.CONDITION_SERVER_READY))

    def __init__(self, kind_name, plural, required_conditions):
        self.kind_name = kind_name
        self.plural = plural
        self.required_conditions = required_conditions

    @classmethod
    def from_name(cls, kind_name):
        for kind in cls:
            if kind.kind_name == kind_name:
                return kind
        raise ValueError(f"Unknown kind: {kind_name}")


@dataclass
class ResourceStatus:
    ready: bool = False
    url: str = ""
    checksum: str = ""
    observed_generation: Optional[int] = None
    conditions: List[Condition] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            ready=bool(data.get("ready", False)),
            url=data.get("url") or "",
            checksum=data.get("checksum") or "",
            observed_generation=data.get("observedGeneration"),
            conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
        )

    def to_dict(self):
        data = {
            "ready": self.ready,
            "conditions": [c.to_dict() for c in self.conditions],
        }
        if self.url:
            data["url"] = self.url
        if self.checksum:
            data["checksum"] = self.checksum
        if self.observed_generation is not None:
            data["observedGeneration"] = self.observed_generation
        return data


@dataclass
class ManagedResource:
    """A Dataset, Model or Server as read from the API server."""

    kind: Kind
    name: str
    namespace: str
    uid: str
    spec: dict
    status: ResourceStatus
    generation: Optional[int] = None
    resource_version: Optional[str] = None

    @classmethod
    def from_body(cls, kind, body):
        metadata = body.get("metadata") or {}
        return cls(
            kind=kind,
            name=metadata["name"],
            namespace=metadata.get("namespace", "default"),
            uid=metadata.get("uid", ""),
            spec=dict(body.get("spec") or {}),
            status=ResourceStatus.from_dict(body.get("status")),
            generation=metadata.get("generation"),
            resource_version=metadata.get("resourceVersion"),
        )

    @property
    def container(self):
        return self.spec.get("container") or {}

    @property
    def params(self):
        return self.spec.get("params") or {}

    def owner_reference(self):
        """Owner reference for cascade deletion of dependents."""
        return V1OwnerReference(
            api_version=crd.API_VERSION,
            kind=self.kind.kind_name,
            name=self.name,
            uid=self.uid,
            controller=True,
            block_owner_deletion=True,
        )

    def child_name(self, suffix):
        return f"{self.name}-{suffix}"

    def labels(self):
        return {
            crd.LABEL_MANAGED_BY: crd.MANAGED_BY,
            crd.LABEL_OWNER_KIND: self.kind.kind_name.lower(),
            crd.LABEL_OWNER_NAME: self.name,
        }
