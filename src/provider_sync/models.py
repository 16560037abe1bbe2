"""Data models for providers, instances and port mappings."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from provider_sync.status import DELETION_STATUSES, InstanceStatus


class Provider(BaseModel):
    """A compute backend whose instances are tracked locally."""

    id: int = Field(..., ge=1, description="Provider identifier")
    name: str = Field(..., min_length=1, max_length=64, pattern="^[A-Za-z0-9_.-]+$")
    type: str = Field("ec2", pattern="^(ec2)$", description="Backend type")
    status: str = Field("active", pattern="^(active|inactive)$")
    region: Optional[str] = Field(None, description="Provider region")
    profile: Optional[str] = Field(None, description="Credential profile name")
    endpoint_url: Optional[str] = Field(None, description="Override API endpoint")
    name_tag: str = Field("Name", min_length=1, description="Tag that carries the instance name")

    def is_active(self) -> bool:
        """Check if the provider may be reconciled."""
        return self.status == "active"


class RemoteInstance(BaseModel):
    """Instance as reported by the provider. Never persisted."""

    name: str = Field(..., description="Instance name, unique per provider")
    instance_id: Optional[str] = Field(None, description="Provider-side identifier")
    state: Optional[str] = Field(None, description="Provider-side state")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LocalInstance(BaseModel):
    """Locally persisted instance record."""

    id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1)
    provider_id: int = Field(..., ge=1)
    status: str = Field(InstanceStatus.CREATING)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete tombstone")

    def is_deleted(self) -> bool:
        """Check if the record is soft-deleted or on its way out."""
        return self.deleted_at is not None or self.status in DELETION_STATUSES


class PortMapping(BaseModel):
    """Forwarding rule owned by exactly one instance."""

    id: int = Field(..., ge=1)
    instance_id: int = Field(..., ge=1)
    provider_id: int = Field(..., ge=1)
    host_port: int = Field(..., ge=1, le=65535)
    guest_port: int = Field(..., ge=1, le=65535)
    protocol: str = Field("tcp", pattern="^(tcp|udp|both)$")
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Inventory(BaseModel):
    """Complete local inventory as stored on disk."""

    version: str = Field("1.0", description="Inventory file format version")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")
    instances: Dict[int, LocalInstance] = Field(default_factory=dict)
    port_mappings: Dict[int, PortMapping] = Field(default_factory=dict)
    next_instance_id: int = 1
    next_port_mapping_id: int = 1

    def add_instance(self, name: str, provider_id: int, status: str = InstanceStatus.CREATING) -> LocalInstance:
        """Create a new instance record with the next identifier."""
        instance = LocalInstance(
            id=self.next_instance_id, name=name, provider_id=provider_id, status=status
        )
        self.instances[instance.id] = instance
        self.next_instance_id += 1
        self.timestamp = datetime.utcnow()
        return instance

    def add_port_mapping(
        self,
        instance_id: int,
        host_port: int,
        guest_port: int,
        protocol: str = "tcp",
        description: Optional[str] = None,
    ) -> PortMapping:
        """Create a port mapping for an existing instance."""
        instance = self.instances.get(instance_id)
        if instance is None:
            raise KeyError(f"Instance not found: {instance_id}")

        mapping = PortMapping(
            id=self.next_port_mapping_id,
            instance_id=instance_id,
            provider_id=instance.provider_id,
            host_port=host_port,
            guest_port=guest_port,
            protocol=protocol,
            description=description,
        )
        self.port_mappings[mapping.id] = mapping
        self.next_port_mapping_id += 1
        self.timestamp = datetime.utcnow()
        return mapping

    def get_instance(self, instance_id: int) -> Optional[LocalInstance]:
        return self.instances.get(instance_id)

    def instances_for_provider(self, provider_id: int, include_deleted: bool = False) -> List[LocalInstance]:
        """Instances owned by a provider, ordered by identifier."""
        return [
            instance
            for instance in sorted(self.instances.values(), key=lambda i: i.id)
            if instance.provider_id == provider_id and (include_deleted or not instance.is_deleted())
        ]

    def port_mappings_for_instance(self, instance_id: int) -> List[PortMapping]:
        return [m for m in self.port_mappings.values() if m.instance_id == instance_id]

    def remove_port_mappings(self, instance_id: int) -> int:
        """Hard-delete all port mappings of an instance and return how many were removed."""
        doomed = [m.id for m in self.port_mappings.values() if m.instance_id == instance_id]
        for mapping_id in doomed:
            del self.port_mappings[mapping_id]
        if doomed:
            self.timestamp = datetime.utcnow()
        return len(doomed)

    def soft_delete_instance(self, instance_id: int) -> LocalInstance:
        """Tombstone an instance so non-terminal queries no longer return it."""
        instance = self.instances.get(instance_id)
        if instance is None:
            raise KeyError(f"Instance not found: {instance_id}")

        now = datetime.utcnow()
        instance.status = InstanceStatus.DELETED
        instance.deleted_at = now
        instance.updated_at = now
        self.timestamp = now
        return instance

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Inventory":
        """Create Inventory from dictionary."""
        return cls.model_validate(data)


class SyncJob(BaseModel):
    """A queued request to reconcile one provider."""

    job_id: str = Field(..., min_length=1)
    provider_id: Optional[int] = Field(None, description="Provider to reconcile")
    task_data: Optional[str] = Field(None, description="Raw JSON payload attached to the job")

    @field_validator("task_data")
    @classmethod
    def validate_task_data(cls, v: Optional[str]) -> Optional[str]:
        """Blank payloads are treated as absent."""
        if v is not None and not v.strip():
            return None
        return v
