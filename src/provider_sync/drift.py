"""Detection of local instances the provider no longer reports."""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from provider_sync.models import LocalInstance, RemoteInstance


@dataclass
class DriftResult:
    """Outcome of comparing remote and local instance sets."""

    checked_count: int
    orphans: List[LocalInstance] = field(default_factory=list)
    duplicate_remote_names: List[str] = field(default_factory=list)

    def has_orphans(self) -> bool:
        return len(self.orphans) > 0

    @property
    def orphan_names(self) -> List[str]:
        return [orphan.name for orphan in self.orphans]


def build_remote_lookup(remote_instances: Iterable[RemoteInstance]) -> Dict[str, RemoteInstance]:
    """Map remote instance names to instances. Later duplicates replace earlier ones."""
    return {instance.name: instance for instance in remote_instances}


def find_duplicate_names(remote_instances: Iterable[RemoteInstance]) -> List[str]:
    counts = Counter(instance.name for instance in remote_instances)
    return sorted(name for name, count in counts.items() if count > 1)


def detect_drift(
    remote_instances: List[RemoteInstance],
    local_instances: List[LocalInstance]
) -> DriftResult:
    """Find local instances whose name is absent from the remote set.

    Only name existence matters: attributes are not compared, and a name the
    provider reports more than once still counts as a single existing
    instance. Duplicates are returned so the caller can surface them.

    Orphans are ordered by local instance id so cleanup order is stable.
    """
    remote_lookup = build_remote_lookup(remote_instances)

    orphans = [
        instance for instance in local_instances
        if instance.name not in remote_lookup
    ]
    orphans.sort(key=lambda instance: instance.id)

    return DriftResult(
        checked_count=len(local_instances),
        orphans=orphans,
        duplicate_remote_names=find_duplicate_names(remote_instances),
    )
