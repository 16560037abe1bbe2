"""Example usage of the reconciliation engine with an in-memory provider."""

import tempfile
from pathlib import Path

from provider_sync.cancellation import CancellationToken
from provider_sync.driver import ReconciliationDriver
from provider_sync.models import Provider, RemoteInstance, SyncJob
from provider_sync.providers.base import RemoteStateLister
from provider_sync.repository import JsonInventoryStore
from provider_sync.status import InstanceStatus, compute_quota_usage
from provider_sync.utils import setup_logging


class StaticLister(RemoteStateLister):
    """Provider that always reports the same instances."""

    def __init__(self, names):
        self.names = names

    def check_connection(self, provider):
        pass

    def list_instances(self, provider, cancel_token=None):
        return [RemoteInstance(name=name) for name in self.names]


def seed_inventory(store: JsonInventoryStore) -> None:
    web = store.add_instance("web-01", 1, InstanceStatus.RUNNING)
    store.add_port_mapping(web.id, 8080, 80, description="http")

    db = store.add_instance("db-01", 1, InstanceStatus.RUNNING)
    store.add_port_mapping(db.id, 15432, 5432)
    store.add_port_mapping(db.id, 2222, 22)

    store.add_instance("batch-01", 1, InstanceStatus.CREATING)


def example_single_pass(store: JsonInventoryStore):
    """Example: One pass where the provider lost two instances."""
    print("=== Single Reconciliation Pass ===")

    provider = Provider(id=1, name="aws-east", region="us-east-1")
    driver = ReconciliationDriver(StaticLister(["web-01"]), store)

    result = driver.run_job(SyncJob(job_id="example-1", provider_id=provider.id), provider)

    print(f"✓ Status: {result.status.value}")
    print(f"  Checked: {result.checked_count}")
    print(f"  Cleaned instances: {', '.join(result.cleaned_instance_names) or 'none'}")
    print(f"  Cleaned port mappings: {result.cleaned_port_mapping_count}")
    print(f"  Summary: {result.summary}")


def example_idempotent_rerun(store: JsonInventoryStore):
    """Example: Running again with the same provider state finds nothing."""
    print("\n=== Re-run ===")

    provider = Provider(id=1, name="aws-east", region="us-east-1")
    result = ReconciliationDriver(StaticLister(["web-01"]), store).reconcile(provider)

    print(f"✓ {result.summary}")


def example_cancelled_pass(store: JsonInventoryStore):
    """Example: A pass cancelled before it starts listing."""
    print("\n=== Cancelled Pass ===")

    token = CancellationToken()
    token.cancel("maintenance window closed")

    provider = Provider(id=1, name="aws-east", region="us-east-1")
    result = ReconciliationDriver(StaticLister([]), store).reconcile(provider, token)

    print(f"✓ Status: {result.status.value} ({result.cancel_reason})")


def example_quota(store: JsonInventoryStore):
    """Example: Quota usage after cleanup."""
    print("\n=== Quota Usage ===")

    usage = compute_quota_usage(i.status for i in store.list_instances(1, include_deleted=True))
    print(f"  Used: {usage.used}  Pending: {usage.pending}  Total: {usage.total}")


if __name__ == "__main__":
    setup_logging("warning", log_dir=None)

    with tempfile.TemporaryDirectory() as workdir:
        store = JsonInventoryStore(str(Path(workdir) / "inventory.json"))
        seed_inventory(store)

        example_single_pass(store)
        example_idempotent_rerun(store)
        example_cancelled_pass(store)
        example_quota(store)
