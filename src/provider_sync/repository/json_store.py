"""File-backed inventory repository with locking and atomic writes."""

import fcntl
import json
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from provider_sync.models import Inventory, LocalInstance, PortMapping
from provider_sync.repository.base import InventoryTransaction, LocalStateRepository
from provider_sync.status import InstanceStatus
from provider_sync.utils.errors import QueryError
from provider_sync.utils.logging import get_logger

logger = get_logger(__name__)


class StoreError(Exception):
    """Base exception for inventory store errors."""

    pass


class StoreLockError(StoreError):
    """Exception raised when the inventory file cannot be locked."""

    pass


class JsonTransaction(InventoryTransaction):
    """Transaction over a private working copy of the inventory."""

    def __init__(self, inventory: Inventory):
        self.inventory = inventory

    def count_port_mappings(self, instance_id: int) -> int:
        return len(self.inventory.port_mappings_for_instance(instance_id))

    def delete_port_mappings(self, instance_id: int) -> int:
        return self.inventory.remove_port_mappings(instance_id)

    def soft_delete_instance(self, instance: LocalInstance) -> None:
        try:
            self.inventory.soft_delete_instance(instance.id)
        except KeyError as e:
            raise StoreError(f"Cannot delete instance {instance.name}: {e}") from e


class JsonInventoryStore(LocalStateRepository):
    """Inventory kept in a single JSON file.

    Each transaction takes an exclusive lock, works on a fresh copy of the file
    and replaces the file atomically on commit. A failed transaction leaves the
    file untouched. The lock is held only for the lifetime of one transaction.
    """

    def __init__(self, path: str, lock_timeout: float = 30):
        """
        Initialize JsonInventoryStore.

        Args:
            path: Path to the inventory file
            lock_timeout: Seconds to wait for the file lock
        """
        self.path = Path(path)
        self.lock_timeout = lock_timeout

    def exists(self) -> bool:
        """Check if the inventory file exists."""
        return self.path.exists()

    def load(self) -> Inventory:
        """
        Load inventory from file. A missing file is an empty inventory.

        Raises:
            StoreError: If the file is corrupted or invalid
        """
        if not self.path.exists():
            return Inventory()

        try:
            with open(self.path, "r") as f:
                return Inventory.from_dict(json.load(f))
        except json.JSONDecodeError as e:
            raise StoreError(f"Failed to parse inventory file: {e}")
        except Exception as e:
            raise StoreError(f"Failed to load inventory file: {e}")

    def save(self, inventory: Inventory) -> None:
        """
        Save inventory to file.

        Raises:
            StoreError: If the inventory cannot be saved
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        try:
            # Write to temporary file first
            temp_path = self.path.with_suffix(".tmp")
            with open(temp_path, "w") as f:
                json.dump(inventory.to_dict(), f, indent=2)

            temp_path.replace(self.path)
        except Exception as e:
            raise StoreError(f"Failed to save inventory file: {e}")

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold an exclusive lock on the inventory for the duration of the block."""
        lock_path = self.path.with_suffix(".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)

        lock_fd = os.open(str(lock_path), os.O_CREAT | os.O_RDWR)
        try:
            start_time = time.time()
            while True:
                try:
                    fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.time() - start_time > self.lock_timeout:
                        raise StoreLockError(
                            f"Failed to acquire lock on inventory after {self.lock_timeout}s"
                        )
                    time.sleep(0.05)
            try:
                yield
            finally:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)
        finally:
            os.close(lock_fd)

    @contextmanager
    def transaction(self) -> Iterator[JsonTransaction]:
        with self._locked():
            tx = JsonTransaction(self.load())
            yield tx
            self.save(tx.inventory)

    def find_non_terminal_instances(self, provider_id: int) -> List[LocalInstance]:
        try:
            inventory = self.load()
        except StoreError as e:
            raise QueryError(f"Failed to query local instances: {e}", cause=e) from e

        instances = inventory.instances_for_provider(provider_id)
        logger.debug(
            f"Loaded {len(instances)} local instances for provider {provider_id}",
            extra={'provider_id': provider_id}
        )
        return instances

    def add_instance(self, name: str, provider_id: int, status: str = InstanceStatus.RUNNING) -> LocalInstance:
        """Record a provisioned instance."""
        with self.transaction() as tx:
            return tx.inventory.add_instance(name, provider_id, status)

    def add_port_mapping(
        self,
        instance_id: int,
        host_port: int,
        guest_port: int,
        protocol: str = "tcp",
        description: Optional[str] = None,
    ) -> PortMapping:
        """Record a port mapping for an existing instance."""
        with self.transaction() as tx:
            return tx.inventory.add_port_mapping(instance_id, host_port, guest_port, protocol, description)

    def get_instance(self, instance_id: int) -> Optional[LocalInstance]:
        return self.load().get_instance(instance_id)

    def list_instances(self, provider_id: int, include_deleted: bool = False) -> List[LocalInstance]:
        return self.load().instances_for_provider(provider_id, include_deleted=include_deleted)

    def list_port_mappings(self, instance_id: int) -> List[PortMapping]:
        return self.load().port_mappings_for_instance(instance_id)
