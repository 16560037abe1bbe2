"""Local state repository interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Callable, List, TypeVar

from provider_sync.models import LocalInstance

T = TypeVar('T')


class InventoryTransaction(ABC):
    """Handle for the operations allowed inside one isolated transaction."""

    @abstractmethod
    def count_port_mappings(self, instance_id: int) -> int:
        pass

    @abstractmethod
    def delete_port_mappings(self, instance_id: int) -> int:
        """Delete every port mapping of an instance. Returns the number deleted (may be zero)."""
        pass

    @abstractmethod
    def soft_delete_instance(self, instance: LocalInstance) -> None:
        pass


class LocalStateRepository(ABC):
    """Persisted inventory of instances and their port mappings."""

    @abstractmethod
    def find_non_terminal_instances(self, provider_id: int) -> List[LocalInstance]:
        """Instances of a provider that are not deleting or deleted.

        Raises:
            QueryError: If the inventory cannot be read
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Open an isolated transaction yielding an InventoryTransaction.

        Changes are committed when the block exits normally and discarded when
        it raises.
        """
        pass

    def run_in_transaction(self, fn: Callable[[InventoryTransaction], T]) -> T:
        """Run fn inside its own transaction and return its result."""
        with self.transaction() as tx:
            return fn(tx)
