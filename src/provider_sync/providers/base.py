"""Remote state lister interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from provider_sync.cancellation import CancellationToken
from provider_sync.models import Provider, RemoteInstance


class RemoteStateLister(ABC):
    """Lists the instances a provider currently knows about."""

    @abstractmethod
    def check_connection(self, provider: Provider) -> None:
        """Verify the provider is reachable and the credentials are accepted.

        Raises:
            ConnectivityError: If the provider cannot be reached or authenticated
        """
        pass

    @abstractmethod
    def list_instances(
        self,
        provider: Provider,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[RemoteInstance]:
        """Return the complete current set of remote instances.

        No partial result is ever returned: any failure raises.

        Raises:
            ConnectivityError: If the provider cannot be reached or authenticated
            ReconciliationCancelled: If cancellation was observed while listing
        """
        pass
