"""Caller-side orchestration of reconciliation passes across providers."""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Union

from provider_sync.cancellation import CancellationToken
from provider_sync.config.parser import Config
from provider_sync.driver import ReconcileStatus, ReconciliationDriver, ReconciliationResult, compose_summary
from provider_sync.models import Provider, SyncJob
from provider_sync.providers import get_lister
from provider_sync.providers.base import RemoteStateLister
from provider_sync.repository.base import LocalStateRepository
from provider_sync.repository.json_store import JsonInventoryStore
from provider_sync.sinks import CompletionSink, ProgressSink
from provider_sync.utils.errors import ConfigurationError, ErrorContext
from provider_sync.utils.logging import get_logger
from provider_sync.utils.retry import RetryStrategy

logger = get_logger(__name__)

ListerFactory = Callable[[Provider], RemoteStateLister]


class SyncService:
    """Builds drivers from configuration and runs passes.

    At most one pass per provider is in flight at a time; passes for
    different providers may run concurrently.
    """

    def __init__(
        self,
        config: Config,
        repository: Optional[LocalStateRepository] = None,
        lister_factory: Optional[ListerFactory] = None,
        progress_sink: Optional[ProgressSink] = None,
        completion_sink: Optional[CompletionSink] = None
    ):
        """Initialize sync service.

        Args:
            config: Loaded configuration
            repository: Inventory to reconcile; defaults to the configured JSON store
            lister_factory: Builds a remote lister for a provider; defaults to the type registry
            progress_sink: Receives job progress milestones
            completion_sink: Receives job outcomes
        """
        self.config = config
        self.repository = repository or JsonInventoryStore(
            config.store.path, lock_timeout=config.store.lock_timeout
        )
        self.retry_strategy = RetryStrategy(
            max_retries=config.retry.max_retries,
            base_delay=config.retry.base_delay,
            max_delay=config.retry.max_delay,
            jitter=config.retry.jitter
        )
        self.lister_factory = lister_factory or (
            lambda provider: get_lister(provider, self.retry_strategy)
        )
        self.progress_sink = progress_sink
        self.completion_sink = completion_sink
        self._listers: Dict[int, RemoteStateLister] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    def lister_for(self, provider: Provider) -> RemoteStateLister:
        with self._guard:
            if provider.id not in self._listers:
                self._listers[provider.id] = self.lister_factory(provider)
            return self._listers[provider.id]

    def driver_for(self, provider: Provider) -> ReconciliationDriver:
        return ReconciliationDriver(
            lister=self.lister_for(provider),
            repository=self.repository,
            progress_sink=self.progress_sink,
            completion_sink=self.completion_sink
        )

    def _lock_for(self, provider_id: int) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(provider_id, threading.Lock())

    def check_provider(self, ref: Union[int, str]) -> Provider:
        """Run only the connectivity check for a provider.

        Raises:
            ConfigurationError: If the provider is unknown
            ConnectivityError: If the provider cannot be reached
        """
        provider = self.config.get_provider(ref)
        self.lister_for(provider).check_connection(provider)
        return provider

    def sync_provider(
        self,
        ref: Union[int, str],
        job_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> ReconciliationResult:
        """Run one reconciliation job for a provider.

        Raises:
            ConfigurationError: If the provider is unknown
        """
        provider = self.config.get_provider(ref)
        return self._run(provider, job_id, cancel_token)

    def sync_all(
        self,
        parallel: bool = True,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[ReconciliationResult]:
        """Reconcile every active provider. Results follow configuration order."""
        providers = self.config.active_providers()
        if not providers:
            logger.info("No active providers configured")
            return []

        if not parallel or len(providers) == 1:
            return [self._run(provider, None, cancel_token) for provider in providers]

        max_workers = min(self.config.sync.max_parallel_providers, len(providers))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(self._run, provider, None, cancel_token)
                for provider in providers
            ]
            return [future.result() for future in futures]

    def _run(
        self,
        provider: Provider,
        job_id: Optional[str],
        cancel_token: Optional[CancellationToken]
    ) -> ReconciliationResult:
        job = SyncJob(job_id=job_id or uuid.uuid4().hex[:12], provider_id=provider.id)

        lock = self._lock_for(provider.id)
        if not lock.acquire(blocking=False):
            result = ReconciliationResult(
                provider_id=provider.id,
                provider_name=provider.name,
                status=ReconcileStatus.FAILED,
                error=ConfigurationError(
                    f"A reconciliation pass for provider {provider.name} is already running",
                    context=ErrorContext(provider_id=provider.id, provider_name=provider.name)
                )
            )
            result.summary = compose_summary(result)
            logger.warning(result.summary)
            return result

        try:
            return self.driver_for(provider).run_job(job, provider, cancel_token)
        finally:
            lock.release()
