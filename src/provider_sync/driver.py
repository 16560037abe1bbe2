"""Reconciliation pass orchestration for a single provider."""

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from provider_sync.cancellation import CancellationToken
from provider_sync.cleaner import OrphanCleaner, OrphanOutcome, SyncWarning, WarningKind
from provider_sync.drift import detect_drift
from provider_sync.models import LocalInstance, Provider, RemoteInstance, SyncJob
from provider_sync.providers.base import RemoteStateLister
from provider_sync.repository.base import LocalStateRepository
from provider_sync.sinks import CompletionSink, LoggingCompletionSink, LoggingProgressSink, ProgressSink
from provider_sync.utils.errors import (
    ConfigurationError,
    ErrorContext,
    ErrorSeverity,
    ReconciliationCancelled,
    SyncError,
    error_handler,
)
from provider_sync.utils.logging import get_logger


class ReconcileStatus(Enum):
    """Status of a reconciliation pass."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation pass for one provider."""

    provider_id: int
    provider_name: str
    status: ReconcileStatus = ReconcileStatus.SUCCESS
    checked_count: int = 0
    orphan_count: int = 0
    processed_orphan_count: int = 0
    cleaned_instance_count: int = 0
    cleaned_port_mapping_count: int = 0
    cleaned_instance_names: List[str] = field(default_factory=list)
    failed_orphan_count: int = 0
    outcomes: List[OrphanOutcome] = field(default_factory=list)
    warnings: List[SyncWarning] = field(default_factory=list)
    error: Optional[SyncError] = None
    cancel_reason: Optional[str] = None
    summary: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: float = 0.0  # seconds

    def is_success(self) -> bool:
        return self.status == ReconcileStatus.SUCCESS

    def is_failed(self) -> bool:
        return self.status == ReconcileStatus.FAILED

    def is_cancelled(self) -> bool:
        return self.status == ReconcileStatus.CANCELLED

    def as_tuple(self) -> Tuple[int, int, int, int, List[str], Optional[SyncError]]:
        """(checked, processed orphans, cleaned instances, cleaned port mappings, names, error)."""
        return (
            self.checked_count,
            self.processed_orphan_count,
            self.cleaned_instance_count,
            self.cleaned_port_mapping_count,
            list(self.cleaned_instance_names),
            self.error,
        )


def compose_summary(result: ReconciliationResult) -> str:
    """Build the human-readable completion message for a pass."""
    prefix = f"Provider {result.provider_name} port mapping sync"

    if result.is_failed():
        message = result.error.message if result.error else "unknown error"
        return f"{prefix} failed: {message}"

    if result.is_cancelled() and not result.outcomes and result.orphan_count == 0:
        return f"{prefix} cancelled before cleanup started."

    parts = [f"{prefix} complete: checked {result.checked_count} instances"]

    if result.orphan_count == 0:
        parts.append(", no orphans found.")
    else:
        parts.append(
            f", found {result.orphan_count} orphaned instances, "
            f"cleaned {result.cleaned_instance_count} orphaned instances and "
            f"{result.cleaned_port_mapping_count} port mappings."
        )
        if result.failed_orphan_count:
            parts.append(f" {result.failed_orphan_count} could not be cleaned.")
        if result.cleaned_instance_names:
            parts.append(f" Cleaned instances: {', '.join(result.cleaned_instance_names)}")

    if result.is_cancelled():
        parts.append(
            f" Stopped early: cancelled after {len(result.outcomes)} of {result.orphan_count} orphans."
        )

    return "".join(parts)


class ReconciliationDriver:
    """Runs reconciliation passes: list both sides, detect drift, clean orphans."""

    def __init__(
        self,
        lister: RemoteStateLister,
        repository: LocalStateRepository,
        progress_sink: Optional[ProgressSink] = None,
        completion_sink: Optional[CompletionSink] = None,
        logger=None
    ):
        """Initialize reconciliation driver.

        Args:
            lister: Source of the provider's authoritative instance list
            repository: Local inventory to reconcile
            progress_sink: Receives job progress milestones
            completion_sink: Receives job outcomes
            logger: Logger for pass-level events
        """
        self.lister = lister
        self.repository = repository
        self.logger = logger or get_logger(__name__)
        self.progress_sink = progress_sink or LoggingProgressSink(self.logger)
        self.completion_sink = completion_sink or LoggingCompletionSink(self.logger)
        self.cleaner = OrphanCleaner(repository, logger=self.logger)

    def reconcile(
        self,
        provider: Provider,
        cancel_token: Optional[CancellationToken] = None
    ) -> ReconciliationResult:
        """Run one reconciliation pass for a provider.

        Connectivity and local query failures fail the pass with no cleanup
        attempted. Per-orphan failures never fail the pass. Cancellation stops
        the pass early without failing it.

        Returns:
            ReconciliationResult carrying counts, warnings and any fatal error
        """
        token = cancel_token or CancellationToken()
        log_fields = {'provider_id': provider.id, 'provider_name': provider.name}
        result = ReconciliationResult(
            provider_id=provider.id,
            provider_name=provider.name,
            start_time=datetime.utcnow()
        )

        self.logger.info(f"Starting reconciliation for provider {provider.name}", extra=log_fields)

        try:
            if not provider.is_active():
                raise ConfigurationError(
                    f"Provider {provider.name} is not active (status: {provider.status})",
                    context=ErrorContext(provider_id=provider.id, provider_name=provider.name)
                )

            self.lister.check_connection(provider)

            remote_instances, local_instances = self._list_both_sides(provider, token)
            self.logger.debug(
                f"Listed {len(remote_instances)} remote and {len(local_instances)} local instances",
                extra=log_fields
            )

            drift = detect_drift(remote_instances, local_instances)
            result.checked_count = drift.checked_count
            result.orphan_count = len(drift.orphans)

            for name in drift.duplicate_remote_names:
                message = f"Provider reported instance name {name} more than once; treated as one instance"
                self.logger.warning(message, extra=log_fields)
                result.warnings.append(SyncWarning(
                    kind=WarningKind.DUPLICATE_REMOTE_NAME,
                    message=message,
                    instance_name=name
                ))

            if not drift.has_orphans():
                self.logger.debug(f"Provider {provider.name} has no orphaned instances", extra=log_fields)
            else:
                self.logger.info(
                    f"Found {len(drift.orphans)} orphaned instances: {', '.join(drift.orphan_names)}",
                    extra=log_fields
                )
                cleanup = self.cleaner.clean(drift.orphans, token)

                result.processed_orphan_count = cleanup.processed_count
                result.cleaned_instance_count = cleanup.cleaned_instances
                result.cleaned_port_mapping_count = cleanup.cleaned_port_mappings
                result.cleaned_instance_names = cleanup.cleaned_instance_names
                result.failed_orphan_count = cleanup.failed_count
                result.outcomes = cleanup.outcomes
                result.warnings.extend(cleanup.warnings)

                if cleanup.cancelled:
                    result.status = ReconcileStatus.CANCELLED
                    result.cancel_reason = token.reason

        except ReconciliationCancelled as e:
            result.status = ReconcileStatus.CANCELLED
            result.cancel_reason = e.message
            self.logger.warning(e.message, extra=log_fields)

        except SyncError as e:
            result.status = ReconcileStatus.FAILED
            result.error = e
            error_handler.log_error(e, self.logger, log_fields)

        except Exception as e:
            result.status = ReconcileStatus.FAILED
            result.error = SyncError(
                message=f"Reconciliation failed unexpectedly: {str(e)}",
                severity=ErrorSeverity.CRITICAL,
                context=ErrorContext(provider_id=provider.id, provider_name=provider.name),
                cause=e
            )
            self.logger.exception(f"Reconciliation failed for provider {provider.name}", extra=log_fields)

        result.end_time = datetime.utcnow()
        result.duration = (result.end_time - result.start_time).total_seconds()
        result.summary = compose_summary(result)

        self.logger.info(
            f"Reconciliation for provider {provider.name} finished ({result.status.value}): "
            f"checked={result.checked_count} cleaned_instances={result.cleaned_instance_count} "
            f"cleaned_ports={result.cleaned_port_mapping_count}",
            extra=log_fields
        )
        return result

    def run_job(
        self,
        job: SyncJob,
        provider: Provider,
        cancel_token: Optional[CancellationToken] = None
    ) -> ReconciliationResult:
        """Run a reconciliation pass as a tracked job.

        Reports progress milestones while running and always reports
        completion, whether the pass succeeded or failed.
        """
        self.progress_sink.report_progress(job.job_id, 5, "Parsing job data...")

        try:
            self._validate_job(job, provider)
        except ConfigurationError as e:
            result = ReconciliationResult(
                provider_id=provider.id,
                provider_name=provider.name,
                status=ReconcileStatus.FAILED,
                error=e
            )
            result.summary = compose_summary(result)
            self._report_completion(job, result)
            return result

        self.progress_sink.report_progress(job.job_id, 10, "Loading provider...")
        self.progress_sink.report_progress(
            job.job_id, 20, f"Syncing port mappings of provider {provider.name}..."
        )

        result = self.reconcile(provider, cancel_token)

        if not result.is_failed():
            self.progress_sink.report_progress(job.job_id, 90, "Sync finished, generating report...")

        self._report_completion(job, result)
        return result

    def _validate_job(self, job: SyncJob, provider: Provider) -> None:
        context = ErrorContext(
            provider_id=provider.id,
            provider_name=provider.name,
            operation="parse_job",
            additional_info={'job_id': job.job_id}
        )

        if job.task_data is not None:
            try:
                payload = json.loads(job.task_data)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Failed to parse job data: {e}", context=context, cause=e)
            if not isinstance(payload, dict):
                raise ConfigurationError("Job data must be a JSON object", context=context)

        if job.provider_id is None:
            raise ConfigurationError("Job has no associated provider", context=context)

        if job.provider_id != provider.id:
            raise ConfigurationError(
                f"Job targets provider {job.provider_id} but was given provider {provider.id}",
                context=context
            )

    def _report_completion(self, job: SyncJob, result: ReconciliationResult) -> None:
        try:
            self.completion_sink.report_completion(
                job.job_id,
                not result.is_failed(),
                result.summary,
                result.error
            )
        except Exception as e:
            # The pass outcome stands even when the sink fails
            self.logger.error(f"Failed to report completion of job {job.job_id}: {e}")

    def _list_both_sides(
        self,
        provider: Provider,
        token: CancellationToken
    ) -> Tuple[List[RemoteInstance], List[LocalInstance]]:
        """List remote and local instances concurrently; both must succeed."""
        token.raise_if_cancelled("remote listing")

        with ThreadPoolExecutor(max_workers=2) as executor:
            remote_future = executor.submit(self.lister.list_instances, provider, token)
            local_future = executor.submit(self.repository.find_non_terminal_instances, provider.id)

            remote_instances = remote_future.result()
            local_instances = local_future.result()

        return remote_instances, local_instances
