"""Per-orphan cleanup with partial-failure isolation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from provider_sync.cancellation import CancellationToken
from provider_sync.models import LocalInstance
from provider_sync.repository.base import InventoryTransaction, LocalStateRepository
from provider_sync.utils.errors import (
    ErrorContext,
    PerOrphanTransactionError,
    PortMappingCleanupError,
    SyncError,
    error_handler,
)
from provider_sync.utils.logging import get_logger


class WarningKind(Enum):
    """Kinds of non-fatal events surfaced by a pass."""
    PORT_MAPPING_CLEANUP_FAILED = "port_mapping_cleanup_failed"
    DUPLICATE_REMOTE_NAME = "duplicate_remote_name"


@dataclass
class SyncWarning:
    """Non-fatal event worth surfacing to operators and telemetry."""

    kind: WarningKind
    message: str
    instance_id: Optional[int] = None
    instance_name: Optional[str] = None
    error: Optional[SyncError] = None


class OrphanStatus(Enum):
    """Outcome of cleaning one orphan."""
    CLEANED = "cleaned"
    FAILED = "failed"


@dataclass
class OrphanOutcome:
    """Result of one orphan's cleanup transaction."""

    instance_id: int
    instance_name: str
    status: OrphanStatus
    port_mappings_found: int = 0
    port_mappings_removed: int = 0
    error: Optional[SyncError] = None
    warnings: List[SyncWarning] = field(default_factory=list)

    def is_cleaned(self) -> bool:
        return self.status == OrphanStatus.CLEANED


@dataclass
class CleanupResult:
    """Accumulated outcome of cleaning an orphan set."""

    processed_count: int = 0
    cleaned_instances: int = 0
    cleaned_port_mappings: int = 0
    cleaned_instance_names: List[str] = field(default_factory=list)
    outcomes: List[OrphanOutcome] = field(default_factory=list)
    warnings: List[SyncWarning] = field(default_factory=list)
    cancelled: bool = False
    remaining_count: int = 0

    def record(self, outcome: OrphanOutcome) -> None:
        """Fold one orphan outcome into the running totals."""
        self.outcomes.append(outcome)
        self.warnings.extend(outcome.warnings)

        if outcome.is_cleaned():
            self.processed_count += 1
            self.cleaned_instances += 1
            self.cleaned_port_mappings += outcome.port_mappings_removed
            self.cleaned_instance_names.append(outcome.instance_name)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OrphanStatus.FAILED)

    @property
    def attempted_count(self) -> int:
        return len(self.outcomes)


class OrphanCleaner:
    """Removes orphaned instances one transaction at a time.

    A failure on one orphan rolls back only that orphan's transaction;
    cleanups already committed for other orphans stay committed and the
    remaining orphans are still attempted.
    """

    def __init__(self, repository: LocalStateRepository, logger=None):
        """Initialize orphan cleaner.

        Args:
            repository: Inventory the orphans are removed from
            logger: Logger to report per-orphan outcomes to
        """
        self.repository = repository
        self.logger = logger or get_logger(__name__)

    def clean(
        self,
        orphans: List[LocalInstance],
        cancel_token: Optional[CancellationToken] = None
    ) -> CleanupResult:
        """Clean every orphan, isolating failures per orphan.

        Cancellation is checked before each orphan's transaction; when it is
        observed the remaining orphans are abandoned and the partial result is
        returned with ``cancelled`` set.
        """
        result = CleanupResult()

        for index, orphan in enumerate(orphans):
            if cancel_token is not None and cancel_token.is_cancelled:
                result.cancelled = True
                result.remaining_count = len(orphans) - index
                self.logger.warning(
                    f"Cleanup cancelled with {result.remaining_count} orphans remaining"
                )
                break

            result.record(self.clean_orphan(orphan))

        return result

    def clean_orphan(self, orphan: LocalInstance) -> OrphanOutcome:
        """Remove one orphan's port mappings and instance row in a single transaction."""
        log_fields = {'instance_id': orphan.id, 'instance_name': orphan.name}
        warnings: List[SyncWarning] = []

        def cleanup(tx: InventoryTransaction):
            port_count = tx.count_port_mappings(orphan.id)

            # Best effort: a failure here must not block removing the instance
            removed = 0
            try:
                removed = tx.delete_port_mappings(orphan.id)
            except Exception as e:
                warning = PortMappingCleanupError(
                    f"Failed to delete {port_count} port mappings of orphaned instance {orphan.name}",
                    context=ErrorContext(
                        instance_id=orphan.id,
                        instance_name=orphan.name,
                        operation="delete_port_mappings"
                    ),
                    cause=e
                )
                error_handler.log_error(warning, self.logger, log_fields)
                warnings.append(SyncWarning(
                    kind=WarningKind.PORT_MAPPING_CLEANUP_FAILED,
                    message=f"{warning.message}: {e}",
                    instance_id=orphan.id,
                    instance_name=orphan.name,
                    error=warning
                ))

            try:
                tx.soft_delete_instance(orphan)
            except Exception as e:
                raise PerOrphanTransactionError(
                    f"Failed to delete orphaned instance record {orphan.name}: {e}",
                    context=ErrorContext(
                        instance_id=orphan.id,
                        instance_name=orphan.name,
                        operation="soft_delete_instance"
                    ),
                    cause=e
                ) from e

            return port_count, removed

        try:
            port_count, removed = self.repository.run_in_transaction(cleanup)
        except Exception as e:
            if isinstance(e, PerOrphanTransactionError):
                error = e
            else:
                error = PerOrphanTransactionError(
                    f"Cleanup transaction for orphaned instance {orphan.name} failed: {e}",
                    context=ErrorContext(
                        instance_id=orphan.id,
                        instance_name=orphan.name,
                        operation="cleanup_transaction"
                    ),
                    cause=e
                )
            error_handler.log_error(error, self.logger, log_fields)
            return OrphanOutcome(
                instance_id=orphan.id,
                instance_name=orphan.name,
                status=OrphanStatus.FAILED,
                error=error,
                warnings=warnings
            )

        self.logger.info(
            f"Cleaned orphaned instance {orphan.name} ({removed}/{port_count} port mappings removed)",
            extra=log_fields
        )
        return OrphanOutcome(
            instance_id=orphan.id,
            instance_name=orphan.name,
            status=OrphanStatus.CLEANED,
            port_mappings_found=port_count,
            port_mappings_removed=removed,
            warnings=warnings
        )
