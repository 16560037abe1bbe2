"""Progress and completion sinks for reconciliation jobs."""

from abc import ABC, abstractmethod
from typing import Optional

from provider_sync.utils.errors import SyncError
from provider_sync.utils.logging import get_logger


class ProgressSink(ABC):
    """Receives coarse progress milestones. Purely observational."""

    @abstractmethod
    def report_progress(self, job_id: str, percent: int, message: str) -> None:
        pass


class CompletionSink(ABC):
    """Receives the final outcome of a job."""

    @abstractmethod
    def report_completion(
        self,
        job_id: str,
        success: bool,
        summary: str,
        error: Optional[SyncError] = None
    ) -> None:
        pass


class LoggingProgressSink(ProgressSink):
    """Writes progress milestones to the log."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger(__name__)

    def report_progress(self, job_id: str, percent: int, message: str) -> None:
        self.logger.info(f"[{percent:3d}%] {message}", extra={'job_id': job_id})


class LoggingCompletionSink(CompletionSink):
    """Writes job outcomes to the log."""

    def __init__(self, logger=None):
        self.logger = logger or get_logger(__name__)

    def report_completion(
        self,
        job_id: str,
        success: bool,
        summary: str,
        error: Optional[SyncError] = None
    ) -> None:
        if success:
            self.logger.info(f"Job {job_id} completed: {summary}", extra={'job_id': job_id})
        else:
            self.logger.error(f"Job {job_id} failed: {summary}", extra={'job_id': job_id})
