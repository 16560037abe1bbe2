"""Utility modules for logging, error handling, retries and AWS sessions."""

from provider_sync.utils.aws_client import AWSClientManager, AWSCredentials
from provider_sync.utils.retry import RetryStrategy
from provider_sync.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    SyncError,
    ConfigurationError,
    ConnectivityError,
    QueryError,
    PerOrphanTransactionError,
    PortMappingCleanupError,
    ReconciliationCancelled,
    ErrorHandler,
    error_handler
)
from provider_sync.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # AWS Client
    'AWSClientManager',
    'AWSCredentials',
    
    # Retry
    'RetryStrategy',
    
    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'SyncError',
    'ConfigurationError',
    'ConnectivityError',
    'QueryError',
    'PerOrphanTransactionError',
    'PortMappingCleanupError',
    'ReconciliationCancelled',
    'ErrorHandler',
    'error_handler',
    
    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
