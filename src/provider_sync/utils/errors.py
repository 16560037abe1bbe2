"""Error handling framework for reconciliation passes."""

import logging
from typing import Optional, Dict, Any, List
from enum import Enum
from dataclasses import dataclass
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)
from provider_sync.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during a reconciliation pass."""
    CONFIGURATION = "configuration"
    CONNECTIVITY = "connectivity"
    CREDENTIAL = "credential"
    PERMISSION = "permission"
    QUERY = "query"
    TRANSACTION = "transaction"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Pass cannot continue
    ERROR = "error"  # One orphan failed but the pass continues
    WARNING = "warning"  # Non-fatal issue
    INFO = "info"  # Informational message


@dataclass
class ErrorContext:
    """Context information for an error."""
    provider_id: Optional[int] = None
    provider_name: Optional[str] = None
    instance_id: Optional[int] = None
    instance_name: Optional[str] = None
    operation: Optional[str] = None
    request_id: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class SyncError(Exception):
    """Base exception for reconciliation errors."""
    
    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize sync error.
        
        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []
    
    def is_fatal(self) -> bool:
        """Check if this error aborts the whole pass."""
        return self.severity == ErrorSeverity.CRITICAL
    
    def to_user_message(self) -> str:
        """Convert error to user-friendly message.
        
        Returns:
            Formatted error message for display to user
        """
        lines = [f"{self.severity.value.upper()}: {self.message}"]
        
        if self.context.provider_name:
            lines.append(f"   Provider: {self.context.provider_name}")
        if self.context.instance_name:
            lines.append(f"   Instance: {self.context.instance_name}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")
        
        if self.cause:
            lines.append(f"   Cause: {str(self.cause)}")
        
        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")
        
        return "\n".join(lines)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization.
        
        Returns:
            Dictionary representation of the error
        """
        return {
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': {
                'provider_id': self.context.provider_id,
                'provider_name': self.context.provider_name,
                'instance_id': self.context.instance_id,
                'instance_name': self.context.instance_name,
                'operation': self.context.operation,
                'request_id': self.context.request_id,
                'additional_info': self.context.additional_info
            },
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class ConfigurationError(SyncError):
    """Error in configuration file, job data or provider selection."""
    
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class ConnectivityError(SyncError):
    """Provider could not be reached or authenticated."""
    
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=kwargs.pop('category', ErrorCategory.CONNECTIVITY),
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class QueryError(SyncError):
    """Local inventory could not be read."""
    
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.QUERY,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class PerOrphanTransactionError(SyncError):
    """Cleanup transaction for a single orphan failed and was rolled back."""
    
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.TRANSACTION,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )


class PortMappingCleanupError(SyncError):
    """Port mappings of an orphan could not be deleted; the instance cleanup still proceeds."""
    
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.TRANSACTION,
            severity=ErrorSeverity.WARNING,
            **kwargs
        )


class ReconciliationCancelled(SyncError):
    """The pass observed a cancellation request and stopped early."""
    
    def __init__(self, message: str = "Reconciliation cancelled", **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CANCELLED,
            severity=ErrorSeverity.INFO,
            **kwargs
        )


class ErrorHandler:
    """Converts provider and transport exceptions into sync errors."""
    
    # Mapping of AWS error codes to error categories and suggestions
    AWS_ERROR_MAPPING = {
        'InvalidClientTokenId': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'Provider credentials are invalid or expired',
            'suggestions': [
                'Check that the provider profile is correctly configured',
                'Verify credentials using: aws sts get-caller-identity',
                'Update credentials if they have expired'
            ]
        },
        'AuthFailure': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'Provider rejected the credentials',
            'suggestions': [
                'Verify the access key pair belongs to an active user',
                'Check the system clock; signatures are time sensitive'
            ]
        },
        'SignatureDoesNotMatch': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'Credential signature is invalid',
            'suggestions': [
                'Verify your secret access key is correct',
                'Regenerate credentials if necessary'
            ]
        },
        'ExpiredToken': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'Session token has expired',
            'suggestions': [
                'Refresh your session credentials',
                'Re-authenticate with your identity provider'
            ]
        },
        'AccessDenied': {
            'category': ErrorCategory.PERMISSION,
            'message': 'Access denied - insufficient permissions',
            'suggestions': [
                'Grant ec2:DescribeInstances to the provider identity',
                'Review service control policies if using AWS Organizations'
            ]
        },
        'UnauthorizedOperation': {
            'category': ErrorCategory.PERMISSION,
            'message': 'Operation not authorized',
            'suggestions': [
                'Add the required IAM permission for instance listing',
                'Verify you are operating in the correct region'
            ]
        },
        'RequestLimitExceeded': {
            'category': ErrorCategory.CONNECTIVITY,
            'message': 'Provider API rate limit exceeded',
            'suggestions': [
                'Reduce the number of providers reconciled in parallel',
                'Retry later (automatic retry enabled)'
            ]
        },
        'RequestTimeout': {
            'category': ErrorCategory.CONNECTIVITY,
            'message': 'Request timed out',
            'suggestions': [
                'Check your network connectivity',
                'Retry the operation (automatic retry enabled)'
            ]
        },
        'ServiceUnavailable': {
            'category': ErrorCategory.CONNECTIVITY,
            'message': 'Provider service temporarily unavailable',
            'suggestions': [
                'Wait a few moments and retry',
                'Check the provider status page'
            ]
        }
    }
    
    def __init__(self):
        self.logger = get_logger(__name__)
    
    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> SyncError:
        """Handle a provider-side exception and convert it to a SyncError.
        
        Args:
            error: The exception to handle
            context: Additional context about where the error occurred
            
        Returns:
            SyncError with categorization and suggestions
        """
        context = context or ErrorContext()
        
        if isinstance(error, SyncError):
            return error
        
        if isinstance(error, ClientError):
            return self._handle_client_error(error, context)
        
        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return ConnectivityError(
                message=f'Provider credentials missing: {str(error)}',
                category=ErrorCategory.CREDENTIAL,
                context=context,
                cause=error,
                suggestions=[
                    'Configure credentials using: aws configure',
                    'Set a profile on the provider entry in the configuration file'
                ]
            )
        
        if isinstance(error, (EndpointConnectionError, ConnectionError, TimeoutError)):
            return ConnectivityError(
                message=f'Provider unreachable: {str(error)}',
                context=context,
                cause=error,
                suggestions=[
                    'Check your network connection',
                    'Verify the provider region and endpoint are correct',
                    'Retry the operation (automatic retry enabled)'
                ]
            )
        
        return ConnectivityError(
            message=f'Provider request failed: {str(error)}',
            category=ErrorCategory.UNKNOWN,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )
    
    def _handle_client_error(
        self,
        error: ClientError,
        context: ErrorContext
    ) -> ConnectivityError:
        """Handle a botocore ClientError.
        
        Args:
            error: The ClientError
            context: Error context
            
        Returns:
            Categorized ConnectivityError
        """
        error_code = error.response.get('Error', {}).get('Code', 'Unknown')
        error_message = error.response.get('Error', {}).get('Message', str(error))
        context.request_id = error.response.get('ResponseMetadata', {}).get('RequestId')
        
        error_info = self.AWS_ERROR_MAPPING.get(error_code)
        
        if error_info:
            return ConnectivityError(
                message=f"{error_info['message']}: {error_message}",
                category=error_info['category'],
                context=context,
                cause=error,
                suggestions=error_info['suggestions']
            )
        
        return ConnectivityError(
            message=f"Provider error ({error_code}): {error_message}",
            context=context,
            cause=error,
            suggestions=[
                'Check the provider documentation for this error code',
                f'Request ID: {context.request_id}'
            ]
        )
    
    def log_error(
        self,
        error: SyncError,
        logger: Optional[logging.Logger] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        """Log an error at the level its severity calls for.
        
        Args:
            error: The error to log
            logger: Logger to write to instead of this handler's own
            extra: Structured fields attached to the records
        """
        logger = logger or self.logger
        log_message = error.to_user_message()
        
        if error.is_fatal() or error.severity == ErrorSeverity.ERROR:
            logger.error(log_message, extra=extra)
        elif error.severity == ErrorSeverity.WARNING:
            logger.warning(log_message, extra=extra)
        else:
            logger.info(log_message, extra=extra)
        
        logger.debug(f"Error details: {error.to_dict()}", extra=extra)


# Global error handler instance
error_handler = ErrorHandler()
