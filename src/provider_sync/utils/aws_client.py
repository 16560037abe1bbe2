"""AWS session handling for EC2-backed providers."""

import boto3
from botocore.config import Config
from typing import Optional, Dict, Any
from dataclasses import dataclass
from provider_sync.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AWSCredentials:
    """Identity behind a provider's credentials."""
    account_id: str
    user_arn: str
    region: str
    profile: Optional[str] = None


class AWSClientManager:
    """Caches one boto3 session and its clients for a single provider."""
    
    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        session: Optional[boto3.Session] = None
    ):
        """Initialize AWS client manager.
        
        Args:
            profile: AWS profile name to use
            region: AWS region to use
            endpoint_url: Override endpoint (for EC2-compatible private clouds)
            session: Pre-built session, mainly for tests
        """
        self.profile = profile
        self.region = region
        self.endpoint_url = endpoint_url
        self._session = session
        self._clients: Dict[str, Any] = {}
        self._credentials: Optional[AWSCredentials] = None
        
        # botocore retries are disabled; RetryStrategy owns backoff
        self._boto_config = Config(
            retries={'mode': 'standard', 'max_attempts': 1},
            connect_timeout=10,
            read_timeout=60
        )
    
    @property
    def session(self) -> boto3.Session:
        """Get or create boto3 session."""
        if self._session is None:
            kwargs = {}
            if self.profile:
                kwargs['profile_name'] = self.profile
            if self.region:
                kwargs['region_name'] = self.region
            
            self._session = boto3.Session(**kwargs)
            logger.debug(f"Created AWS session - Region: {self._session.region_name}, "
                         f"Profile: {self.profile or 'default'}")
        
        return self._session
    
    def get_client(self, service_name: str):
        """Get a cached boto3 client for a service.
        
        Args:
            service_name: AWS service name (e.g., 'ec2', 'sts')
            
        Returns:
            Boto3 client for the service
        """
        if service_name not in self._clients:
            kwargs = {'config': self._boto_config}
            if self.region:
                kwargs['region_name'] = self.region
            if self.endpoint_url and service_name == 'ec2':
                kwargs['endpoint_url'] = self.endpoint_url
            self._clients[service_name] = self.session.client(service_name, **kwargs)
            logger.debug(f"Created {service_name} client")
        
        return self._clients[service_name]
    
    def validate_credentials(self, refresh: bool = False) -> AWSCredentials:
        """Validate credentials with STS and return the caller identity.
        
        Args:
            refresh: Call STS even if an identity was already validated
            
        Raises:
            NoCredentialsError: If no credentials are found
            PartialCredentialsError: If credentials are incomplete
            ClientError: If credentials are invalid
        """
        if self._credentials is not None and not refresh:
            return self._credentials
        
        identity = self.get_client('sts').get_caller_identity()
        self._credentials = AWSCredentials(
            account_id=identity['Account'],
            user_arn=identity['Arn'],
            region=self.region or self.session.region_name,
            profile=self.profile
        )
        logger.debug(f"AWS credentials validated - Account: {self._credentials.account_id}, "
                     f"User: {self._credentials.user_arn}")
        return self._credentials
