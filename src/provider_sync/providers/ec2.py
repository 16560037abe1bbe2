"""EC2-backed remote state lister."""

from typing import Dict, List, Optional

from provider_sync.cancellation import CancellationToken
from provider_sync.models import Provider, RemoteInstance
from provider_sync.providers.base import RemoteStateLister
from provider_sync.utils.aws_client import AWSClientManager
from provider_sync.utils.errors import ErrorContext, SyncError, error_handler
from provider_sync.utils.logging import get_logger
from provider_sync.utils.retry import RetryStrategy

logger = get_logger(__name__)

# Terminated instances linger in describe results for a while; they no longer exist
LIVE_INSTANCE_STATES = ["pending", "running", "stopping", "stopped"]


class EC2InstanceLister(RemoteStateLister):
    """Lists EC2 instances of one region, naming them by a configurable tag."""

    def __init__(
        self,
        retry_strategy: Optional[RetryStrategy] = None,
        client_manager: Optional[AWSClientManager] = None
    ):
        """Initialize EC2 lister.

        Args:
            retry_strategy: Backoff policy for transient provider errors
            client_manager: Pre-built client manager; one is created per provider otherwise
        """
        self.retry_strategy = retry_strategy or RetryStrategy()
        self._client_manager = client_manager
        self._managers: Dict[int, AWSClientManager] = {}
        self.logger = get_logger(__name__)

    def _manager_for(self, provider: Provider) -> AWSClientManager:
        if self._client_manager is not None:
            return self._client_manager
        if provider.id not in self._managers:
            self._managers[provider.id] = AWSClientManager(
                profile=provider.profile,
                region=provider.region,
                endpoint_url=provider.endpoint_url
            )
        return self._managers[provider.id]

    def check_connection(self, provider: Provider) -> None:
        manager = self._manager_for(provider)
        context = ErrorContext(
            provider_id=provider.id,
            provider_name=provider.name,
            operation="check_connection"
        )
        try:
            credentials = self.retry_strategy.execute_with_retry(
                manager.validate_credentials, refresh=True
            )
        except Exception as e:
            raise error_handler.handle_exception(e, context) from e

        self.logger.debug(
            f"Provider {provider.name} reachable as {credentials.user_arn}",
            extra={'provider_id': provider.id}
        )

    def list_instances(
        self,
        provider: Provider,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[RemoteInstance]:
        context = ErrorContext(
            provider_id=provider.id,
            provider_name=provider.name,
            operation="list_instances"
        )
        try:
            return self.retry_strategy.execute_with_retry(
                self._describe_instances, provider, cancel_token
            )
        except SyncError:
            raise
        except Exception as e:
            raise error_handler.handle_exception(e, context) from e

    def _describe_instances(
        self,
        provider: Provider,
        cancel_token: Optional[CancellationToken]
    ) -> List[RemoteInstance]:
        """Page through describe_instances and collect every live instance."""
        ec2 = self._manager_for(provider).get_client('ec2')
        paginator = ec2.get_paginator('describe_instances')
        page_iterator = paginator.paginate(
            Filters=[{'Name': 'instance-state-name', 'Values': LIVE_INSTANCE_STATES}]
        )

        instances = []
        for page in page_iterator:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled("remote listing")

            for reservation in page.get('Reservations', []):
                for instance in reservation.get('Instances', []):
                    instances.append(self._to_remote_instance(instance, provider.name_tag))

        return instances

    def _to_remote_instance(self, instance: dict, name_tag: str) -> RemoteInstance:
        tags = {tag['Key']: tag['Value'] for tag in instance.get('Tags', [])}
        instance_id = instance['InstanceId']

        return RemoteInstance(
            name=tags.get(name_tag, instance_id),
            instance_id=instance_id,
            state=instance.get('State', {}).get('Name'),
            metadata={
                'instance_type': instance.get('InstanceType'),
                'private_ip': instance.get('PrivateIpAddress'),
                'public_ip': instance.get('PublicIpAddress'),
                'tags': tags,
            }
        )
