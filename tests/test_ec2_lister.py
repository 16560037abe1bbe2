"""Tests for the EC2 remote state lister using botocore's Stubber."""

import boto3
import pytest
from botocore.stub import Stubber

from provider_sync.cancellation import CancellationToken
from provider_sync.models import Provider
from provider_sync.providers import LISTER_TYPES, get_lister
from provider_sync.providers.ec2 import LIVE_INSTANCE_STATES, EC2InstanceLister
from provider_sync.utils.aws_client import AWSClientManager
from provider_sync.utils.errors import ConfigurationError, ConnectivityError, ErrorCategory, ReconciliationCancelled
from provider_sync.utils.retry import RetryStrategy

FILTERS = [{'Name': 'instance-state-name', 'Values': LIVE_INSTANCE_STATES}]


def ec2_instance(instance_id, name=None, state="running", tag_key="Name"):
    instance = {
        'InstanceId': instance_id,
        'InstanceType': 't3.micro',
        'State': {'Code': 16, 'Name': state},
        'PrivateIpAddress': '10.0.0.10',
    }
    if name is not None:
        instance['Tags'] = [{'Key': tag_key, 'Value': name}, {'Key': 'team', 'Value': 'infra'}]
    return instance


@pytest.fixture
def client_manager():
    session = boto3.Session(
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name="us-east-1"
    )
    return AWSClientManager(region="us-east-1", session=session)


@pytest.fixture
def ec2_stub(client_manager):
    with Stubber(client_manager.get_client('ec2')) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def sts_stub(client_manager):
    with Stubber(client_manager.get_client('sts')) as stubber:
        yield stubber
        stubber.assert_no_pending_responses()


@pytest.fixture
def lister(client_manager):
    retry = RetryStrategy(max_retries=2, base_delay=0.01, jitter=False, sleep=lambda delay: None)
    return EC2InstanceLister(retry_strategy=retry, client_manager=client_manager)


class TestListInstances:
    def test_names_from_tag(self, lister, provider, ec2_stub):
        ec2_stub.add_response(
            'describe_instances',
            {'Reservations': [{'Instances': [ec2_instance('i-1', 'vm-a'), ec2_instance('i-2', 'vm-b', 'stopped')]}]},
            expected_params={'Filters': FILTERS}
        )

        instances = lister.list_instances(provider)

        assert [i.name for i in instances] == ['vm-a', 'vm-b']
        assert instances[1].state == 'stopped'
        assert instances[0].instance_id == 'i-1'
        assert instances[0].metadata['tags']['team'] == 'infra'

    def test_untagged_falls_back_to_instance_id(self, lister, provider, ec2_stub):
        ec2_stub.add_response(
            'describe_instances',
            {'Reservations': [{'Instances': [ec2_instance('i-untagged')]}]},
            expected_params={'Filters': FILTERS}
        )

        assert [i.name for i in lister.list_instances(provider)] == ['i-untagged']

    def test_custom_name_tag(self, lister, ec2_stub):
        provider = Provider(id=1, name="aws-east", region="us-east-1", name_tag="hostname")
        ec2_stub.add_response(
            'describe_instances',
            {'Reservations': [{'Instances': [ec2_instance('i-1', 'web-01', tag_key='hostname')]}]},
            expected_params={'Filters': FILTERS}
        )

        assert [i.name for i in lister.list_instances(provider)] == ['web-01']

    def test_follows_pagination(self, lister, provider, ec2_stub):
        ec2_stub.add_response(
            'describe_instances',
            {'Reservations': [{'Instances': [ec2_instance('i-1', 'vm-a')]}], 'NextToken': 'page-2'},
            expected_params={'Filters': FILTERS}
        )
        ec2_stub.add_response(
            'describe_instances',
            {'Reservations': [{'Instances': [ec2_instance('i-2', 'vm-b')]}]},
            expected_params={'Filters': FILTERS, 'NextToken': 'page-2'}
        )

        assert [i.name for i in lister.list_instances(provider)] == ['vm-a', 'vm-b']

    def test_empty_provider(self, lister, provider, ec2_stub):
        ec2_stub.add_response('describe_instances', {'Reservations': []}, expected_params={'Filters': FILTERS})

        assert lister.list_instances(provider) == []

    def test_retries_throttling(self, lister, provider, ec2_stub):
        ec2_stub.add_client_error('describe_instances', service_error_code='RequestLimitExceeded')
        ec2_stub.add_response(
            'describe_instances',
            {'Reservations': [{'Instances': [ec2_instance('i-1', 'vm-a')]}]},
            expected_params={'Filters': FILTERS}
        )

        assert [i.name for i in lister.list_instances(provider)] == ['vm-a']

    def test_permission_error_is_connectivity_error(self, lister, provider, ec2_stub):
        ec2_stub.add_client_error(
            'describe_instances',
            service_error_code='UnauthorizedOperation',
            service_message='You are not authorized',
            http_status_code=403
        )

        with pytest.raises(ConnectivityError) as exc_info:
            lister.list_instances(provider)

        assert exc_info.value.category == ErrorCategory.PERMISSION
        assert exc_info.value.context.provider_name == 'aws-east'
        assert exc_info.value.context.operation == 'list_instances'

    def test_cancellation_observed_per_page(self, lister, provider, ec2_stub):
        ec2_stub.add_response(
            'describe_instances',
            {'Reservations': [{'Instances': [ec2_instance('i-1', 'vm-a')]}], 'NextToken': 'page-2'},
            expected_params={'Filters': FILTERS}
        )
        token = CancellationToken()
        token.cancel("shutdown")

        with pytest.raises(ReconciliationCancelled):
            lister.list_instances(provider, token)


class TestCheckConnection:
    def test_valid_credentials(self, lister, provider, sts_stub):
        sts_stub.add_response(
            'get_caller_identity',
            {
                'UserId': 'AIDAEXAMPLE',
                'Account': '123456789012',
                'Arn': 'arn:aws:iam::123456789012:user/sync'
            }
        )

        lister.check_connection(provider)

    def test_expired_token(self, lister, provider, sts_stub):
        sts_stub.add_client_error('get_caller_identity', service_error_code='ExpiredToken', http_status_code=403)

        with pytest.raises(ConnectivityError) as exc_info:
            lister.check_connection(provider)

        assert exc_info.value.category == ErrorCategory.CREDENTIAL
        assert exc_info.value.suggestions

    def test_every_check_calls_sts(self, lister, provider, sts_stub):
        sts_stub.add_response(
            'get_caller_identity',
            {
                'UserId': 'AIDAEXAMPLE',
                'Account': '123456789012',
                'Arn': 'arn:aws:iam::123456789012:user/sync'
            }
        )
        sts_stub.add_client_error('get_caller_identity', service_error_code='ExpiredToken', http_status_code=403)

        lister.check_connection(provider)
        with pytest.raises(ConnectivityError) as exc_info:
            lister.check_connection(provider)

        assert exc_info.value.category == ErrorCategory.CREDENTIAL


class TestRegistry:
    def test_ec2_registered(self, provider):
        assert LISTER_TYPES["ec2"] is EC2InstanceLister
        assert isinstance(get_lister(provider), EC2InstanceLister)

    def test_unknown_type(self, provider):
        # Bypass validation to simulate a type with no registered lister
        unknown = provider.model_copy(update={"type": "libvirt"})
        with pytest.raises(ConfigurationError):
            get_lister(unknown)
