"""Shared fixtures: temporary inventory store, fake provider lister, fault injection and recording sinks."""

from contextlib import contextmanager
from typing import List, Optional

import pytest

from provider_sync.models import Provider, RemoteInstance
from provider_sync.providers.base import RemoteStateLister
from provider_sync.repository.base import InventoryTransaction, LocalStateRepository
from provider_sync.repository.json_store import JsonInventoryStore
from provider_sync.sinks import CompletionSink, ProgressSink
from provider_sync.utils.errors import QueryError


class FakeLister(RemoteStateLister):
    """In-memory provider returning a fixed set of instance names."""

    def __init__(self, names=(), check_error: Optional[Exception] = None, list_error: Optional[Exception] = None):
        self.names = list(names)
        self.check_error = check_error
        self.list_error = list_error
        self.check_calls = 0
        self.list_calls = 0

    def check_connection(self, provider):
        self.check_calls += 1
        if self.check_error:
            raise self.check_error

    def list_instances(self, provider, cancel_token=None):
        self.list_calls += 1
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("remote listing")
        if self.list_error:
            raise self.list_error
        return [RemoteInstance(name=name) for name in self.names]


class FaultyTransaction(InventoryTransaction):
    def __init__(self, inner: InventoryTransaction, repository: "FaultyRepository"):
        self.inner = inner
        self.repository = repository

    def count_port_mappings(self, instance_id):
        return self.inner.count_port_mappings(instance_id)

    def delete_port_mappings(self, instance_id):
        if instance_id in self.repository.fail_port_delete_for:
            raise RuntimeError("port mapping table is locked")
        return self.inner.delete_port_mappings(instance_id)

    def soft_delete_instance(self, instance):
        if instance.id in self.repository.fail_soft_delete_for:
            raise RuntimeError("instance row is locked")
        self.inner.soft_delete_instance(instance)

        # Lets tests cancel in between two orphans
        if self.repository.after_soft_delete:
            self.repository.after_soft_delete(instance)


class FaultyRepository(LocalStateRepository):
    """Wraps a real store and injects failures per instance id."""

    def __init__(self, store: JsonInventoryStore):
        self.store = store
        self.fail_query = False
        self.fail_port_delete_for = set()
        self.fail_soft_delete_for = set()
        self.after_soft_delete = None
        self.transactions = 0

    def find_non_terminal_instances(self, provider_id):
        if self.fail_query:
            raise QueryError("local inventory is unavailable")
        return self.store.find_non_terminal_instances(provider_id)

    @contextmanager
    def transaction(self):
        self.transactions += 1
        with self.store.transaction() as tx:
            yield FaultyTransaction(tx, self)


class RecordingProgressSink(ProgressSink):
    def __init__(self):
        self.events: List[tuple] = []

    def report_progress(self, job_id, percent, message):
        self.events.append((job_id, percent, message))

    @property
    def percents(self):
        return [event[1] for event in self.events]


class RecordingCompletionSink(CompletionSink):
    def __init__(self, error: Optional[Exception] = None):
        self.calls: List[tuple] = []
        self.error = error

    def report_completion(self, job_id, success, summary, error=None):
        self.calls.append((job_id, success, summary, error))
        if self.error:
            raise self.error


@pytest.fixture
def store(tmp_path):
    return JsonInventoryStore(str(tmp_path / "inventory.json"), lock_timeout=1)


@pytest.fixture
def faulty_repo(store):
    return FaultyRepository(store)


@pytest.fixture
def provider():
    return Provider(id=1, name="aws-east", region="us-east-1")


@pytest.fixture
def progress_sink():
    return RecordingProgressSink()


@pytest.fixture
def completion_sink():
    return RecordingCompletionSink()


@pytest.fixture
def config_dict(tmp_path):
    return {
        "store": {"path": str(tmp_path / "inventory.json"), "lock_timeout": 1},
        "retry": {"max_retries": 0, "base_delay": 0.1, "max_delay": 1.0, "jitter": False},
        "sync": {"max_parallel_providers": 2},
        "providers": [
            {"id": 1, "name": "aws-east", "region": "us-east-1"},
            {"id": 2, "name": "aws-west", "region": "us-west-2"},
            {"id": 3, "name": "legacy", "region": "eu-west-1", "status": "inactive"},
        ],
    }
