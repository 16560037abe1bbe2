"""Tests for per-orphan cleanup."""

from unittest.mock import MagicMock

from provider_sync.cancellation import CancellationToken
from provider_sync.cleaner import OrphanCleaner, OrphanStatus, WarningKind
from provider_sync.status import InstanceStatus
from provider_sync.utils.errors import PerOrphanTransactionError, PortMappingCleanupError


def seed(store, *specs):
    """Create instances from (name, port_count) pairs."""
    instances = []
    for name, ports in specs:
        instance = store.add_instance(name, 1)
        for offset in range(ports):
            store.add_port_mapping(instance.id, 10000 + instance.id * 10 + offset, 22 + offset)
        instances.append(instance)
    return instances


class TestCleanOrphan:
    def test_removes_mappings_and_tombstones(self, store, faulty_repo):
        vm, = seed(store, ("vm-b", 2))

        outcome = OrphanCleaner(faulty_repo).clean_orphan(vm)

        assert outcome.status == OrphanStatus.CLEANED
        assert outcome.port_mappings_found == 2
        assert outcome.port_mappings_removed == 2
        assert outcome.warnings == []
        assert store.get_instance(vm.id).status == InstanceStatus.DELETED
        assert store.list_port_mappings(vm.id) == []

    def test_port_mapping_failure_is_warning(self, store, faulty_repo):
        vm, = seed(store, ("vm-b", 3))
        faulty_repo.fail_port_delete_for.add(vm.id)

        outcome = OrphanCleaner(faulty_repo).clean_orphan(vm)

        assert outcome.is_cleaned()
        assert outcome.port_mappings_found == 3
        assert outcome.port_mappings_removed == 0
        assert len(outcome.warnings) == 1
        assert outcome.warnings[0].kind == WarningKind.PORT_MAPPING_CLEANUP_FAILED
        assert outcome.warnings[0].instance_name == "vm-b"
        assert isinstance(outcome.warnings[0].error, PortMappingCleanupError)
        assert isinstance(outcome.warnings[0].error.cause, RuntimeError)
        assert outcome.warnings[0].error.context.operation == "delete_port_mappings"
        assert store.get_instance(vm.id).is_deleted()
        assert len(store.list_port_mappings(vm.id)) == 3

    def test_soft_delete_failure_rolls_back(self, store, faulty_repo):
        vm, = seed(store, ("vm-b", 2))
        faulty_repo.fail_soft_delete_for.add(vm.id)

        outcome = OrphanCleaner(faulty_repo).clean_orphan(vm)

        assert outcome.status == OrphanStatus.FAILED
        assert isinstance(outcome.error, PerOrphanTransactionError)
        assert outcome.error.context.instance_name == "vm-b"
        assert store.get_instance(vm.id).status == InstanceStatus.RUNNING
        assert len(store.list_port_mappings(vm.id)) == 2

    def test_transaction_open_failure_is_contained(self, store):
        vm, = seed(store, ("vm-b", 0))
        repository = MagicMock()
        repository.run_in_transaction.side_effect = RuntimeError("database is locked")

        outcome = OrphanCleaner(repository).clean_orphan(vm)

        assert outcome.status == OrphanStatus.FAILED
        assert "database is locked" in outcome.error.message

    def test_port_mapping_failure_logged_as_warning(self, store, faulty_repo):
        vm, = seed(store, ("vm-b", 1))
        faulty_repo.fail_port_delete_for.add(vm.id)
        logger = MagicMock()

        OrphanCleaner(faulty_repo, logger=logger).clean_orphan(vm)

        logger.warning.assert_called_once()
        assert "port mapping table is locked" in logger.warning.call_args.args[0]
        assert logger.warning.call_args.kwargs["extra"] == {"instance_id": vm.id, "instance_name": "vm-b"}
        logger.error.assert_not_called()

    def test_failure_is_logged(self, store, faulty_repo):
        vm, = seed(store, ("vm-b", 0))
        faulty_repo.fail_soft_delete_for.add(vm.id)
        logger = MagicMock()

        OrphanCleaner(faulty_repo, logger=logger).clean_orphan(vm)

        logger.error.assert_called_once()
        assert logger.error.call_args.kwargs['extra'] == {'instance_id': vm.id, 'instance_name': 'vm-b'}


class TestClean:
    def test_failure_isolated_to_one_orphan(self, store, faulty_repo):
        a, b, c = seed(store, ("vm-a", 1), ("vm-b", 2), ("vm-c", 3))
        faulty_repo.fail_soft_delete_for.add(b.id)

        result = OrphanCleaner(faulty_repo).clean([a, b, c])

        assert result.cleaned_instances == 2
        assert result.processed_count == 2
        assert result.cleaned_port_mappings == 4
        assert result.cleaned_instance_names == ["vm-a", "vm-c"]
        assert result.failed_count == 1
        assert result.attempted_count == 3
        assert faulty_repo.transactions == 3
        assert store.get_instance(b.id).status == InstanceStatus.RUNNING

    def test_totals_count_removed_mappings_only(self, store, faulty_repo):
        a, b = seed(store, ("vm-a", 2), ("vm-b", 5))
        faulty_repo.fail_port_delete_for.add(b.id)

        result = OrphanCleaner(faulty_repo).clean([a, b])

        assert result.cleaned_instances == 2
        assert result.cleaned_port_mappings == 2
        assert [w.instance_name for w in result.warnings] == ["vm-b"]

    def test_cancel_before_first_orphan(self, store, faulty_repo):
        orphans = seed(store, ("vm-a", 1), ("vm-b", 1))
        token = CancellationToken()
        token.cancel("shutdown")

        result = OrphanCleaner(faulty_repo).clean(orphans, token)

        assert result.cancelled
        assert result.remaining_count == 2
        assert result.outcomes == []
        assert faulty_repo.transactions == 0

    def test_cancel_between_orphans(self, store, faulty_repo):
        orphans = seed(store, ("vm-a", 1), ("vm-b", 1), ("vm-c", 1))
        token = CancellationToken()
        faulty_repo.after_soft_delete = lambda instance: token.cancel("shutdown")

        result = OrphanCleaner(faulty_repo).clean(orphans, token)

        assert result.cancelled
        assert result.cleaned_instance_names == ["vm-a"]
        assert result.remaining_count == 2
        assert store.get_instance(orphans[0].id).is_deleted()
        assert not store.get_instance(orphans[1].id).is_deleted()

    def test_empty_orphan_list(self, faulty_repo):
        result = OrphanCleaner(faulty_repo).clean([])
        assert result.processed_count == 0
        assert not result.cancelled
