"""
Tests for the transactional applier: all-or-nothing commits and error mapping.
"""
import pytest
from sqlalchemy.exc import OperationalError

from services.ordering_engine import Bucket, Shift
from services.task_errors import InvariantViolation, TransientStoreError
from services.transactional_applier import UnitOfWork


class TestUnitOfWork:

    def test_rejects_other_owners_bucket(self):
        work = UnitOfWork(owner_id=1)
        with pytest.raises(ValueError):
            work.shift(Shift(Bucket(2, 'backlog'), 0, None, +1))

    def test_single_primary_mutation(self):
        work = UnitOfWork(owner_id=1).delete(10)
        with pytest.raises(ValueError):
            work.update(11, {'title': 'x'})

    def test_tracks_touched_buckets(self):
        work = UnitOfWork(owner_id=1)
        work.shift(Shift(Bucket(1, 'backlog'), 2, None, -1))
        work.update(5, {'stage': 'done', 'position': 0})
        assert work.touched == [Bucket(1, 'backlog'), Bucket(1, 'done')]


@pytest.mark.integration
class TestTransactionalApplier:

    def test_broken_plan_is_rolled_back(self, task_service, test_user, make_tasks, snapshot):
        make_tasks(test_user.id, 'backlog', ['T1', 'T2'])
        bucket = Bucket(test_user.id, 'backlog')

        def build(store, work):
            # Opens a slot without filling it
            return work.shift(Shift(bucket, 0, None, +1))

        with pytest.raises(InvariantViolation):
            task_service.applier.run(test_user.id, build)

        assert snapshot(test_user.id, 'backlog') == [('T1', 0), ('T2', 1)]

    def test_operational_error_becomes_transient(self, task_service, test_user, make_tasks,
                                                 mocker, snapshot):
        ids = make_tasks(test_user.id, 'backlog', ['T1', 'T2'])
        mocker.patch.object(
            task_service.store, 'lock_owner',
            side_effect=OperationalError('SELECT', {}, Exception('database is locked')),
        )
        result = task_service.move(test_user.id, ids['T1'], 'backlog', 1)

        assert isinstance(result.error, TransientStoreError)
        assert result.error.recoverable
        assert result.error.http_status == 503
        mocker.stopall()
        assert snapshot(test_user.id, 'backlog') == [('T1', 0), ('T2', 1)]

    def test_failure_during_apply_leaves_store_unchanged(self, task_service, test_user, make_tasks,
                                                         mocker, snapshot):
        ids = make_tasks(test_user.id, 'backlog', ['T1', 'T2', 'T3'])
        make_tasks(test_user.id, 'done', ['D1'])

        # Shifts run, then the primary update fails
        mocker.patch.object(
            task_service.store, 'update_task',
            side_effect=OperationalError('UPDATE', {}, Exception('disk I/O error')),
        )
        result = task_service.move(test_user.id, ids['T1'], 'done', 0)

        assert isinstance(result.error, TransientStoreError)
        mocker.stopall()
        assert snapshot(test_user.id, 'backlog') == [('T1', 0), ('T2', 1), ('T3', 2)]
        assert snapshot(test_user.id, 'done') == [('D1', 0)]
