"""
Unit tests for density checks and the error/result types.
"""
import pytest

from services.ordering_engine import Bucket
from services.ordering_invariants import check_positions, describe_violation
from services.task_errors import (
    InvariantViolation,
    NotFoundError,
    OperationResult,
    RangeError,
    TransientStoreError,
)


class TestDescribeViolation:

    def test_gap(self):
        details = describe_violation([0, 2, 3])
        assert details['missing'] == [1]
        assert details['duplicates'] == []

    def test_duplicates_and_negative(self):
        details = describe_violation([-1, 0, 0])
        assert details['duplicates'] == [0]
        assert details['negative'] == [-1]
        assert details['missing'] == [1, 2]


class TestCheckPositions:

    def test_dense_bucket_passes(self):
        check_positions(Bucket(1, 'backlog'), [1, 0, 2])

    def test_broken_bucket_raises(self):
        with pytest.raises(InvariantViolation) as exc:
            check_positions(Bucket(1, 'review'), [0, 1, 1])
        assert exc.value.http_status == 500
        assert exc.value.context['duplicates'] == [1]


class TestTaskErrors:

    def test_not_found_hides_owner(self):
        error = NotFoundError(42)
        assert error.message == 'Task not found'
        assert error.http_status == 404
        assert 'owner' not in str(error.to_dict())

    def test_range_error_context(self):
        error = RangeError(7, 0, 3)
        assert error.http_status == 422
        assert error.context == {'position': 7, 'min': 0, 'max': 3}

    def test_transient_is_recoverable(self):
        error = TransientStoreError('busy')
        assert error.recoverable
        assert error.http_status == 503


class TestOperationResult:

    def test_success(self):
        result = OperationResult.success('value')
        assert result.ok
        assert result.unwrap() == 'value'

    def test_failure_unwrap_raises(self):
        result = OperationResult.failure(NotFoundError(1))
        assert not result.ok
        with pytest.raises(NotFoundError):
            result.unwrap()
