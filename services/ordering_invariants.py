"""
Density checks for task buckets.

A bucket satisfies the invariant when its positions are exactly 0..n-1.
Used by tests, by the applier when ORDERING_VERIFY_INVARIANTS is on, and by
the reindex maintenance script to find buckets that need repair.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import select

from models import Task
from services.ordering_engine import Bucket, is_dense
from services.task_errors import InvariantViolation

logger = logging.getLogger(__name__)


def describe_violation(positions: List[int]) -> Dict[str, list]:
    """Gaps, duplicates and negatives of a position list, for error context."""
    duplicates = sorted(p for p, n in Counter(positions).items() if n > 1)
    expected = set(range(len(positions)))
    return {
        'positions': sorted(positions),
        'missing': sorted(expected - set(positions)),
        'duplicates': duplicates,
        'negative': sorted(p for p in positions if p < 0),
    }


def check_positions(bucket: Bucket, positions: Iterable[int]):
    positions = list(positions)
    if not is_dense(positions):
        details = describe_violation(positions)
        logger.error(f"[ORDERING] bucket {bucket} is not dense: {details}")
        raise InvariantViolation(f"Bucket {bucket} positions are not dense", details)


def verify_buckets(store, buckets: Iterable[Bucket]):
    """Raise InvariantViolation for the first touched bucket that is not dense."""
    for bucket in buckets:
        check_positions(bucket, store.bucket_positions(bucket.owner_id, bucket.stage))


def find_violations(session, owner_id=None) -> List[Tuple[Bucket, List[int]]]:
    """
    Scan every bucket (optionally one owner's) and return the broken ones with
    their current positions.
    """
    stmt = select(Task.user_id, Task.stage, Task.position).order_by(Task.user_id, Task.stage, Task.position)
    if owner_id is not None:
        stmt = stmt.where(Task.user_id == owner_id)

    buckets: Dict[Bucket, List[int]] = {}
    for row in session.execute(stmt):
        buckets.setdefault(Bucket(row.user_id, row.stage), []).append(row.position)

    return [(bucket, positions) for bucket, positions in buckets.items() if not is_dense(positions)]


def assert_all_dense(session, owner_id=None):
    """Test helper: fail loudly if any bucket breaks the density invariant."""
    violations = find_violations(session, owner_id)
    if violations:
        bucket, positions = violations[0]
        raise InvariantViolation(
            f"{len(violations)} bucket(s) not dense, first: {bucket}",
            describe_violation(positions),
        )
