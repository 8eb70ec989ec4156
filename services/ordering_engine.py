"""
Ordering Engine - dense position planning for task buckets

Given the intent of an operation and the minimal state of the affected
bucket(s), computes where the moving task lands and which sibling ranges must
shift so every bucket keeps positions exactly 0..n-1.

The engine is pure: it never touches the store. Shifts are half-open
intervals [start, stop) inside one bucket plus a +1/-1 delta, which maps
one-to-one onto TaskStore.shift().
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple

from services.task_errors import RangeError


@dataclass(frozen=True)
class Bucket:
    """The (owner, stage) partition over which positions are dense."""
    owner_id: int
    stage: str

    def __str__(self):
        return f"{self.owner_id}/{self.stage}"


@dataclass(frozen=True)
class Shift:
    """Add `delta` to every position p in `bucket` with start <= p < stop."""
    bucket: Bucket
    start: int
    stop: Optional[int]
    delta: int

    def matches(self, position: int) -> bool:
        if position < self.start:
            return False
        return self.stop is None or position < self.stop

    def apply(self, position: int) -> int:
        return position + self.delta if self.matches(position) else position

    @property
    def is_empty(self) -> bool:
        return self.stop is not None and self.stop <= self.start


@dataclass(frozen=True)
class Placement:
    stage: str
    position: int


@dataclass(frozen=True)
class OrderingPlan:
    """
    Result of planning one operation.

    placement is None for removals. noop plans carry no shifts and must not
    cause any store write.
    """
    placement: Optional[Placement]
    shifts: Tuple[Shift, ...] = field(default_factory=tuple)
    noop: bool = False


def plan_append(bucket: Bucket, size: int) -> OrderingPlan:
    """New task goes to the end of its bucket. Never fails."""
    return OrderingPlan(placement=Placement(bucket.stage, size))


def plan_move_within(bucket: Bucket, old_index: int, new_index: int, size: int) -> OrderingPlan:
    """
    Reorder inside one bucket.

    Moving down closes (old, new] by -1; moving up opens [new, old) by +1.
    new_index must lie in [0, size - 1]; it is rejected, not clamped.
    """
    if new_index < 0 or new_index > size - 1:
        raise RangeError(new_index, 0, max(size - 1, 0))

    if old_index == new_index:
        return OrderingPlan(placement=Placement(bucket.stage, old_index), noop=True)

    if old_index < new_index:
        shift = Shift(bucket, old_index + 1, new_index + 1, -1)
    else:
        shift = Shift(bucket, new_index, old_index, +1)

    return OrderingPlan(placement=Placement(bucket.stage, new_index), shifts=(shift,))


def plan_move_across(
    source: Bucket,
    old_index: int,
    destination: Bucket,
    destination_size: int,
    new_index: Optional[int] = None,
) -> OrderingPlan:
    """
    Move a task to another bucket of the same owner.

    Both shifts are derived from state read before the move. new_index
    defaults to the end of the destination and must lie in
    [0, destination_size].
    """
    if new_index is None:
        new_index = destination_size

    if new_index < 0 or new_index > destination_size:
        raise RangeError(new_index, 0, destination_size)

    shifts = (
        Shift(source, old_index + 1, None, -1),
        Shift(destination, new_index, None, +1),
    )
    return OrderingPlan(placement=Placement(destination.stage, new_index), shifts=shifts)


def plan_move(
    source: Bucket,
    old_index: int,
    source_size: int,
    destination: Bucket,
    destination_size: int,
    new_index: Optional[int] = None,
) -> OrderingPlan:
    """
    Dispatch to within/across planning.

    For a same-bucket move a missing new_index keeps the current position.
    """
    if source == destination:
        if new_index is None:
            new_index = old_index
        return plan_move_within(source, old_index, new_index, source_size)
    return plan_move_across(source, old_index, destination, destination_size, new_index)


def plan_remove(bucket: Bucket, index: int) -> OrderingPlan:
    """Deleting closes the gap behind the removed task."""
    return OrderingPlan(placement=None, shifts=(Shift(bucket, index + 1, None, -1),))


def apply_plan(
    state: Mapping[int, Tuple[int, str, int]],
    task_id: Optional[int],
    plan: OrderingPlan,
    owner_id: Optional[int] = None,
) -> Dict[int, Tuple[int, str, int]]:
    """
    Apply a plan to an in-memory {task_id: (owner_id, stage, position)} map.

    Mirrors what the applier does against the store: shifts first, then the
    primary mutation. A task_id absent from state with a placement is inserted
    for owner_id; a plan without placement deletes task_id.
    """
    result = dict(state)
    if plan.noop:
        return result

    for shift in plan.shifts:
        for tid, (owner, stage, position) in list(result.items()):
            if owner == shift.bucket.owner_id and stage == shift.bucket.stage:
                result[tid] = (owner, stage, shift.apply(position))

    if task_id is None:
        return result

    if plan.placement is None:
        result.pop(task_id, None)
    else:
        if task_id in state:
            owner_id = state[task_id][0]
        result[task_id] = (owner_id, plan.placement.stage, plan.placement.position)
    return result


def bucket_positions(state: Mapping[int, Tuple[int, str, int]]) -> Dict[Bucket, list]:
    """Group an in-memory state map into sorted position lists per bucket."""
    buckets: Dict[Bucket, list] = {}
    for owner_id, stage, position in state.values():
        buckets.setdefault(Bucket(owner_id, stage), []).append(position)
    return {bucket: sorted(positions) for bucket, positions in buckets.items()}


def is_dense(positions: Iterable[int]) -> bool:
    """True when positions are exactly 0..n-1, each once."""
    ordered = sorted(positions)
    return ordered == list(range(len(ordered)))
