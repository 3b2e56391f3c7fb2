"""Topology planning for a StatefulSet-backed valkey cluster.

Maps the declared member count of the StatefulSet to a number of shard
primaries and replicas, and a member's ordinal index to its role. Primaries
own contiguous hash-slot ranges; replicas are spread round-robin across the
primaries by index.

Everything in here is pure: no I/O, no logging.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from valkey_manager.cluster.errors import PreconditionError

# Total number of hash slots in a valkey cluster.
TOTAL_SLOT_COUNT = 16384


class Role(Enum):
    """Role of a member within the cluster."""
    PRIMARY = "primary"
    REPLICA = "replica"


@dataclass(frozen=True)
class TopologyPlan:
    primary_count: int
    replica_count: int

    @property
    def total_count(self) -> int:
        return self.primary_count + self.replica_count


@dataclass(frozen=True)
class SlotRange:
    """Inclusive range of hash slots owned by one primary."""
    first: int
    last: int

    def __len__(self) -> int:
        return self.last - self.first + 1

    def __contains__(self, slot: object) -> bool:
        return isinstance(slot, int) and self.first <= slot <= self.last


def plan_group(total_count: int) -> TopologyPlan:
    """Split the StatefulSet's members into primaries and replicas.

    At least one primary always exists; once it does, odd members are biased
    toward becoming replicas (5 members -> 2 primaries, 3 replicas).
    """
    if total_count is None or total_count < 1:
        raise PreconditionError(f"total member count must be positive, got {total_count!r}")

    primary_count = max(1, total_count // 2)
    return TopologyPlan(primary_count=primary_count, replica_count=total_count - primary_count)


def role_for(member_index: int, primary_count: int) -> Role:
    _check(member_index, primary_count)

    if member_index < primary_count:
        return Role.PRIMARY
    return Role.REPLICA


def slot_size(primary_count: int) -> int:
    if primary_count < 1:
        raise PreconditionError(f"primary count must be positive, got {primary_count!r}")
    return TOTAL_SLOT_COUNT // primary_count


def slot_range_for(member_index: int, primary_count: int) -> SlotRange:
    """Return the slots owned by the primary at ``member_index``.

    The last primary absorbs the remainder of ``TOTAL_SLOT_COUNT / primary_count``
    so that every slot is owned by exactly one primary.
    """
    if role_for(member_index, primary_count) is not Role.PRIMARY:
        raise PreconditionError(
            f"member {member_index} is not a primary (primary count {primary_count})"
        )

    size = slot_size(primary_count)
    first = member_index * size
    if member_index == primary_count - 1:
        last = TOTAL_SLOT_COUNT - 1
    else:
        last = first + size - 1
    return SlotRange(first=first, last=last)


def primary_index_for(member_index: int, primary_count: int) -> int:
    """Index of the primary a replica attaches to."""
    _check(member_index, primary_count)
    return member_index % primary_count


def _check(member_index: int, primary_count: int) -> None:
    if member_index < 0:
        raise PreconditionError(f"member index must not be negative, got {member_index!r}")
    if primary_count < 1:
        raise PreconditionError(f"primary count must be positive, got {primary_count!r}")
