"""Tests for the topology planner."""

import pytest

from valkey_manager.cluster.errors import PreconditionError
from valkey_manager.cluster.topology import (
    TOTAL_SLOT_COUNT,
    Role,
    SlotRange,
    plan_group,
    primary_index_for,
    role_for,
    slot_range_for,
)


class TestPlanGroup:
    @pytest.mark.parametrize("total", range(1, 33))
    def test_counts_add_up(self, total):
        plan = plan_group(total)

        assert plan.primary_count >= 1
        assert plan.primary_count + plan.replica_count == total
        assert plan.primary_count == max(1, total // 2)
        assert plan.total_count == total

    @pytest.mark.parametrize(
        "total,primaries,replicas",
        [(1, 1, 0), (2, 1, 1), (3, 1, 2), (5, 2, 3), (6, 3, 3), (7, 3, 4)],
    )
    def test_known_splits(self, total, primaries, replicas):
        plan = plan_group(total)

        assert (plan.primary_count, plan.replica_count) == (primaries, replicas)

    @pytest.mark.parametrize("total", [0, -1, None])
    def test_rejects_non_positive_count(self, total):
        with pytest.raises(PreconditionError):
            plan_group(total)


class TestRoles:
    def test_low_indices_are_primaries(self):
        for i in range(3):
            assert role_for(i, 3) is Role.PRIMARY

    def test_high_indices_are_replicas(self):
        for i in range(3, 10):
            assert role_for(i, 3) is Role.REPLICA

    def test_replicas_spread_round_robin(self):
        """Replicas 3, 4, 5 attach to primaries 0, 1, 2."""
        assert [primary_index_for(i, 3) for i in (3, 4, 5)] == [0, 1, 2]

    def test_primary_index_is_modulo(self):
        for i in range(20):
            assert primary_index_for(i, 4) == i % 4

    def test_rejects_bad_inputs(self):
        with pytest.raises(PreconditionError):
            role_for(-1, 3)
        with pytest.raises(PreconditionError):
            role_for(0, 0)
        with pytest.raises(PreconditionError):
            primary_index_for(3, 0)


class TestSlotRanges:
    @pytest.mark.parametrize("primary_count", [1, 2, 3, 5, 7, 10, 100, 1000])
    def test_ranges_are_disjoint_and_cover_all_slots(self, primary_count):
        ranges = [slot_range_for(i, primary_count) for i in range(primary_count)]

        owned = []
        for r in ranges:
            owned.extend(range(r.first, r.last + 1))

        assert len(owned) == len(set(owned))
        assert sorted(owned) == list(range(TOTAL_SLOT_COUNT))

    def test_single_primary_owns_everything(self):
        assert slot_range_for(0, 1) == SlotRange(0, TOTAL_SLOT_COUNT - 1)

    def test_last_primary_absorbs_remainder(self):
        # 16384 / 3 = 5461 remainder 1
        assert slot_range_for(0, 3) == SlotRange(0, 5460)
        assert slot_range_for(1, 3) == SlotRange(5461, 10921)
        assert slot_range_for(2, 3) == SlotRange(10922, 16383)
        assert len(slot_range_for(2, 3)) == 5462

    def test_even_split_has_no_remainder(self):
        assert slot_range_for(1, 2) == SlotRange(8192, 16383)
        assert len(slot_range_for(0, 2)) == len(slot_range_for(1, 2))

    def test_slot_membership(self):
        r = slot_range_for(1, 2)

        assert 8192 in r
        assert 16383 in r
        assert 8191 not in r

    def test_replica_has_no_slots(self):
        with pytest.raises(PreconditionError):
            slot_range_for(3, 3)
