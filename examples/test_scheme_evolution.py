"""Test adding and dropping partitions."""
from datetime import date

import pytest

from partplan.core.errors import (
    InvalidSchemeError,
    NoCatchAllPartitionError,
    NonMonotonicBoundaryError,
    NotLeadingPartitionError,
    UnknownPartitionError,
)
from partplan.core.types import (
    Partition,
    PartitionKeyRange,
    PartitionScheme,
    QueryPredicate,
)
from partplan.optimizer.partition_pruning import PartitionPlanner


@pytest.fixture
def planner():
    return PartitionPlanner(PartitionScheme.monthly(date(2024, 1, 1), date(2025, 1, 1)))


def test_add_trailing_partition_splits_catch_all(planner):
    scheme = planner.add_trailing_partition("p_future_2", date(2025, 2, 1))

    assert len(scheme) == 14
    assert scheme.get("p_future").key_range == PartitionKeyRange(
        date(2025, 1, 1), date(2025, 2, 1)
    )
    assert scheme.catch_all.name == "p_future_2"
    assert scheme.catch_all.lower == date(2025, 2, 1)


def test_add_trailing_partition_leaves_planner_unchanged(planner):
    planner.add_trailing_partition("p_future_2", date(2025, 2, 1))

    assert len(planner.scheme) == 13
    assert planner.scheme.catch_all.name == "p_future"


def test_new_trailing_partition_owns_later_keys(planner):
    evolved = PartitionPlanner(planner.add_trailing_partition("p_future_2", date(2025, 2, 1)))

    plan = evolved.plan(QueryPredicate(lower=date(2025, 2, 1)))

    assert plan.partitions == ("p_future_2",)
    assert evolved.locate(date(2025, 2, 1)).name == "p_future_2"
    assert evolved.locate(date(2025, 1, 31)).name == "p_future"


def test_split_preserves_catch_all_fraction(planner):
    before = planner.plan(QueryPredicate(lower=date(2025, 1, 1)))

    evolved = PartitionPlanner(planner.add_trailing_partition("p_future_2", date(2025, 2, 1)))
    after = evolved.plan(QueryPredicate(lower=date(2025, 1, 1)))

    assert after.partitions == ("p_future", "p_future_2")
    assert after.scanned_fraction == pytest.approx(before.scanned_fraction)


def test_split_keeps_other_partition_estimates(planner):
    evolved = PartitionPlanner(planner.add_trailing_partition("p_future_2", date(2025, 2, 1)))

    plan = evolved.plan(QueryPredicate(date(2024, 6, 1), date(2024, 9, 1)))

    assert plan.scanned_fraction == pytest.approx(3 / 13)


def test_repeated_splits_stay_contiguous(planner):
    scheme = planner.add_trailing_partition("p_future_2", date(2025, 2, 1))
    scheme = PartitionPlanner(scheme).add_trailing_partition("p_future_3", date(2025, 3, 1))

    assert scheme.names[-3:] == ("p_future", "p_future_2", "p_future_3")
    assert scheme.validate() is scheme


@pytest.mark.parametrize("boundary", [date(2025, 1, 1), date(2024, 12, 1)])
def test_boundary_must_follow_catch_all_lower(planner, boundary):
    with pytest.raises(NonMonotonicBoundaryError) as excinfo:
        planner.add_trailing_partition("p_2025_01", boundary)

    assert excinfo.value.partition == "p_future"
    assert excinfo.value.lower == date(2025, 1, 1)
    assert excinfo.value.boundary == boundary


def test_add_requires_catch_all():
    scheme = PartitionScheme((
        Partition("p_2024_01", PartitionKeyRange(date(2024, 1, 1), date(2024, 2, 1))),
        Partition("p_2024_02", PartitionKeyRange(date(2024, 2, 1), date(2024, 3, 1))),
    ))
    planner = PartitionPlanner(scheme)

    with pytest.raises(NoCatchAllPartitionError):
        planner.add_trailing_partition("p_future", date(2024, 4, 1))


def test_add_rejects_existing_name(planner):
    with pytest.raises(InvalidSchemeError):
        planner.add_trailing_partition("p_2024_03", date(2025, 2, 1))


def test_drop_leading_partition(planner):
    scheme = planner.drop_leading_partition("p_2024_01")

    assert len(scheme) == 12
    assert scheme.names[0] == "p_2024_02"
    assert scheme.get("p_2024_02").key_range == PartitionKeyRange(None, date(2024, 3, 1))
    assert scheme.get("p_2024_03").key_range == PartitionKeyRange(
        date(2024, 3, 1), date(2024, 4, 1)
    )
    assert len(planner.scheme) == 13


def test_drop_interior_partition_fails(planner):
    with pytest.raises(NotLeadingPartitionError) as excinfo:
        planner.drop_leading_partition("p_2024_06")

    assert excinfo.value.partition == "p_2024_06"
    assert excinfo.value.leading == "p_2024_01"
    assert "p_2024_06" in planner.scheme.names


def test_drop_catch_all_fails(planner):
    with pytest.raises(NotLeadingPartitionError):
        planner.drop_leading_partition("p_future")


def test_drop_unknown_partition_fails(planner):
    with pytest.raises(UnknownPartitionError):
        planner.drop_leading_partition("p_2019_01")


def test_drop_only_partition_fails():
    scheme = PartitionScheme((Partition("p_all", PartitionKeyRange(None, None)),))

    with pytest.raises(InvalidSchemeError):
        scheme.drop_leading_partition("p_all")


def test_dropped_range_falls_to_new_leading_partition(planner):
    archived = PartitionPlanner(planner.drop_leading_partition("p_2024_01"))

    plan = archived.plan(QueryPredicate(date(2024, 1, 10), date(2024, 1, 20)))

    assert plan.partitions == ("p_2024_02",)
    assert plan.total_partitions == 12
    assert plan.scanned_fraction == pytest.approx(1 / 12)
    assert archived.locate(date(2024, 1, 15)).name == "p_2024_02"

    plan = archived.plan(QueryPredicate(date(2024, 1, 1), date(2024, 3, 1)))

    assert plan.partitions == ("p_2024_02",)


def test_drop_down_to_catch_all():
    scheme = PartitionScheme.monthly(date(2024, 1, 1), date(2024, 2, 1))

    scheme = PartitionPlanner(scheme).drop_leading_partition("p_2024_01")

    assert scheme.names == ("p_future",)
    assert scheme.catch_all.key_range == PartitionKeyRange(None, None)


def test_repeated_splits_halve_trailing_weight(planner):
    scheme = planner.add_trailing_partition("p_future_2", date(2025, 2, 1))
    scheme = PartitionPlanner(scheme).add_trailing_partition("p_future_3", date(2025, 3, 1))

    assert scheme.get("p_future").row_weight == pytest.approx(0.5)
    assert scheme.get("p_future_2").row_weight == pytest.approx(0.25)
    assert scheme.get("p_future_3").row_weight == pytest.approx(0.25)

    reset = scheme.with_row_weights({"p_future": 1.0, "p_future_2": 1.0, "p_future_3": 1.0})
    plan = PartitionPlanner(reset).plan(QueryPredicate(date(2025, 2, 1), date(2025, 3, 1)))

    assert plan.scanned_fraction == pytest.approx(1 / 15)
