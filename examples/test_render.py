"""Test plan explanations and partition maintenance SQL."""
from datetime import date

import pytest

from partplan.core.errors import NotLeadingPartitionError
from partplan.core.types import PartitionScheme, QueryPredicate
from partplan.optimizer.partition_pruning import PartitionPlanner
from partplan.report.render import (
    add_partition_ddl,
    drop_partition_ddl,
    explain,
    partition_ddl,
)


@pytest.fixture
def scheme():
    return PartitionScheme.monthly(date(2024, 1, 1), date(2025, 1, 1))


def test_explain_pruned_plan(scheme):
    plan = PartitionPlanner(scheme).plan(QueryPredicate(date(2024, 6, 1), date(2024, 9, 1)))

    text = explain(plan, scheme, total_rows=50_000)

    assert "QUERY PLAN: bookings_partitioned" in text
    assert "Partitions Scanned: 3/13 (p_2024_06, p_2024_07, p_2024_08)" in text
    assert "Partition pruning: yes (10 skipped)" in text
    assert "Rows scanned: 23.1% of table" in text
    assert "Estimated speedup: 4.3x" in text
    assert "Estimated rows: 11,538 of 50,000" in text


def test_explain_full_scan(scheme):
    plan = PartitionPlanner(scheme).plan(
        QueryPredicate.full_domain(selectivity=1.0, secondary_filter="status = 'completed'")
    )

    text = explain(plan, scheme)

    assert "Partitions Scanned: 13/13" in text
    assert "Partition pruning: no (full scan)" in text
    assert "status = 'completed'" in text
    assert "Estimated rows" not in text


def test_explain_empty_plan(scheme):
    plan = PartitionPlanner(scheme).plan(QueryPredicate(date(2024, 5, 5), date(2024, 5, 5)))

    assert "Partitions Scanned: 0/13 (none)" in explain(plan, scheme)


def test_partition_ddl(scheme):
    ddl = partition_ddl(scheme)

    assert ddl.startswith("ALTER TABLE bookings_partitioned\n")
    assert "PARTITION BY RANGE COLUMNS(start_date) (" in ddl
    assert "PARTITION p_2024_01 VALUES LESS THAN ('2024-02-01')," in ddl
    assert "PARTITION p_2024_12 VALUES LESS THAN ('2025-01-01')," in ddl
    assert ddl.rstrip().endswith("PARTITION p_future VALUES LESS THAN MAXVALUE\n);")


def test_add_partition_ddl(scheme):
    evolved = scheme.add_trailing_partition("p_future_2", date(2025, 2, 1))

    ddl = add_partition_ddl(scheme, evolved)

    assert ddl.startswith("ALTER TABLE bookings_partitioned REORGANIZE PARTITION p_future INTO (")
    assert "PARTITION p_future VALUES LESS THAN ('2025-02-01')," in ddl
    assert "PARTITION p_future_2 VALUES LESS THAN MAXVALUE" in ddl


def test_drop_partition_ddl(scheme):
    assert drop_partition_ddl(scheme, "p_2024_01") == (
        "ALTER TABLE bookings_partitioned DROP PARTITION p_2024_01;"
    )


def test_drop_partition_ddl_rejects_interior_partition(scheme):
    with pytest.raises(NotLeadingPartitionError):
        drop_partition_ddl(scheme, "p_2024_05")
