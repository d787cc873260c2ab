"""Plain-text explanations and MySQL partition maintenance statements."""
from typing import Any, Optional

from partplan.core.errors import NoCatchAllPartitionError
from partplan.core.types import PartitionScheme, ScanPlan


def explain(plan: ScanPlan, scheme: PartitionScheme, total_rows: Optional[int] = None) -> str:
    """
    Render a scan plan the way EXPLAIN output is narrated.

    Args:
        plan: Planner output
        scheme: Scheme the plan was computed against
        total_rows: Table size, to translate fractions into row counts

    Returns:
        Multi-line explanation text
    """
    lines = [f"QUERY PLAN: {scheme.table_name}"]

    if plan.predicate is not None:
        lines.append(f"  Predicate: {scheme.key_column} in {plan.predicate}")

    scanned = ", ".join(plan.partitions) if plan.partitions else "none"
    lines.append(
        f"  Partitions Scanned: {plan.partitions_scanned}/{plan.total_partitions} ({scanned})"
    )

    skipped = plan.total_partitions - plan.partitions_scanned
    if plan.prunable:
        lines.append(f"  Partition pruning: yes ({skipped} skipped)")
    else:
        lines.append("  Partition pruning: no (full scan)")

    lines.append(f"  Rows scanned: {plan.scanned_fraction*100:.1f}% of table")
    lines.append("  Non-partitioned baseline: 100.0% of table")
    lines.append(f"  Estimated speedup: {plan.speedup_estimate:.1f}x")

    if total_rows is not None:
        lines.append(
            f"  Estimated rows: {plan.estimated_rows(total_rows):,} of {total_rows:,}"
        )

    return "\n".join(lines)


def _less_than(bound: Any) -> str:
    if bound is None:
        return "MAXVALUE"
    return f"('{bound.isoformat()}')"


def partition_ddl(scheme: PartitionScheme) -> str:
    """
    MySQL statement that range-partitions the table by its key column.

    Example:
        ALTER TABLE bookings_partitioned
        PARTITION BY RANGE COLUMNS(start_date) (
            PARTITION p_2024_01 VALUES LESS THAN ('2024-02-01'),
            PARTITION p_future VALUES LESS THAN MAXVALUE
        );
    """
    definitions = ",\n".join(
        f"    PARTITION {p.name} VALUES LESS THAN {_less_than(p.upper)}"
        for p in scheme
    )
    return (
        f"ALTER TABLE {scheme.table_name}\n"
        f"PARTITION BY RANGE COLUMNS({scheme.key_column}) (\n"
        f"{definitions}\n"
        f");"
    )


def add_partition_ddl(old: PartitionScheme, new: PartitionScheme) -> str:
    """
    Statement turning `old` into `new` after add_trailing_partition.

    The old catch-all is reorganized into its closed range plus the new
    catch-all, which is how MySQL adds a partition below MAXVALUE.
    """
    old_catch_all = old.catch_all
    new_catch_all = new.catch_all
    if old_catch_all is None or new_catch_all is None:
        raise NoCatchAllPartitionError(old.table_name)

    closed = new.get(old_catch_all.name)
    return (
        f"ALTER TABLE {old.table_name} REORGANIZE PARTITION {old_catch_all.name} INTO (\n"
        f"    PARTITION {closed.name} VALUES LESS THAN {_less_than(closed.upper)},\n"
        f"    PARTITION {new_catch_all.name} VALUES LESS THAN MAXVALUE\n"
        f");"
    )


def drop_partition_ddl(scheme: PartitionScheme, name: str) -> str:
    """
    Statement archiving the leading partition `name`.

    Raises:
        UnknownPartitionError, NotLeadingPartitionError: As drop_leading_partition
    """
    scheme.drop_leading_partition(name)
    return f"ALTER TABLE {scheme.table_name} DROP PARTITION {name};"
