"""Core data types and structures."""
import math
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from partplan.core.errors import (
    InvalidPredicateError,
    InvalidSchemeError,
    NoCatchAllPartitionError,
    NonMonotonicBoundaryError,
    NotLeadingPartitionError,
    UnknownPartitionError,
)
from partplan.core.months import add_months, month_start, partition_name


class PredicateOperator(Enum):
    """SQL comparison operators."""
    EQ = "="
    NEQ = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    IN = "IN"
    BETWEEN = "BETWEEN"
    LIKE = "LIKE"


@dataclass
class Predicate:
    """
    A single predicate from a WHERE clause.

    Example: "b.start_date >= '2024-06-01'" becomes:
        Predicate(
            column="start_date",
            operator=PredicateOperator.GTE,
            value="2024-06-01",
            table="b",
        )

    BETWEEN predicates carry a (low, high) tuple as value. `table` is
    the column's qualifier (table name or alias), None if unqualified.
    """
    column: str
    operator: PredicateOperator
    value: Any
    sql: Optional[str] = None
    table: Optional[str] = None

    def is_on(self, column: str, tables: Optional[Iterable[str]] = None) -> bool:
        """
        Check if the predicate filters `column` of one of `tables`.

        Unqualified columns, or tables=None, match on the column name alone.
        """
        if self.column.lower() != column.lower():
            return False
        if tables is None or self.table is None:
            return True
        return self.table.lower() in {t.lower() for t in tables}


@dataclass
class PredicateExtractionResult:
    """
    Result of extracting predicates from SQL WHERE clause.
    Used internally to build a QueryPredicate.
    """
    predicates: List[Predicate]
    table_name: str
    is_complex: bool
    always_false: bool = False

    def get_partition_predicates(
        self,
        partition_key: str,
        tables: Optional[Iterable[str]] = None
    ) -> List[Predicate]:
        """
        Get predicates on the partition column.

        Args:
            partition_key: Partition key column
            tables: Names/aliases of the partitioned table; a key-named
                column qualified by any other table is not a key predicate
        """
        tables = None if tables is None else list(tables)
        return [p for p in self.predicates if p.is_on(partition_key, tables)]

    def get_secondary_predicates(
        self,
        partition_key: str,
        tables: Optional[Iterable[str]] = None
    ) -> List[Predicate]:
        """Get every predicate that is not a partition key predicate."""
        tables = None if tables is None else list(tables)
        return [p for p in self.predicates if not p.is_on(partition_key, tables)]

    def has_predicate_on(self, column: str) -> bool:
        """Check if any predicate references a column."""
        return any(p.column.lower() == column.lower() for p in self.predicates)


@dataclass(frozen=True)
class PartitionKeyRange:
    """
    Half-open key interval [lower, upper).

    upper=None is the catch-all (MAXVALUE) bound. lower=None is only
    legal for the leading partition of a scheme.
    """
    lower: Optional[Any]
    upper: Optional[Any] = None

    @property
    def is_catch_all(self) -> bool:
        return self.upper is None

    def contains(self, key: Any) -> bool:
        """Check if a single key value falls inside the range."""
        if self.lower is not None and key < self.lower:
            return False
        if self.upper is not None and key >= self.upper:
            return False
        return True

    def intersects(self, lower: Optional[Any], upper: Optional[Any]) -> bool:
        """
        Check if [lower, upper) overlaps this range.

        Args:
            lower: Inclusive lower bound, None for unbounded
            upper: Exclusive upper bound, None for unbounded

        Returns:
            True if at least one key value lies in both intervals
        """
        if lower is not None and upper is not None and lower >= upper:
            return False

        starts_before_end = upper is None or self.lower is None or self.lower < upper
        ends_after_start = lower is None or self.upper is None or lower < self.upper
        return starts_before_end and ends_after_start

    def __str__(self) -> str:
        lower = "-inf" if self.lower is None else str(self.lower)
        upper = "+inf" if self.upper is None else str(self.upper)
        return f"[{lower}, {upper})"


@dataclass(frozen=True)
class Partition:
    """A named partition and its relative row share."""
    name: str
    key_range: PartitionKeyRange
    row_weight: float = 1.0

    @property
    def lower(self) -> Optional[Any]:
        return self.key_range.lower

    @property
    def upper(self) -> Optional[Any]:
        return self.key_range.upper


@dataclass(frozen=True)
class PartitionScheme:
    """
    Ordered, contiguous range partitioning of a table.

    Schemes are immutable: add_trailing_partition and
    drop_leading_partition return new schemes.
    """
    partitions: Tuple[Partition, ...]
    key_column: str = "start_date"
    table_name: str = "bookings_partitioned"

    def __post_init__(self):
        object.__setattr__(self, "partitions", tuple(self.partitions))

    @classmethod
    def from_month_boundaries(
        cls,
        boundaries: Iterable[Tuple[str, int, int]],
        key_column: str = "start_date",
        table_name: str = "bookings_partitioned"
    ) -> "PartitionScheme":
        """
        Build a scheme from (name, lower_year, lower_month) entries.

        Each partition ends where the next one starts; the last entry
        becomes the catch-all partition. As with MySQL VALUES LESS THAN,
        the first partition also owns every key before its month.

        Example:
            >>> scheme = PartitionScheme.from_month_boundaries([
            ...     ("p_2024_01", 2024, 1),
            ...     ("p_2024_02", 2024, 2),
            ...     ("p_future", 2024, 3),
            ... ])
            >>> [str(p.key_range) for p in scheme]
            ['[-inf, 2024-02-01)', '[2024-02-01, 2024-03-01)', '[2024-03-01, +inf)']
        """
        entries = []
        for name, year, month in boundaries:
            try:
                entries.append((name, date(year, month, 1)))
            except (TypeError, ValueError) as e:
                raise InvalidSchemeError(
                    f"Invalid boundary {year}-{month}: {e}", [name]
                ) from e

        partitions = []
        for idx, (name, lower) in enumerate(entries):
            if idx == 0:
                lower = None
            upper = entries[idx + 1][1] if idx + 1 < len(entries) else None
            partitions.append(Partition(name, PartitionKeyRange(lower, upper)))

        return cls(tuple(partitions), key_column, table_name)

    @classmethod
    def monthly(
        cls,
        start: date,
        end: date,
        catch_all_name: str = "p_future",
        key_column: str = "start_date",
        table_name: str = "bookings_partitioned"
    ) -> "PartitionScheme":
        """
        One p_YYYY_MM partition per month in [start, end) plus a catch-all
        partition starting at end. The first month's partition is open
        below, so keys before `start` land there.
        """
        start, end = month_start(start), month_start(end)
        if end <= start:
            raise InvalidSchemeError(
                f"Monthly scheme end {end} must be after start {start}"
            )

        boundaries = []
        current = start
        while current < end:
            boundaries.append((partition_name(current), current.year, current.month))
            current = add_months(current, 1)
        boundaries.append((catch_all_name, end.year, end.month))

        return cls.from_month_boundaries(boundaries, key_column, table_name)

    def validate(self) -> "PartitionScheme":
        """
        Check ordering, contiguity and naming invariants.

        Returns:
            The scheme itself, for chaining

        Raises:
            InvalidSchemeError: On the first violated invariant
        """
        if not self.partitions:
            raise InvalidSchemeError(f"Scheme for '{self.table_name}' has no partitions")

        seen = set()
        duplicates = []
        for partition in self.partitions:
            if partition.name in seen:
                duplicates.append(partition.name)
            seen.add(partition.name)
        if duplicates:
            raise InvalidSchemeError("Duplicate partition names", duplicates)

        catch_alls = [p.name for p in self.partitions if p.upper is None]
        if len(catch_alls) > 1:
            raise InvalidSchemeError(
                "More than one partition has an unbounded upper bound", catch_alls
            )

        try:
            self._check_ranges()
        except TypeError as e:
            raise InvalidSchemeError(f"Partition bounds are not comparable: {e}") from e

        if self.total_weight <= 0:
            raise InvalidSchemeError("Total row weight must be positive")

        return self

    def _check_ranges(self):
        for idx, partition in enumerate(self.partitions):
            if not math.isfinite(partition.row_weight):
                raise InvalidSchemeError(
                    f"Row weight {partition.row_weight} is not finite", [partition.name]
                )
            if partition.row_weight < 0:
                raise InvalidSchemeError("Negative row weight", [partition.name])
            if partition.lower is None and idx != 0:
                raise InvalidSchemeError(
                    "Only the leading partition may have an unbounded lower bound",
                    [partition.name]
                )
            if (partition.lower is not None and partition.upper is not None
                    and partition.lower >= partition.upper):
                raise InvalidSchemeError(
                    f"Empty or inverted range {partition.key_range}", [partition.name]
                )

        for prev, curr in zip(self.partitions, self.partitions[1:]):
            names = [prev.name, curr.name]
            if prev.upper is None:
                raise InvalidSchemeError("Catch-all partition must be last", names)
            if prev.lower is not None and curr.lower < prev.lower:
                raise InvalidSchemeError("Partitions are not sorted by lower bound", names)
            if curr.lower < prev.upper:
                raise InvalidSchemeError("Partitions overlap", names)
            if curr.lower > prev.upper:
                raise InvalidSchemeError(
                    f"Gap between {prev.upper} and {curr.lower}", names
                )

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.partitions)

    @property
    def catch_all(self) -> Optional[Partition]:
        """The unbounded trailing partition, if any."""
        for partition in self.partitions:
            if partition.upper is None:
                return partition
        return None

    @property
    def total_weight(self) -> float:
        return sum(p.row_weight for p in self.partitions)

    def get(self, name: str) -> Partition:
        """Look up a partition by name."""
        for partition in self.partitions:
            if partition.name == name:
                return partition
        raise UnknownPartitionError(name)

    def add_trailing_partition(self, name: str, boundary: Any) -> "PartitionScheme":
        """
        Split the catch-all partition at `boundary`.

        The catch-all keeps its name for [lower, boundary) and a new
        catch-all `name` covers [boundary, +inf). The row weight of the
        old catch-all is shared equally between the two halves, so each
        further split halves the trailing share again; refresh the
        weights with with_row_weights when rolling months forward.

        Raises:
            NoCatchAllPartitionError: If there is no unbounded partition
            NonMonotonicBoundaryError: If boundary <= catch-all lower bound
            InvalidSchemeError: If `name` is already taken
        """
        catch_all = self.catch_all
        if catch_all is None:
            raise NoCatchAllPartitionError(self.table_name)

        if catch_all.lower is not None and not boundary > catch_all.lower:
            raise NonMonotonicBoundaryError(catch_all.name, catch_all.lower, boundary)

        if name in self.names:
            raise InvalidSchemeError(f"Partition name '{name}' already exists", [name])

        half = catch_all.row_weight / 2
        closed = replace(
            catch_all,
            key_range=PartitionKeyRange(catch_all.lower, boundary),
            row_weight=half
        )
        trailing = Partition(name, PartitionKeyRange(boundary, None), half)

        partitions = []
        for partition in self.partitions:
            if partition.name == catch_all.name:
                partitions.extend([closed, trailing])
            else:
                partitions.append(partition)

        return replace(self, partitions=tuple(partitions))

    def drop_leading_partition(self, name: str) -> "PartitionScheme":
        """
        Remove the first partition (archival).

        The next partition becomes the leading one and takes over every
        key below its upper bound, so the scheme still covers the whole
        key domain.

        Raises:
            UnknownPartitionError: If no partition is called `name`
            NotLeadingPartitionError: If `name` is not the first partition
        """
        self.get(name)
        leading = self.partitions[0]

        if leading.name != name:
            raise NotLeadingPartitionError(name, leading.name)

        if len(self.partitions) == 1:
            raise InvalidSchemeError("Cannot drop the only partition", [name])

        successor = self.partitions[1]
        successor = replace(successor, key_range=PartitionKeyRange(None, successor.upper))
        return replace(self, partitions=(successor,) + self.partitions[2:])

    def with_row_weights(self, weights: Dict[str, float]) -> "PartitionScheme":
        """Return a copy with externally supplied row counts or shares."""
        for name in weights:
            self.get(name)

        partitions = tuple(
            replace(p, row_weight=float(weights[p.name])) if p.name in weights else p
            for p in self.partitions
        )
        return replace(self, partitions=partitions)

    def __len__(self) -> int:
        return len(self.partitions)

    def __iter__(self) -> Iterator[Partition]:
        return iter(self.partitions)


@dataclass(frozen=True)
class QueryPredicate:
    """
    Range filter on the partition key, [lower, upper).

    Either bound may be None (unbounded). `selectivity` is the estimated
    fraction of rows passing an additional non-key filter, described by
    `secondary_filter` (e.g. "status = 'completed'").
    """
    lower: Optional[Any] = None
    upper: Optional[Any] = None
    selectivity: Optional[float] = None
    secondary_filter: Optional[str] = None

    @classmethod
    def full_domain(cls, **kwargs) -> "QueryPredicate":
        return cls(lower=None, upper=None, **kwargs)

    @property
    def is_empty(self) -> bool:
        return self.lower is not None and self.upper is not None and self.lower == self.upper

    @property
    def is_bounded(self) -> bool:
        return self.lower is not None or self.upper is not None

    def validate(self) -> "QueryPredicate":
        """
        Raises:
            InvalidPredicateError: If lower > upper or selectivity is outside [0, 1]
        """
        if self.lower is not None and self.upper is not None:
            try:
                inverted = self.lower > self.upper
            except TypeError as e:
                raise InvalidPredicateError(
                    f"Predicate bounds are not comparable: {e}", self.lower, self.upper
                ) from e
            if inverted:
                raise InvalidPredicateError(
                    f"Predicate lower bound {self.lower} is greater than "
                    f"upper bound {self.upper}",
                    self.lower,
                    self.upper
                )

        if self.selectivity is not None and not 0.0 <= self.selectivity <= 1.0:
            raise InvalidPredicateError(
                f"Selectivity {self.selectivity} is outside [0, 1]",
                self.lower,
                self.upper
            )

        return self

    def __str__(self) -> str:
        text = str(PartitionKeyRange(self.lower, self.upper))
        if self.secondary_filter:
            text += f" AND {self.secondary_filter}"
        return text


@dataclass(frozen=True)
class ScanPlan:
    """Result of planning a query against a partition scheme."""
    partitions: Tuple[str, ...]
    total_partitions: int
    scanned_fraction: float
    prunable: bool
    predicate: Optional[QueryPredicate] = None

    @property
    def partitions_scanned(self) -> int:
        return len(self.partitions)

    @property
    def pruning_ratio(self) -> float:
        if self.total_partitions == 0:
            return 0.0
        return 1.0 - (self.partitions_scanned / self.total_partitions)

    @property
    def speedup_estimate(self) -> float:
        """Relative cost of a non-partitioned full scan versus this plan."""
        if self.scanned_fraction <= 0:
            return 1.0
        return 1.0 / self.scanned_fraction

    def estimated_rows(self, total_rows: int) -> int:
        """Rows scanned out of `total_rows` under the row-share model."""
        return int(round(total_rows * self.scanned_fraction))

    def summary(self) -> str:
        """Human-readable summary."""
        return (
            f"Scan Plan:\n"
            f"  Partitions scanned: {self.partitions_scanned}/{self.total_partitions}\n"
            f"  Rows scanned: {self.scanned_fraction*100:.1f}%\n"
            f"  Partitions skipped: {self.pruning_ratio*100:.1f}%\n"
            f"  Estimated speedup: {self.speedup_estimate:.1f}x\n"
            f"  Prunable: {'yes' if self.prunable else 'no'}"
        )
