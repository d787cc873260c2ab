"""Partition pruning and scan cost estimation for range-partitioned tables."""
import logging
from typing import Any, List

from partplan.core.errors import InvalidPredicateError, UnknownPartitionError
from partplan.core.types import (
    Partition,
    PartitionScheme,
    QueryPredicate,
    ScanPlan,
)

logger = logging.getLogger(__name__)


class PartitionPlanner:
    """
    Decides which partitions a range predicate must scan.

    The planner holds only the (immutable) scheme it was built with, so
    a single instance can be shared between threads. Schema evolution
    returns new schemes; install one by building a new planner.
    """

    def __init__(self, scheme: PartitionScheme):
        """
        Initialize partition planner.

        Args:
            scheme: Partition scheme of the table

        Raises:
            InvalidSchemeError: If the scheme violates ordering/coverage rules
        """
        self.scheme = scheme.validate()

    def plan(self, predicate: QueryPredicate) -> ScanPlan:
        """
        Return the partitions that need to be scanned.

        Args:
            predicate: Range filter on the partition key

        Returns:
            ScanPlan with matched partitions (scheme order) and the
            estimated fraction of table rows scanned

        Raises:
            InvalidPredicateError: If lower > upper, selectivity is out of
                range, or the bounds cannot be compared with partition keys
        """
        predicate.validate()

        # Step 1: Match partitions (linear scan, schemes are small)
        matched = self._filter_partitions(predicate)

        # Step 2: Estimate scanned rows from row shares
        fraction = self._estimate_fraction(matched)
        if predicate.selectivity is not None:
            fraction *= predicate.selectivity

        total = len(self.scheme)
        plan = ScanPlan(
            partitions=tuple(p.name for p in matched),
            total_partitions=total,
            scanned_fraction=fraction,
            prunable=len(matched) < total,
            predicate=predicate
        )

        logger.debug(
            "Planned %s on %s: %d/%d partitions, fraction %.4f",
            predicate,
            self.scheme.table_name,
            plan.partitions_scanned,
            total,
            fraction
        )
        return plan

    def _filter_partitions(self, predicate: QueryPredicate) -> List[Partition]:
        """
        Collect partitions whose range intersects the predicate.

        Args:
            predicate: Validated query predicate

        Returns:
            Matching partitions in scheme order
        """
        if predicate.is_empty:
            return []

        try:
            return [
                partition for partition in self.scheme
                if partition.key_range.intersects(predicate.lower, predicate.upper)
            ]
        except TypeError as e:
            raise InvalidPredicateError(
                f"Predicate bounds are not comparable with partition keys: {e}",
                predicate.lower,
                predicate.upper
            ) from e

    def _estimate_fraction(self, partitions: List[Partition]) -> float:
        """
        Share of table rows held by `partitions`.

        Assumes rows are spread according to row_weight, which is uniform
        (1/N per partition) unless real counts were supplied.
        """
        if not partitions:
            return 0.0
        return sum(p.row_weight for p in partitions) / self.scheme.total_weight

    def locate(self, key: Any) -> Partition:
        """
        Find the partition a single key value is stored in.

        Raises:
            InvalidPredicateError: If the key is not comparable with partition keys
            UnknownPartitionError: If the key lies outside the covered domain
        """
        for partition in self.scheme:
            try:
                found = partition.key_range.contains(key)
            except TypeError as e:
                raise InvalidPredicateError(
                    f"Key {key!r} is not comparable with partition keys: {e}", key, key
                ) from e
            if found:
                return partition
        raise UnknownPartitionError(key)

    def add_trailing_partition(self, name: str, boundary: Any) -> PartitionScheme:
        """
        Split the catch-all partition at `boundary`.

        Returns:
            New validated scheme; this planner keeps the old one
        """
        scheme = self.scheme.add_trailing_partition(name, boundary).validate()
        logger.info(
            "Split catch-all of %s at %s, new catch-all '%s'",
            self.scheme.table_name,
            boundary,
            name
        )
        return scheme

    def drop_leading_partition(self, name: str) -> PartitionScheme:
        """
        Drop the leading partition `name`.

        Returns:
            New validated scheme; this planner keeps the old one
        """
        scheme = self.scheme.drop_leading_partition(name).validate()
        logger.info("Dropped leading partition '%s' of %s", name, self.scheme.table_name)
        return scheme
