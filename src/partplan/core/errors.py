"""Errors raised by the partition planner."""
from typing import Any, Optional, Sequence


class PartitionPlanError(Exception):
    """Base class for all planner errors."""


class InvalidSchemeError(PartitionPlanError):
    """
    Partition list is malformed or does not cover the key domain.

    Raised when a planner is constructed from (or a scheme evolves into)
    an unsorted, overlapping, gapped or duplicated partition list.
    """

    def __init__(self, message: str, partitions: Sequence[str] = ()):
        self.partitions = tuple(partitions)
        if self.partitions:
            message = f"{message} (partitions: {', '.join(self.partitions)})"
        super().__init__(message)


class InvalidPredicateError(PartitionPlanError):
    """Query predicate bounds or selectivity are malformed."""

    def __init__(self, message: str, lower: Any = None, upper: Any = None):
        self.lower = lower
        self.upper = upper
        super().__init__(message)


class NoCatchAllPartitionError(PartitionPlanError):
    """Scheme has no unbounded trailing partition to split."""

    def __init__(self, table: Optional[str] = None):
        self.table = table
        target = f" of table '{table}'" if table else ""
        super().__init__(f"No catch-all (MAXVALUE) partition in scheme{target}")


class NonMonotonicBoundaryError(PartitionPlanError):
    """New boundary does not lie strictly after the catch-all's lower bound."""

    def __init__(self, partition: str, lower: Any, boundary: Any):
        self.partition = partition
        self.lower = lower
        self.boundary = boundary
        super().__init__(
            f"Boundary {boundary} must be greater than lower bound {lower} "
            f"of catch-all partition '{partition}'"
        )


class NotLeadingPartitionError(PartitionPlanError):
    """Only the first partition of a scheme may be dropped."""

    def __init__(self, partition: str, leading: str):
        self.partition = partition
        self.leading = leading
        super().__init__(
            f"Cannot drop partition '{partition}': only the leading "
            f"partition '{leading}' can be dropped"
        )


class UnknownPartitionError(PartitionPlanError):
    """No partition matches the given name or key."""

    def __init__(self, partition: Any):
        self.partition = partition
        super().__init__(f"Unknown partition: {partition}")
