"""Range partition pruning and scan cost estimation."""
from partplan.core.errors import (
    InvalidPredicateError,
    InvalidSchemeError,
    NoCatchAllPartitionError,
    NonMonotonicBoundaryError,
    NotLeadingPartitionError,
    PartitionPlanError,
    UnknownPartitionError,
)
from partplan.core.types import (
    Partition,
    PartitionKeyRange,
    PartitionScheme,
    QueryPredicate,
    ScanPlan,
)
from partplan.optimizer.partition_pruning import PartitionPlanner

__all__ = [
    "InvalidPredicateError",
    "InvalidSchemeError",
    "NoCatchAllPartitionError",
    "NonMonotonicBoundaryError",
    "NotLeadingPartitionError",
    "Partition",
    "PartitionKeyRange",
    "PartitionPlanError",
    "PartitionPlanner",
    "PartitionScheme",
    "QueryPredicate",
    "ScanPlan",
    "UnknownPartitionError",
]
