"""Loading and saving partition schemes as JSON."""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Sequence, Union

from partplan.core.errors import InvalidSchemeError
from partplan.core.months import parse_date
from partplan.core.types import Partition, PartitionKeyRange, PartitionScheme

logger = logging.getLogger(__name__)

SCHEME_FILE_ENV = "PARTPLAN_SCHEME_FILE"
TOTAL_ROWS_ENV = "PARTPLAN_TOTAL_ROWS"


def scheme_from_dict(data: Dict[str, Any]) -> PartitionScheme:
    """
    Build a scheme from its JSON form.

    Example:
        {
            "table": "bookings_partitioned",
            "key": "start_date",
            "partitions": [
                {"name": "p_2024_01", "lower": "2024-01-01"},
                {"name": "p_2024_02", "lower": "2024-02-01"},
                {"name": "p_future", "lower": "2024-03-01"}
            ]
        }

    A missing "upper" means the next entry's "lower"; the last entry
    without "upper" is the catch-all. "lower" may be null for the first
    partition and "weight" overrides the uniform row share.

    Raises:
        InvalidSchemeError: If an entry is malformed
    """
    entries = data.get("partitions")
    if not isinstance(entries, list):
        raise InvalidSchemeError("Scheme must contain a 'partitions' list")

    lowers = []
    for entry in entries:
        if not isinstance(entry, dict) or "name" not in entry:
            raise InvalidSchemeError(f"Partition entry without a name: {entry!r}")
        lowers.append(_parse_bound(entry, "lower"))

    partitions = []
    for idx, entry in enumerate(entries):
        if "upper" in entry:
            upper = _parse_bound(entry, "upper")
        else:
            upper = lowers[idx + 1] if idx + 1 < len(entries) else None

        try:
            weight = float(entry.get("weight", 1.0))
        except (TypeError, ValueError) as e:
            raise InvalidSchemeError(f"Invalid weight: {e}", [entry["name"]]) from e

        partitions.append(Partition(
            name=str(entry["name"]),
            key_range=PartitionKeyRange(lowers[idx], upper),
            row_weight=weight
        ))

    return PartitionScheme(
        partitions=tuple(partitions),
        key_column=data.get("key", "start_date"),
        table_name=data.get("table", "bookings_partitioned")
    )


def _parse_bound(entry: Dict[str, Any], field: str):
    value = entry.get(field)
    if value is None:
        return None
    try:
        return parse_date(str(value))
    except ValueError as e:
        raise InvalidSchemeError(
            f"Invalid {field} bound {value!r}: {e}", [str(entry["name"])]
        ) from e


def scheme_to_dict(scheme: PartitionScheme) -> Dict[str, Any]:
    """JSON form of a scheme; every bound is written explicitly."""
    partitions = []
    for partition in scheme:
        entry = {
            "name": partition.name,
            "lower": partition.lower.isoformat() if partition.lower is not None else None,
            "upper": partition.upper.isoformat() if partition.upper is not None else None,
        }
        if partition.row_weight != 1.0:
            entry["weight"] = partition.row_weight
        partitions.append(entry)

    return {
        "table": scheme.table_name,
        "key": scheme.key_column,
        "partitions": partitions,
    }


def load_scheme(path: Union[str, Path]) -> PartitionScheme:
    """
    Read a scheme from a JSON file.

    Raises:
        InvalidSchemeError: If the file is not valid JSON or not a scheme
    """
    path = Path(path)
    logger.debug("Loading partition scheme from %s", path)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidSchemeError(f"Invalid scheme JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidSchemeError(f"Scheme file {path} must contain a JSON object")

    try:
        return scheme_from_dict(data)
    except InvalidSchemeError as e:
        raise InvalidSchemeError(f"{path}: {e}") from e


def dump_scheme(scheme: PartitionScheme, path: Union[str, Path]):
    """Write a scheme to a JSON file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(scheme_to_dict(scheme), f, indent=2)
        f.write("\n")
    logger.debug("Wrote partition scheme to %s", path)


def parse_selectivities(values: Sequence[str]) -> Dict[str, float]:
    """
    Parse "column=selectivity" options.

    Example:
        >>> parse_selectivities(["status=0.25"])
        {'status': 0.25}

    Raises:
        ValueError: If an option is malformed or outside [0, 1]
    """
    selectivities = {}
    for value in values:
        column, sep, number = value.partition("=")
        if not sep or not column.strip():
            raise ValueError(f"Expected column=selectivity, got '{value}'")
        selectivity = float(number)
        if not 0.0 <= selectivity <= 1.0:
            raise ValueError(f"Selectivity for '{column}' must be within [0, 1]")
        selectivities[column.strip()] = selectivity
    return selectivities
