"""Command-line interface for the partition planner."""
import click
import json
import logging
import sys
from datetime import date
from functools import wraps
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.panel import Panel
from rich.syntax import Syntax

from partplan.core.config import (
    SCHEME_FILE_ENV,
    TOTAL_ROWS_ENV,
    dump_scheme,
    load_scheme,
    parse_selectivities,
)
from partplan.core.errors import PartitionPlanError
from partplan.core.types import PartitionScheme, QueryPredicate, ScanPlan
from partplan.optimizer.partition_pruning import PartitionPlanner
from partplan.report.render import (
    add_partition_ddl,
    drop_partition_ddl,
    explain as explain_plan,
    partition_ddl,
)
from partplan.sqlglot.parser import SQLParser

console = Console()
err_console = Console(stderr=True)

MONTH = click.DateTime(formats=["%Y-%m", "%Y-%m-%d"])
DAY = click.DateTime(formats=["%Y-%m-%d"])


@click.group()
@click.version_option(version="0.1.0")
@click.option('--verbose', '-v', count=True, help='Increase log verbosity (-v info, -vv debug)')
def cli(verbose):
    """
    Partition Planner - range partition pruning and scan cost estimates

    Decides which monthly partitions of a range-partitioned table a date
    range has to scan, and how much of the table that is compared to an
    unpartitioned full scan.
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)]
    )


def scheme_options(f):
    """Options selecting the partition scheme (file or generated monthly)."""
    @click.option('--scheme-file', '-s', type=click.Path(exists=True, dir_okay=False),
                  envvar=SCHEME_FILE_ENV, help='Partition scheme JSON file')
    @click.option('--start', type=MONTH, default='2023-01', show_default=True,
                  help='First monthly partition (when no scheme file)')
    @click.option('--end', type=MONTH, default='2025-02', show_default=True,
                  help='Start of the catch-all partition (when no scheme file)')
    @click.option('--catch-all', default='p_future', show_default=True,
                  help='Name of the catch-all partition')
    @click.option('--table', default='bookings_partitioned', show_default=True,
                  help='Partitioned table name')
    @click.option('--key', default='start_date', show_default=True,
                  help='Partition key column')
    @wraps(f)
    def wrapper(scheme_file, start, end, catch_all, table, key, **kwargs):
        if scheme_file:
            scheme = load_scheme(scheme_file)
        else:
            scheme = PartitionScheme.monthly(
                start.date(),
                end.date(),
                catch_all_name=catch_all,
                key_column=key,
                table_name=table
            )
        return f(scheme=scheme, **kwargs)
    return wrapper


def handle_errors(f):
    """Print planner errors in red and exit with status 1."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (PartitionPlanError, ValueError, OSError) as e:
            console.print(f"[red]Error: {e}[/red]", highlight=False)
            sys.exit(1)
    return wrapper


@cli.command()
@handle_errors
@scheme_options
def partitions(scheme):
    """
    Show the partition scheme.

    Examples:

        partplan partitions

        partplan partitions --start 2024-01 --end 2025-01

        partplan partitions --scheme-file bookings.json
    """
    _display_scheme(scheme.validate())


@cli.command()
@handle_errors
@scheme_options
@click.option('--from', 'date_from', type=DAY, help='Inclusive lower bound (YYYY-MM-DD)')
@click.option('--to', 'date_to', type=DAY, help='Exclusive upper bound (YYYY-MM-DD)')
@click.option('--selectivity', type=float, help='Selectivity of an extra non-key filter')
@click.option('--filter', 'secondary_filter', type=str, help='Description of the extra filter')
@click.option('--total-rows', type=int, envvar=TOTAL_ROWS_ENV, help='Table row count')
@click.option('--format', '-f', type=click.Choice(['table', 'json'], case_sensitive=False),
              default='table', help='Output format')
def plan(scheme, date_from, date_to, selectivity, secondary_filter, total_rows, format):
    """
    Plan a date range on the partition key.

    Examples:

        # Summer 2024 bookings
        partplan plan --from 2024-06-01 --to 2024-09-01

        # Completed bookings only (about a quarter of all rows)
        partplan plan --from 2024-06-01 --to 2024-09-01 --selectivity 0.25 \\
            --filter "status = 'completed'"
    """
    predicate = QueryPredicate(
        lower=_as_date(date_from),
        upper=_as_date(date_to),
        selectivity=selectivity,
        secondary_filter=secondary_filter
    )

    planner = PartitionPlanner(scheme)
    result = planner.plan(predicate)

    _display_plan(result, scheme, total_rows, format)


@cli.command()
@handle_errors
@click.argument('sql', type=str)
@scheme_options
@click.option('--selectivity', '-S', 'selectivity_options', multiple=True,
              help='Column selectivity, e.g. status=0.25 (repeatable)')
@click.option('--default-selectivity', type=float,
              help='Selectivity for filtered columns without an explicit value')
@click.option('--dialect', default='mysql', show_default=True, help='SQL dialect')
@click.option('--total-rows', type=int, envvar=TOTAL_ROWS_ENV, help='Table row count')
@click.option('--format', '-f', type=click.Choice(['table', 'json'], case_sensitive=False),
              default='table', help='Output format')
@click.option('--show-sql', is_flag=True, help='Echo the query before the plan')
def explain(sql, scheme, selectivity_options, default_selectivity, dialect, total_rows,
            format, show_sql):
    """
    Explain which partitions a SQL query scans.

    Only the WHERE clause is inspected: comparisons on the partition key
    bound the scan, other filters scale it by their selectivity.

    Examples:

        partplan explain "SELECT * FROM bookings_partitioned
            WHERE start_date >= '2024-06-01' AND start_date < '2024-09-01'"

        partplan explain "SELECT * FROM bookings_partitioned
            WHERE status = 'completed'" -S status=0.25
    """
    if show_sql:
        console.print(Syntax(sql.strip(), "sql", theme="monokai", line_numbers=False))

    parser = SQLParser(dialect=dialect)
    predicate = parser.to_query_predicate(
        sql,
        scheme.key_column,
        selectivities=parse_selectivities(selectivity_options),
        default_selectivity=default_selectivity,
        table_name=scheme.table_name
    )

    planner = PartitionPlanner(scheme)
    result = planner.plan(predicate)

    _display_plan(result, scheme, total_rows, format)


@cli.command()
@handle_errors
@scheme_options
def ddl(scheme):
    """
    Print the MySQL partitioning statement for the scheme.

    Example:

        partplan ddl --start 2024-01 --end 2025-01
    """
    scheme.validate()
    console.print(Syntax(partition_ddl(scheme), "sql", theme="monokai", line_numbers=False))


@cli.command('add-partition')
@handle_errors
@click.argument('name', type=str)
@click.argument('boundary', type=MONTH)
@scheme_options
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Write the new scheme as JSON')
def add_partition(name, boundary, scheme, output):
    """
    Split the catch-all partition at BOUNDARY.

    The catch-all keeps its name up to BOUNDARY and NAME becomes the new
    catch-all.

    Example:

        partplan add-partition p_future_2 2025-03 --scheme-file bookings.json
    """
    planner = PartitionPlanner(scheme)
    new_scheme = planner.add_trailing_partition(name, boundary.date())

    console.print(Syntax(add_partition_ddl(scheme, new_scheme), "sql",
                         theme="monokai", line_numbers=False))
    _display_scheme(new_scheme)
    _write_scheme(new_scheme, output)


@cli.command('drop-partition')
@handle_errors
@click.argument('name', type=str)
@scheme_options
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Write the new scheme as JSON')
def drop_partition(name, scheme, output):
    """
    Drop (archive) the leading partition NAME.

    Example:

        partplan drop-partition p_2023_01 --scheme-file bookings.json
    """
    planner = PartitionPlanner(scheme)
    new_scheme = planner.drop_leading_partition(name)

    console.print(Syntax(drop_partition_ddl(scheme, name), "sql",
                         theme="monokai", line_numbers=False))
    _display_scheme(new_scheme)
    _write_scheme(new_scheme, output)


# Helper functions

def _as_date(value) -> Optional[date]:
    return value.date() if value is not None else None


def _display_scheme(scheme: PartitionScheme):
    """Display partitions as a table."""
    console.print(Panel.fit(
        f"[bold cyan]{scheme.table_name}[/bold cyan] partitioned by {scheme.key_column}",
        border_style="cyan"
    ))

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Partition")
    table.add_column("From", justify="right")
    table.add_column("Until", justify="right")
    table.add_column("Row Share", justify="right")

    total_weight = scheme.total_weight
    for partition in scheme:
        share = partition.row_weight / total_weight if total_weight else 0.0
        table.add_row(
            partition.name,
            str(partition.lower) if partition.lower is not None else "-inf",
            str(partition.upper) if partition.upper is not None else "MAXVALUE",
            f"{share:.1%}"
        )

    console.print(table)
    console.print(f"[green]{len(scheme)} partitions[/green]")


def _display_plan(result: ScanPlan, scheme: PartitionScheme, total_rows, format):
    """Display a scan plan as text or JSON."""
    if format == 'json':
        click.echo(json.dumps(_plan_to_dict(result, scheme, total_rows), indent=2))
        return

    console.print(explain_plan(result, scheme, total_rows), markup=False, highlight=False)


def _plan_to_dict(result: ScanPlan, scheme: PartitionScheme, total_rows) -> dict:
    predicate = result.predicate or QueryPredicate.full_domain()
    data = {
        "table": scheme.table_name,
        "key": scheme.key_column,
        "predicate": {
            "lower": predicate.lower.isoformat() if predicate.lower is not None else None,
            "upper": predicate.upper.isoformat() if predicate.upper is not None else None,
            "selectivity": predicate.selectivity,
            "secondary_filter": predicate.secondary_filter,
        },
        "partitions": list(result.partitions),
        "partitions_scanned": result.partitions_scanned,
        "total_partitions": result.total_partitions,
        "scanned_fraction": result.scanned_fraction,
        "prunable": result.prunable,
        "speedup_estimate": result.speedup_estimate,
    }
    if total_rows is not None:
        data["estimated_rows"] = result.estimated_rows(total_rows)
    return data


def _write_scheme(scheme: PartitionScheme, output: Optional[str]):
    if not output:
        return
    dump_scheme(scheme, output)
    console.print(f"[green]Scheme written to: {output}[/green]")


if __name__ == '__main__':
    cli()
