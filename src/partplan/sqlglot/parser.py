"""SQL parsing and predicate extraction using SQLGlot."""
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError
from sqlglot.optimizer import optimize
from sqlglot.optimizer import (
    qualify,
    simplify,
    normalize,
)

from partplan.core.months import parse_date
from partplan.core.types import (
    Predicate,
    PredicateOperator,
    PredicateExtractionResult,
    QueryPredicate,
)

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

# Operator mirror for "literal <op> column" comparisons
FLIPPED = {
    PredicateOperator.GT: PredicateOperator.LT,
    PredicateOperator.GTE: PredicateOperator.LTE,
    PredicateOperator.LT: PredicateOperator.GT,
    PredicateOperator.LTE: PredicateOperator.GTE,
}


class SQLParser:
    """Parses SQL queries and turns WHERE clauses into query predicates."""

    def __init__(self, dialect: str = "mysql"):
        """
        Initialize parser.

        Args:
            dialect: SQL dialect (mysql, postgres, spark, etc.)
        """
        self.dialect = dialect

    def parse(self, sql: str) -> exp.Expression:
        """
        Parse SQL string into AST.

        Args:
            sql: SQL query string

        Returns:
            SQLGlot expression (AST)

        Raises:
            ValueError: If the SQL cannot be parsed
        """
        try:
            ast = sqlglot.parse_one(sql, dialect=self.dialect)
        except (ParseError, TokenError) as e:
            raise ValueError(f"Failed to parse SQL: {e}") from e
        if ast is None:
            raise ValueError("Failed to parse SQL: empty statement")
        return ast

    def optimize(
        self,
        ast: exp.Expression,
        schema: Optional[dict] = None,
        rules: Optional[List] = None
    ) -> exp.Expression:
        """
        Apply optimization rules to AST.

        Args:
            ast: Parsed SQL expression
            schema: Optional schema information
            rules: Specific rules to apply (default: qualify, simplify, normalize)

        Returns:
            Optimized AST, or the original AST if optimization fails
        """
        if rules is None:
            rules = [
                qualify.qualify,
                simplify.simplify,
                normalize.normalize,
            ]

        try:
            return optimize(
                ast,
                schema=schema,
                dialect=self.dialect,
                rules=rules,
                validate_qualify_columns=False
            )
        except Exception as e:
            logger.warning("Optimization failed, using unoptimized query: %s", e)
            return ast

    def extract_tables(self, ast: exp.Expression) -> List[str]:
        """
        Extract all table names from query.

        Args:
            ast: Parsed SQL expression

        Returns:
            List of table names
        """
        return [table.name for table in ast.find_all(exp.Table)]

    def extract_where_clause(self, ast: exp.Expression) -> Optional[exp.Where]:
        """
        Extract WHERE clause from query.

        Args:
            ast: Parsed SQL expression

        Returns:
            WHERE clause or None
        """
        return ast.find(exp.Where)

    def extract_predicates(
        self,
        ast: exp.Expression,
        table_name: Optional[str] = None
    ) -> PredicateExtractionResult:
        """
        Extract predicates from WHERE clause.

        Args:
            ast: Parsed (and optionally optimized) SQL expression
            table_name: Table the predicates are reported for

        Returns:
            PredicateExtractionResult with extracted predicates
        """
        where = self.extract_where_clause(ast)

        if not where:
            return PredicateExtractionResult(
                predicates=[],
                table_name=table_name or "",
                is_complex=False
            )

        condition = where.this

        return PredicateExtractionResult(
            predicates=self._extract_simple_predicates(condition),
            table_name=table_name or "",
            is_complex=self._has_or_not(condition),
            always_false=isinstance(condition, exp.Boolean) and not condition.this
        )

    def to_query_predicate(
        self,
        sql: str,
        partition_key: str,
        selectivities: Optional[Dict[str, float]] = None,
        default_selectivity: Optional[float] = None,
        schema: Optional[dict] = None,
        table_name: Optional[str] = None
    ) -> QueryPredicate:
        """
        Build the planner input for a query.

        Comparisons on `partition_key` of the partitioned table are folded
        into one half-open day range. Filters on other columns, or on a
        same-named column of another joined table, become the secondary
        filter.

        Args:
            sql: SQL query string
            partition_key: Partition key column (e.g. start_date)
            selectivities: Estimated selectivity per secondary column
            default_selectivity: Selectivity for columns not in `selectivities`
            schema: Optional schema for the optimizer
            table_name: Partitioned table (default: first table in the query)

        Returns:
            QueryPredicate (unbounded if the WHERE clause is too complex)

        Example:
            >>> SQLParser().to_query_predicate(
            ...     "SELECT * FROM bookings_partitioned "
            ...     "WHERE start_date >= '2024-06-01' AND start_date < '2024-09-01'",
            ...     "start_date",
            ... )
            QueryPredicate(lower=datetime.date(2024, 6, 1), upper=datetime.date(2024, 9, 1), selectivity=None, secondary_filter=None)
        """
        ast = self.optimize(self.parse(sql), schema=schema)
        tables = self.extract_tables(ast)
        table_name = table_name or (tables[0] if tables else None)
        extraction = self.extract_predicates(ast, table_name)
        key_tables = self._table_references(ast, table_name)

        if extraction.always_false:
            # simplify folded contradictory bounds into FALSE
            return QueryPredicate(lower=date.min, upper=date.min)

        if extraction.is_complex:
            # OR / NOT → scan everything, no secondary estimate
            logger.info("WHERE clause contains OR/NOT, planning a full scan")
            return QueryPredicate.full_domain()

        lower, upper = self._fold_key_bounds(
            extraction.get_partition_predicates(partition_key, key_tables)
        )

        secondary = extraction.get_secondary_predicates(partition_key, key_tables)
        selectivity = self._combined_selectivity(
            secondary, selectivities or {}, default_selectivity
        )
        secondary_filter = " AND ".join(p.sql for p in secondary) if secondary else None

        return QueryPredicate(
            lower=lower,
            upper=upper,
            selectivity=selectivity,
            secondary_filter=secondary_filter
        )

    def _table_references(
        self,
        ast: exp.Expression,
        table_name: Optional[str]
    ) -> Optional[List[str]]:
        """
        Names and aliases the query uses for `table_name`.

        Returns:
            None if the table does not appear in the query, in which case
            columns are matched by name alone
        """
        if not table_name:
            return None

        references = []
        for table in ast.find_all(exp.Table):
            if table.name.lower() == table_name.lower():
                references.extend([table.name, table.alias_or_name])

        return references or None

    def _fold_key_bounds(
        self,
        predicates: List[Predicate]
    ) -> Tuple[Optional[date], Optional[date]]:
        """
        Intersect key comparisons into a single [lower, upper) range.

        Contradictory comparisons collapse to an empty range. Values that
        are not dates are skipped, which only widens the range.
        """
        lower = None
        upper = None

        for predicate in predicates:
            try:
                bounds = self._key_bounds(predicate)
            except ValueError as e:
                logger.warning("Ignoring predicate %s: %s", predicate.sql, e)
                continue

            if bounds is None:
                continue

            low, high = bounds
            if low is not None:
                lower = low if lower is None else max(lower, low)
            if high is not None:
                upper = high if upper is None else min(upper, high)

        if lower is not None and upper is not None and lower > upper:
            upper = lower

        return lower, upper

    def _key_bounds(
        self,
        predicate: Predicate
    ) -> Optional[Tuple[Optional[date], Optional[date]]]:
        """
        Day range implied by one comparison on a DATE key.

        Timestamps with a time of day are widened to their whole day.

        Returns:
            (lower, upper) with None for an open side, or None if the
            operator says nothing about the range (!=, LIKE, ...)
        """
        op = predicate.operator

        if op == PredicateOperator.BETWEEN:
            low, high = predicate.value
            return self._to_day(low)[0], self._to_day(high)[0] + ONE_DAY

        if op == PredicateOperator.IN:
            days = [self._to_day(v)[0] for v in predicate.value]
            if not days:
                return None
            return min(days), max(days) + ONE_DAY

        if op not in (
            PredicateOperator.EQ,
            PredicateOperator.GT,
            PredicateOperator.GTE,
            PredicateOperator.LT,
            PredicateOperator.LTE,
        ):
            return None

        day, whole_day = self._to_day(predicate.value)

        if op == PredicateOperator.EQ:
            return day, day + ONE_DAY
        if op == PredicateOperator.GTE:
            return day, None
        if op == PredicateOperator.GT:
            return (day + ONE_DAY if whole_day else day), None
        if op == PredicateOperator.LT:
            return None, (day if whole_day else day + ONE_DAY)
        return None, day + ONE_DAY

    def _to_day(self, value: Any) -> Tuple[date, bool]:
        """Parse a literal into (day, value_is_midnight)."""
        if value is None or isinstance(value, (list, tuple)):
            raise ValueError(f"not a date literal: {value!r}")

        text = str(value).strip()
        day = parse_date(text)
        whole_day = len(text) <= 10 or datetime.fromisoformat(text).time() == time.min
        return day, whole_day

    def _combined_selectivity(
        self,
        predicates: List[Predicate],
        selectivities: Dict[str, float],
        default: Optional[float]
    ) -> Optional[float]:
        """
        Multiply per-column selectivities (independence assumption).

        Returns:
            None if no secondary predicate has a known selectivity
        """
        lookup = {column.lower(): value for column, value in selectivities.items()}
        known = []
        for predicate in predicates:
            value = lookup.get(predicate.column.lower(), default)
            if value is not None:
                known.append(value)

        if not known:
            return None

        combined = 1.0
        for value in known:
            combined *= value
        return combined

    def _has_or_not(self, expression: exp.Expression) -> bool:
        """Check if expression contains OR or NOT."""
        return expression.find(exp.Or, exp.Not) is not None

    def _extract_simple_predicates(self, expression: exp.Expression) -> List[Predicate]:
        """
        Extract simple predicates from expression.

        Handles: column = value, column > value, IN, BETWEEN, LIKE
        Skips: OR conditions, NOT conditions, column-to-column comparisons

        Args:
            expression: SQLGlot expression to analyze

        Returns:
            List of Predicate objects
        """
        predicates = []

        # Handle AND chains
        if isinstance(expression, exp.And):
            predicates.extend(self._extract_simple_predicates(expression.left))
            predicates.extend(self._extract_simple_predicates(expression.right))
            return predicates

        if isinstance(expression, exp.Paren):
            return self._extract_simple_predicates(expression.this)

        # Handle comparison operators
        comparison_types = {
            exp.EQ: PredicateOperator.EQ,
            exp.NEQ: PredicateOperator.NEQ,
            exp.GT: PredicateOperator.GT,
            exp.GTE: PredicateOperator.GTE,
            exp.LT: PredicateOperator.LT,
            exp.LTE: PredicateOperator.LTE,
            exp.Like: PredicateOperator.LIKE,
        }

        for exp_type, pred_op in comparison_types.items():
            if isinstance(expression, exp_type):
                predicate = self._build_predicate(expression, pred_op)
                if predicate:
                    predicates.append(predicate)
                return predicates

        if isinstance(expression, exp.In) and isinstance(expression.this, exp.Column):
            predicates.append(Predicate(
                column=expression.this.name,
                operator=PredicateOperator.IN,
                value=[self._extract_value(e) for e in expression.expressions],
                sql=expression.sql(dialect=self.dialect),
                table=expression.this.table or None
            ))
        elif isinstance(expression, exp.Between) and isinstance(expression.this, exp.Column):
            predicates.append(Predicate(
                column=expression.this.name,
                operator=PredicateOperator.BETWEEN,
                value=(
                    self._extract_value(expression.args.get("low")),
                    self._extract_value(expression.args.get("high")),
                ),
                sql=expression.sql(dialect=self.dialect),
                table=expression.this.table or None
            ))

        return predicates

    def _build_predicate(
        self,
        expression: exp.Binary,
        operator: PredicateOperator
    ) -> Optional[Predicate]:
        """
        Build a Predicate from a comparison expression.

        Args:
            expression: Comparison expression
            operator: Predicate operator

        Returns:
            Predicate object or None
        """
        left = expression.left
        right = expression.right

        # Normalise "'2024-06-01' <= start_date" to "start_date >= '2024-06-01'"
        if not isinstance(left, exp.Column) and isinstance(right, exp.Column):
            left, right = right, left
            operator = FLIPPED.get(operator, operator)

        if not isinstance(left, exp.Column) or isinstance(right, exp.Column):
            return None

        return Predicate(
            column=left.name,
            operator=operator,
            value=self._extract_value(right),
            sql=expression.sql(dialect=self.dialect),
            table=left.table or None
        )

    def _extract_value(self, expression: Optional[exp.Expression]) -> Any:
        """
        Extract literal value from expression.

        Args:
            expression: SQLGlot expression

        Returns:
            Python value
        """
        if isinstance(expression, exp.Literal):
            return expression.this

        elif isinstance(expression, exp.Cast):
            return self._extract_value(expression.this)

        elif isinstance(expression, exp.Tuple):
            return [self._extract_value(e) for e in expression.expressions]

        elif expression is None or isinstance(expression, exp.Null):
            return None

        elif isinstance(expression, exp.Boolean):
            return expression.this

        else:
            return expression.sql(dialect=self.dialect)
