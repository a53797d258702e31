"""
SQL planner
===========

Compiles a QueryIR against one ReportTemplate into a parameterized SqlPlan.

Values never enter the SQL text: every filter value and the limit are bound
through positional ``?`` placeholders, in left-to-right order.
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .ir_models import Operator, Predicate, Projection, QueryIR
from .knowledge import (
    COLUMNS_PLACEHOLDER,
    CONDITIONS_PLACEHOLDER,
    ColumnSpec,
    FilterRule,
    ReportTemplate,
)

logger = logging.getLogger(__name__)

DATE_INPUT_FORMATS = ("%d.%m.%Y", "%d/%m/%Y", "%Y-%m-%d")
DATE_STORAGE_FORMAT = "%Y%m%d"

SAFE_SORT_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_.]*$", re.IGNORECASE)

ParamValue = Optional[Union[int, str]]


def normalize_date(value: str) -> Optional[str]:
    """
    Normalize a user-typed date to the ``yyyymmdd`` storage format.

    Args:
        value: e.g. "1.2.2024", "01/02/2024" or "2024-02-01"

    Returns:
        "20240201", or None when the value matches none of the input formats
    """
    value = (value or "").strip()
    for fmt in DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(value, fmt).strftime(DATE_STORAGE_FORMAT)
        except ValueError:
            continue
    return None


class SqlPlan(BaseModel):
    """SQL text plus everything an executor and a renderer need."""
    sql: str
    params: List[ParamValue] = Field(default_factory=list)
    headers: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class ReportPlanner:
    """
    Plans QueryIRs for a single report template.

    The keyword index (canonical key or keyword -> ColumnSpec) is built once;
    the planner holds no per-call state and can be shared between threads.
    """

    def __init__(self, template: ReportTemplate):
        self.template = template
        self.keyword_index: Dict[str, ColumnSpec] = {}

        # canonical keys win over keywords; first registration wins
        for spec in template.column_list:
            self.keyword_index.setdefault(spec.canonical_key.lower(), spec)
        for spec in template.column_list:
            for kw in spec.keywords:
                self.keyword_index.setdefault(kw.strip().lower(), spec)

    def resolve_column(self, field: str) -> Optional[ColumnSpec]:
        return self.keyword_index.get(field.strip().lower())

    def plan(self, ir: QueryIR) -> SqlPlan:
        """Main planning method."""
        skipped: List[str] = []
        warnings: List[str] = []

        # 1. SELECT list
        columns = self.calculate_final_columns(ir.projections)
        column_sql = ",\n    ".join(spec.sql_definition for spec in columns)

        # 2. WHERE conditions
        conditions, params = self._build_conditions(ir.predicates, skipped, warnings)

        # 3. skeleton
        sql = (
            self.template.sql_skeleton
            .replace(COLUMNS_PLACEHOLDER, column_sql)
            .replace(CONDITIONS_PLACEHOLDER, conditions)
        )

        # 4. ORDER BY
        order_by = self._build_order_by(ir, skipped)
        if order_by:
            sql += "\nORDER BY " + order_by

        # 5. LIMIT
        if ir.limit is not None and ir.limit > 0:
            sql += "\nLIMIT ?"
            params.append(ir.limit)

        return SqlPlan(
            sql=sql,
            params=params,
            headers=[spec.display_alias for spec in columns],
            skipped=skipped,
            warnings=warnings
        )

    # --- column selection ---

    def calculate_final_columns(self, projections: List[Projection]) -> List[ColumnSpec]:
        """
        Decide the SELECT list for a projection list.

        - no projections: every template column in declared order
        - any exclusion ("außer"): every column minus the excluded ones
        - otherwise: the requested columns, pinned ("zuerst") ones first
        """
        all_columns = self.template.column_list
        if not projections:
            return all_columns

        if any(p.exclude for p in projections):
            excluded = {
                spec.sql_definition
                for p in projections if p.exclude
                for spec in [self.resolve_column(p.field)] if spec is not None
            }
            return [spec for spec in all_columns if spec.sql_definition not in excluded]

        pinned = [p for p in projections if p.order == 0]
        rest = [p for p in projections if p.order != 0]

        seen = set()
        result = []
        for p in pinned + rest:
            spec = self.resolve_column(p.field)
            if spec is None:
                logger.debug("Projection '%s' matches no column of '%s'", p.field, self.template.name)
                continue
            if spec.sql_definition in seen:
                continue
            seen.add(spec.sql_definition)
            result.append(spec)
        return result

    # --- conditions ---

    def _build_conditions(
        self,
        predicates: List[Predicate],
        skipped: List[str],
        warnings: List[str]
    ) -> Tuple[str, List[ParamValue]]:
        fragments = []
        params: List[ParamValue] = []

        for pred in predicates:
            spec = self.resolve_column(pred.field)
            key = spec.canonical_key if spec is not None else pred.field
            rule = self.template.filter_rule(key, pred.op)
            if rule is None:
                skipped.append(f"filter {pred.field} {pred.op.value}")
                logger.debug("No %s rule for '%s' in '%s', predicate skipped", pred.op.value, key, self.template.name)
                continue

            if pred.op is Operator.BETWEEN:
                raw_values = list(pred.value)
            else:
                raw_values = [pred.value] * rule.placeholders

            fragments.append(rule.sql)
            params.extend(self._transform(rule, v, key, warnings) for v in raw_values)

        return (" AND ".join(fragments) if fragments else "1=1"), params

    def _transform(self, rule: FilterRule, value: str, field: str, warnings: List[str]) -> ParamValue:
        if rule.transform == "upper":
            return value.strip().upper()
        if rule.transform == "date":
            normalized = normalize_date(value)
            if normalized is None:
                message = f"Unparseable date '{value}' for '{field}', bound as NULL"
                warnings.append(message)
                logger.warning(message)
            return normalized
        return value

    # --- ORDER BY ---

    def _build_order_by(self, ir: QueryIR, skipped: List[str]) -> str:
        items = []
        for sort in ir.sort_orders:
            target = self._sort_target(sort.field)
            if target is None:
                skipped.append(f"sort {sort.field}")
                logger.debug("Sort field '%s' is not a known column, skipped", sort.field)
                continue
            items.append(f"{target} {sort.direction.value}")
        return ", ".join(items)

    def _sort_target(self, field: str) -> Optional[str]:
        alias = self.template.sort_alias(field)
        if alias is not None:
            return alias
        spec = self.resolve_column(field)
        if spec is not None and SAFE_SORT_IDENTIFIER.match(spec.qualified_expression):
            return spec.qualified_expression
        if SAFE_SORT_IDENTIFIER.match(field.strip()):
            return field.strip()
        return None
