"""
Knowledge base
==============

Declarative description of the reportable schema: per reporting domain a
``ReportTemplate`` with its column library, SQL skeleton, filter dispatch
table and ORDER BY aliases. Templates are loaded once from json5 files and
are read-only afterwards.
"""

import logging
from pathlib import Path
from typing import Dict, List, Literal, Optional, Protocol, Tuple, Union

import json5
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import KnowledgeBaseError
from .ir_models import Context, Operator
from .settings import get_settings

logger = logging.getLogger(__name__)

COLUMNS_PLACEHOLDER = "{COLUMNS}"
CONDITIONS_PLACEHOLDER = "{CONDITIONS}"


# ==============================================================================
# Template models
# ==============================================================================

class ColumnSpec(BaseModel):
    """One selectable column of a report."""
    canonical_key: str
    sql_expression: str
    display_alias: str
    table_alias: str = ""
    keywords: Tuple[str, ...] = ()
    is_numeric: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def qualified_expression(self) -> str:
        expr = self.sql_expression.strip()
        # sub-selects and already qualified columns are used verbatim
        if expr.startswith("(") or "." in expr or not self.table_alias.strip():
            return expr
        return f"{self.table_alias.strip()}.{expr}"

    @property
    def sql_definition(self) -> str:
        """The SELECT-list fragment, e.g. ``COALESCE(RTRIM(LTRIM(LAL.LU_VSN)), '') AS "VSN"``."""
        if self.is_numeric:
            return f'{self.qualified_expression} AS "{self.display_alias}"'
        return f'COALESCE(RTRIM(LTRIM({self.qualified_expression})), \'\') AS "{self.display_alias}"'


class FilterRule(BaseModel):
    """
    SQL fragment for one (field, operator) combination.

    ``transform`` is applied to every bound value: ``upper`` trims and
    upper-cases, ``date`` normalizes to the ``yyyymmdd`` storage format,
    ``raw`` binds the value unchanged.
    """
    sql: str
    transform: Literal["raw", "upper", "date"] = "raw"

    model_config = ConfigDict(frozen=True)

    @property
    def placeholders(self) -> int:
        return self.sql.count("?")


class ReportTemplate(BaseModel):
    """A report definition for one domain."""
    name: str
    context: Context
    keywords: Tuple[str, ...] = ()
    columns: Dict[str, ColumnSpec]
    sql_skeleton: str
    filters: Dict[str, Dict[Operator, FilterRule]] = Field(default_factory=dict)
    sort_aliases: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _inject_canonical_keys(cls, data):
        # json5 files key columns by canonical name; mirror it into each spec
        if isinstance(data, dict) and isinstance(data.get("columns"), dict):
            data = dict(data)
            data["columns"] = {
                key: ({"canonical_key": key, **spec} if isinstance(spec, dict) else spec)
                for key, spec in data["columns"].items()
            }
        return data

    @model_validator(mode="after")
    def _check_consistency(self) -> "ReportTemplate":
        for placeholder in (COLUMNS_PLACEHOLDER, CONDITIONS_PLACEHOLDER):
            count = self.sql_skeleton.count(placeholder)
            if count != 1:
                raise ValueError(
                    f"template '{self.name}': sql_skeleton must contain {placeholder} "
                    f"exactly once, found {count}"
                )

        for key, spec in self.columns.items():
            if spec.canonical_key != key:
                raise ValueError(f"template '{self.name}': column '{key}' declares key '{spec.canonical_key}'")

        for field, rules in self.filters.items():
            if field not in self.columns:
                raise ValueError(f"template '{self.name}': filter on undeclared column '{field}'")
            for op, rule in rules.items():
                if op is Operator.BETWEEN and rule.placeholders != 2:
                    raise ValueError(f"template '{self.name}': BETWEEN rule for '{field}' needs exactly 2 placeholders")
                if rule.placeholders < 1:
                    raise ValueError(f"template '{self.name}': {op.value} rule for '{field}' has no placeholder")
        return self

    @property
    def column_list(self) -> List[ColumnSpec]:
        """All columns in declared order."""
        return list(self.columns.values())

    def filter_rule(self, field: str, op: Operator) -> Optional[FilterRule]:
        return self.filters.get(field, {}).get(op)

    def sort_alias(self, field: str) -> Optional[str]:
        wanted = field.strip().lower()
        for alias, column in self.sort_aliases.items():
            if alias.lower() == wanted:
                return column
        return None


# ==============================================================================
# Providers
# ==============================================================================

class KnowledgeProvider(Protocol):
    """Anything that can hand report templates to the compiler."""

    def get_report_templates(self) -> List[ReportTemplate]:
        ...


class Json5KnowledgeProvider:
    """Loads the templates declared in a single json5 file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._templates = self._load()

    def _load(self) -> List[ReportTemplate]:
        if not self.path.exists():
            raise FileNotFoundError(f"Knowledge file does not exist: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            try:
                data = json5.load(f)
            except ValueError as e:
                raise KnowledgeBaseError(f"Cannot parse knowledge file {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("templates", []), list):
            raise KnowledgeBaseError(
                f"Knowledge file {self.path} must contain an object with a 'templates' list"
            )

        try:
            templates = [ReportTemplate.model_validate(t) for t in data.get("templates", [])]
        except ValidationError as e:
            raise KnowledgeBaseError(f"Invalid knowledge file {self.path}:\n{e}") from e

        logger.debug("Loaded %d template(s) from %s", len(templates), self.path)
        return templates

    def get_report_templates(self) -> List[ReportTemplate]:
        return list(self._templates)


class KnowledgeRegistry:
    """
    Central registry of all knowledge providers.

    The single place the pipeline asks for report templates.
    """

    def __init__(self, providers: List[KnowledgeProvider]):
        self.providers = list(providers)

    @classmethod
    def from_directory(
        cls,
        directory: Optional[Union[str, Path]] = None,
        ontology_file: Optional[str] = None
    ) -> "KnowledgeRegistry":
        """
        Build a registry with one provider per ``*.json5`` file in a directory.

        Args:
            directory: knowledge directory; defaults to ``Settings.knowledge_dir``
            ontology_file: file name to skip; defaults to ``Settings.ontology_file``

        Returns:
            The registry, providers sorted by file name
        """
        settings = get_settings()
        directory = Path(directory) if directory is not None else settings.knowledge_dir
        ontology_file = ontology_file or settings.ontology_file

        if not directory.is_dir():
            raise FileNotFoundError(f"Knowledge directory does not exist: {directory}")

        files = sorted(p for p in directory.glob("*.json5") if p.name != ontology_file)
        return cls([Json5KnowledgeProvider(p) for p in files])

    def all_templates(self) -> List[ReportTemplate]:
        return [t for provider in self.providers for t in provider.get_report_templates()]

    def template_for(self, context: Context) -> Optional[ReportTemplate]:
        for template in self.all_templates():
            if template.context is context:
                return template
        return None
