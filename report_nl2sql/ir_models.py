"""
IR data models
==============

Pydantic models for the intermediate representation (IR) that sits between
the natural-language parser and the SQL planner. These models are the
single source of truth for what a parsed report request looks like.
"""

from enum import Enum
from typing import List, Optional, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ==============================================================================
# Enumerations
# ==============================================================================

class Context(str, Enum):
    """Reporting domain a sentence is about."""
    CONTRACTS = "CONTRACTS"
    CLAIMS = "CLAIMS"
    UNKNOWN = "UNKNOWN"


class Operator(str, Enum):
    EQUALS = "EQUALS"
    LIKE = "LIKE"
    BETWEEN = "BETWEEN"
    GREATER_OR_EQUAL = "GREATER_OR_EQUAL"
    LESS_OR_EQUAL = "LESS_OR_EQUAL"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


# ==============================================================================
# Basic IR components
# ==============================================================================

class Predicate(BaseModel):
    """A single filter condition (e.g. 'makler_nr = 100120')"""
    field: str
    op: Operator
    value: Union[Tuple[str, str], str]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_value_shape(self) -> "Predicate":
        # BETWEEN takes an ordered (low, high) pair, every other operator a scalar
        if self.op is Operator.BETWEEN and not isinstance(self.value, tuple):
            raise ValueError("BETWEEN predicates need a (from, to) pair")
        if self.op is not Operator.BETWEEN and not isinstance(self.value, str):
            raise ValueError(f"{self.op.value} predicates need a single string value")
        return self


class FilterGroup(BaseModel):
    """
    A logical group of predicates.

    Only AND groups are produced today; the list of groups on QueryIR leaves
    room for OR-of-AND composition.
    """
    logic: Literal["AND", "OR"] = "AND"
    predicates: List[Predicate] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class Projection(BaseModel):
    """
    A column selection request.

    ``order == 0`` pins the column to the front ("zuerst vsn"),
    ``exclude`` removes it from the full column set ("außer land").
    """
    field: str
    exclude: bool = False
    order: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class SortSpec(BaseModel):
    """An ORDER BY item"""
    field: str
    direction: SortDirection = SortDirection.ASC

    model_config = ConfigDict(frozen=True)


# ==============================================================================
# Intermediate state
# ==============================================================================

class DeconstructedClauses(BaseModel):
    """
    State threaded through the clause-deconstruction stages.

    Every stage receives the current state and returns a new one with its
    clause cut out of ``remaining_text`` and the extracted data appended.
    Whatever text survives all stages is handed to the filter parser.
    """
    remaining_text: str = ""
    projections: List[Projection] = Field(default_factory=list)
    sort_orders: List[SortSpec] = Field(default_factory=list)
    limit: Optional[int] = None

    model_config = ConfigDict(frozen=True)


# ==============================================================================
# Final IR
# ==============================================================================

class QueryIR(BaseModel):
    """
    The complete, structured report request.

    Created once per input sentence and never modified afterwards.
    """
    context: Context = Context.UNKNOWN
    filters: List[FilterGroup] = Field(default_factory=list)
    projections: List[Projection] = Field(default_factory=list)
    sort_orders: List[SortSpec] = Field(default_factory=list)
    limit: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @property
    def predicates(self) -> List[Predicate]:
        """All predicates of all filter groups, in declaration order."""
        return [p for group in self.filters for p in group.predicates]
