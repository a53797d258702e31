"""
IR parser modules
=================

Two dspy modules that turn a lower-cased, space-padded sentence into IR
pieces using a closed set of clause patterns:
1. ClauseDeconstructor - cuts sort, limit and projection clauses out of the text
2. FilterParser - scans what is left for filter predicates

Both are fully deterministic; no language model is involved.
"""

import re
from typing import Callable, List, NamedTuple, Optional, Pattern, Tuple

import dspy

from .ir_models import (
    DeconstructedClauses,
    FilterGroup,
    Operator,
    Predicate,
    Projection,
    SortDirection,
    SortSpec,
)
from .ontology import Ontology


# ==============================================================================
# Clause patterns
# ==============================================================================

_FIELD_CHARS = r"[a-zäöüß0-9 _,-]"
_DATE = r"\d{1,2}[./]\d{1,2}[./]\d{2,4}"

ORDER_BY_SEPARATOR = re.compile(r"\s+(?:order\s+by|sortiert\s+nach)\b", re.IGNORECASE)
SORT_DIRECTION = re.compile(r"\b(?:asc|desc|aufsteigend|absteigend)\b", re.IGNORECASE)
SORT_DESCENDING = re.compile(r"\b(?:desc|absteigend)\b", re.IGNORECASE)
LIMIT = re.compile(r"\blimit\s+(\d+)", re.IGNORECASE)

FIELDS_SEPARATOR = re.compile(
    r"\s+(?:und\s+zwar|mit\s+den\s+feldern|mit\s+feldern|mit\s+der\s+feldern|zeige\s+mir|zeige)\b",
    re.IGNORECASE
)
FIELD_LIST_SPLIT = re.compile(r",|\s+und\s+", re.IGNORECASE)
# "zeige mir ..." opening the sentence is the request itself, not a field block
LEADING_REQUEST = re.compile(r"^\s*(?:bitte\s+)?(?:zeige|zeig)(?:\s+mir)?\b", re.IGNORECASE)

# top-level lists end before order/limit/und/mit/für or at the end of the text
ZUERST_GLOBAL = re.compile(
    rf"\b(?:zuerst|first)\s+({_FIELD_CHARS}+?)(?=\s+(?:order|limit|und|mit|für)\b|\s*$)", re.IGNORECASE
)
AUSSER_GLOBAL = re.compile(
    rf"\b(?:außer|ohne|except)\s+({_FIELD_CHARS}+?)(?=\s+(?:order|limit|und|mit|für)\b|\s*$)", re.IGNORECASE
)
# inside a "mit feldern" block the lists run to the other sub-clause or the end
ZUERST_SCOPED = re.compile(
    rf"\b(?:zuerst|first)\s+({_FIELD_CHARS}+?)(?=\s+(?:außer|ohne|except)\b|\s*$)", re.IGNORECASE
)
AUSSER_SCOPED = re.compile(
    rf"\b(?:außer|ohne|except)\s+({_FIELD_CHARS}+?)(?=\s+(?:zuerst|first)\b|\s*$)", re.IGNORECASE
)

MAKLER_ID = re.compile(r"\b(?:makler|vermittler)(?:\s+(?:id|nr))?\s+([a-z0-9]{6,})", re.IGNORECASE)
MAKLER_NAME = re.compile(
    r"\b(?:makler|vermittler)\s+name\s+([a-z0-9&.\s*äöüß]+?)(?=\s+und\b|\s+mit\b|\s+order\b|\s+limit\b|\s*$)",
    re.IGNORECASE
)
VSN = re.compile(r"\bvsn\s+([a-z0-9-]+)\b", re.IGNORECASE)
LAND = re.compile(r"\bland\s+([a-zäöüß]+)\b", re.IGNORECASE)
STATUS = re.compile(r"\bstatus\s+'?([a-z]+)'?\b", re.IGNORECASE)


def _date_patterns(words: str) -> Tuple[Pattern, Pattern, Pattern]:
    """(range, after, before) patterns for one date-bearing field."""
    return (
        re.compile(rf"\b(?:{words})\s*zwischen\s+({_DATE})\s+und\s+({_DATE})", re.IGNORECASE),
        re.compile(rf"\b(?:{words})\s*(?:nach|seit|ab)(?:\s+dem)?\s+({_DATE})", re.IGNORECASE),
        re.compile(rf"\b(?:{words})\s*(?:vor|bis)(?:\s+zum)?\s+({_DATE})", re.IGNORECASE),
    )


BEGINN_RANGE, BEGINN_AFTER, BEGINN_BEFORE = _date_patterns("beginn|anfang")
ABLAUF_RANGE, ABLAUF_AFTER, ABLAUF_BEFORE = _date_patterns("ablauf|ende")


def split_field_list(text: str) -> List[str]:
    """Split 'vsn, land code und firma' into its field tokens."""
    return [f.strip() for f in FIELD_LIST_SPLIT.split(text) if f.strip()]


def find_fields_separator(text: str) -> Optional[re.Match]:
    """The separator opening a field block, skipping a leading 'zeige mir'."""
    request = LEADING_REQUEST.match(text)
    return FIELDS_SEPARATOR.search(text, request.end() if request else 0)


def _cut_field_list(
    text: str,
    pattern: Pattern,
    ontology: Ontology,
    exclude: bool = False,
    order: Optional[int] = None
) -> Tuple[str, List[Projection]]:
    projections = [
        Projection(field=ontology.resolve(f), exclude=exclude, order=order)
        for m in pattern.finditer(text)
        for f in split_field_list(m.group(1))
    ]
    if not projections:
        return text, []
    return pattern.sub(" ", text), projections


# ==============================================================================
# Stage 1: clause deconstruction
# ==============================================================================
# Every stage is (state, ontology) -> state. The order matters: each stage
# removes its clause so the looser patterns of later stages cannot re-match it.

def extract_sort(state: DeconstructedClauses, ontology: Ontology) -> DeconstructedClauses:
    text = state.remaining_text
    m = ORDER_BY_SEPARATOR.search(text)
    if not m:
        return state

    tail = text[m.end():]
    # a trailing "limit n" belongs to the limit stage, not to the sort list
    limit_match = LIMIT.search(tail)
    sort_block = tail[:limit_match.start()] if limit_match else tail
    leftover = tail[limit_match.start():] if limit_match else ""

    sort_orders = []
    for term in sort_block.split(","):
        field = SORT_DIRECTION.sub("", term).strip()
        if not field:
            continue
        direction = SortDirection.DESC if SORT_DESCENDING.search(term) else SortDirection.ASC
        sort_orders.append(SortSpec(field=ontology.resolve(field), direction=direction))

    return state.model_copy(update={
        "remaining_text": f"{text[:m.start()]} {leftover}",
        "sort_orders": [*state.sort_orders, *sort_orders],
    })


def extract_limit(state: DeconstructedClauses, ontology: Ontology) -> DeconstructedClauses:
    text = state.remaining_text
    m = LIMIT.search(text)
    if not m:
        return state
    return state.model_copy(update={
        "remaining_text": f"{text[:m.start()]} {text[m.end():]}",
        "limit": int(m.group(1)),
    })


def extract_global_projections(state: DeconstructedClauses, ontology: Ontology) -> DeconstructedClauses:
    """'zuerst ...' and 'außer ...' clauses outside of a 'mit feldern' block."""
    text = state.remaining_text
    separator = find_fields_separator(text)
    head, block = (text[:separator.start()], text[separator.start():]) if separator else (text, "")

    head, pinned = _cut_field_list(head, ZUERST_GLOBAL, ontology, order=0)
    head, excluded = _cut_field_list(head, AUSSER_GLOBAL, ontology, exclude=True)

    if not pinned and not excluded:
        return state
    return state.model_copy(update={
        "remaining_text": head + block,
        "projections": [*state.projections, *pinned, *excluded],
    })


def extract_scoped_projections(state: DeconstructedClauses, ontology: Ontology) -> DeconstructedClauses:
    """The 'mit den feldern a, b zuerst c außer d' block up to the end of the text."""
    text = state.remaining_text
    m = find_fields_separator(text)
    if not m:
        return state

    block = text[m.end():]
    block, pinned = _cut_field_list(block, ZUERST_SCOPED, ontology, order=0)
    block, excluded = _cut_field_list(block, AUSSER_SCOPED, ontology, exclude=True)
    plain = [Projection(field=ontology.resolve(f)) for f in split_field_list(block)]

    return state.model_copy(update={
        "remaining_text": text[:m.start()],
        "projections": [*state.projections, *pinned, *excluded, *plain],
    })


class ClauseDeconstructor(dspy.Module):
    """
    A dspy.Module that folds the clause stages over the sentence and returns
    the DeconstructedClauses. ``remaining_text`` of the result holds the
    filter criteria.
    """

    stages: List[Callable[[DeconstructedClauses, Ontology], DeconstructedClauses]] = [
        extract_sort,
        extract_limit,
        extract_global_projections,
        extract_scoped_projections,
    ]

    def __init__(self, ontology: Ontology):
        super().__init__()
        self.ontology = ontology

    def forward(self, text: str) -> DeconstructedClauses:
        state = DeconstructedClauses(remaining_text=text)
        for stage in self.stages:
            state = stage(state, self.ontology)
        return state


# ==============================================================================
# Stage 2: filter predicates
# ==============================================================================

class FilterExtractor(NamedTuple):
    """A single-purpose filter pattern and how a match becomes a Predicate."""
    name: str
    pattern: Pattern
    build: Callable[[re.Match, Ontology], Predicate]


def _equals(token: str, group: int = 1) -> Callable[[re.Match, Ontology], Predicate]:
    return lambda m, onto: Predicate(field=onto.resolve(token), op=Operator.EQUALS, value=m.group(group).strip())


def _date_range(field: str) -> Callable[[re.Match, Ontology], Predicate]:
    return lambda m, onto: Predicate(
        field=onto.resolve(field), op=Operator.BETWEEN, value=(m.group(1).strip(), m.group(2).strip())
    )


def _date_bound(field: str, op: Operator) -> Callable[[re.Match, Ontology], Predicate]:
    return lambda m, onto: Predicate(field=onto.resolve(field), op=op, value=m.group(1).strip())


def _makler_name(m: re.Match, onto: Ontology) -> Predicate:
    return Predicate(field=onto.resolve("makler name"), op=Operator.LIKE, value=m.group(1).strip().replace("*", "%"))


FILTER_EXTRACTORS: List[FilterExtractor] = [
    FilterExtractor("makler_id", MAKLER_ID, _equals("makler nr")),
    FilterExtractor("makler_name", MAKLER_NAME, _makler_name),
    FilterExtractor("vsn", VSN, _equals("vsn")),
    FilterExtractor("land", LAND, _equals("land")),
    FilterExtractor("status", STATUS, _equals("status")),
    FilterExtractor("beginn_range", BEGINN_RANGE, _date_range("beginn")),
    FilterExtractor("beginn_after", BEGINN_AFTER, _date_bound("beginn", Operator.GREATER_OR_EQUAL)),
    FilterExtractor("beginn_before", BEGINN_BEFORE, _date_bound("beginn", Operator.LESS_OR_EQUAL)),
    FilterExtractor("ablauf_range", ABLAUF_RANGE, _date_range("ablauf")),
    FilterExtractor("ablauf_after", ABLAUF_AFTER, _date_bound("ablauf", Operator.GREATER_OR_EQUAL)),
    FilterExtractor("ablauf_before", ABLAUF_BEFORE, _date_bound("ablauf", Operator.LESS_OR_EQUAL)),
]


class FilterParser(dspy.Module):
    """
    A dspy.Module that runs every filter extractor over the criteria text and
    collects the matches, in extractor order, into one AND group.
    """

    def __init__(self, ontology: Ontology, extractors: Optional[List[FilterExtractor]] = None):
        super().__init__()
        self.ontology = ontology
        self.extractors = list(extractors if extractors is not None else FILTER_EXTRACTORS)

    def forward(self, filter_text: str) -> FilterGroup:
        predicates = [
            extractor.build(m, self.ontology)
            for extractor in self.extractors
            for m in extractor.pattern.finditer(filter_text or "")
        ]
        return FilterGroup(predicates=predicates)
