"""
Text-to-IR main flow
====================

Combines the two parser stages to turn a German report request into a
structured QueryIR.
"""

import logging
from typing import Optional

import dspy

from .ir_models import QueryIR
from .ir_parsers import ClauseDeconstructor, FilterParser
from .ontology import Ontology, load_ontology

logger = logging.getLogger(__name__)


class TextToIR(dspy.Module):
    """
    Deterministic dspy pipeline from a sentence to the final QueryIR.

    Flow:
    1. context detection on the raw sentence (ontology keywords)
    2. ClauseDeconstructor - sort, limit and projection clauses
    3. FilterParser - filter predicates from the remaining text
    4. assemble the QueryIR
    """

    def __init__(self, ontology: Optional[Ontology] = None):
        super().__init__()
        self.ontology = ontology if ontology is not None else load_ontology()
        self.deconstructor = ClauseDeconstructor(self.ontology)
        self.filter_parser = FilterParser(self.ontology)

    def forward(self, text: Optional[str]):
        if text is None or not text.strip():
            return dspy.Prediction(ir=QueryIR(), remaining_text="")

        working = f" {text.lower()} "
        context = self.ontology.detect_context(text)

        # --- Stage 1: clauses ---
        clauses = self.deconstructor(text=working)

        # --- Stage 2: filters on whatever is left ---
        filter_group = self.filter_parser(filter_text=clauses.remaining_text)

        ir = QueryIR(
            context=context,
            filters=[filter_group] if filter_group.predicates else [],
            projections=clauses.projections,
            sort_orders=clauses.sort_orders,
            limit=clauses.limit
        )
        logger.debug(
            "Parsed %r: context=%s predicates=%d projections=%d sort=%d limit=%s",
            text, ir.context.value, len(ir.predicates), len(ir.projections),
            len(ir.sort_orders), ir.limit
        )
        return dspy.Prediction(ir=ir, remaining_text=clauses.remaining_text)

    def parse(self, text: Optional[str]) -> QueryIR:
        """Shortcut returning only the IR."""
        return self(text=text).ir
