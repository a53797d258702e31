"""
Understanding layer
===================

Sits between the parser and the planner: recognizes "what can you do"
questions, scores whether a parsed request is specific enough to run, and
produces improvement suggestions when it is not.
"""

import logging
import re
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .ir_models import Context, QueryIR
from .text_to_ir import TextToIR

logger = logging.getLogger(__name__)


class Status(str, Enum):
    OK = "OK"
    AMBIGUOUS = "AMBIGUOUS"  # reserved, not produced by the current scoring
    INVALID = "INVALID"


class UnderstandingResult(BaseModel):
    """Outcome of ``NLUnderstandingService.understand``."""
    ir: QueryIR
    status: Status
    confidence: float
    is_capabilities_intent: bool = False
    unknown_tokens: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def is_ok(self) -> bool:
        return self.status is Status.OK


# ==============================================================================
# Capabilities
# ==============================================================================

CAPABILITY_PHRASES = ("was kannst du", "fähigkeiten", "hilfe", "help", "capabilities")

CAPABILITIES_TEXT = "\n".join([
    "Ich kann für Sie folgende Abfragen durchführen:",
    "• Cover-Verträge filtern (Sparte LIKE '%COVER%' ist immer aktiv).",
    "• Filtern nach: Makler (ID), VSN, Status, Land, Beginn/Ablauf.",
    "• Spaltenauswahl steuern: z.B. '... außer land code, vsn'.",
    "• Spaltenreihenfolge festlegen: z.B. '... zuerst makler name, firma'.",
    "• Ergebnisanzahl begrenzen: z.B. '... limit 100'.",
    "",
    "BEISPIELE:",
    "1) Gib mir alle Verträge vom Makler 100120 außer land code",
    "2) Alle Cover zuerst VSN, Makler limit 200",
])


def is_capabilities_query(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(phrase in lowered for phrase in CAPABILITY_PHRASES)


def render_capabilities() -> str:
    return CAPABILITIES_TEXT


# ==============================================================================
# Scoring
# ==============================================================================

STRONG_DATE_RANGE = (
    re.compile(r"\bbeginn\b.*\bzwischen\b.*\bund\b"),
    re.compile(r"\bablauf\b.*\bzwischen\b.*\bund\b"),
)
TOKEN_SPLIT = re.compile(r"[^a-z0-9äöüß]+")

STOPWORDS = frozenset({
    "alle", "zeig", "zeige", "mir", "bitte", "die", "der", "den", "vom", "von",
    "für", "mit", "und", "oder", "aber", "auch", "schnell", "mal", "dann",
    "zuerst", "first", "außer", "ohne", "limit", "order", "by", "sortiere",
    "ordne", "nach", "cover", "vertrag", "verträge",
})

SUGGESTIONS = (
    "Makler-ID hinzufügen (z. B. 100120)",
    "VSN angeben (z. B. 4711)",
    "Zeitraum einschränken: Beginn zwischen 01.01.2024 und 31.12.2024",
    "Spalten ausschließen: außer Land, Firma",
    "zuerst VSN, Makler",
    "Limit 500",
    "Status außer storniert",
)

NO_CONTEXT = "Kein Berichtskontext erkannt (z. B. Verträge, Cover, Schäden)."
NO_STRONG_FILTER = "Kein einschränkender Filter erkannt (Makler, VSN oder Zeitraum)."


def unknown_tokens(text: str) -> List[str]:
    """Words of the sentence that are neither stopwords, numbers nor short fillers."""
    return [
        tok for tok in TOKEN_SPLIT.split(text.lower())
        if tok and tok not in STOPWORDS and not tok.isdigit() and len(tok) > 2
    ]


def _has_strong_signal(text: str, ir: QueryIR) -> bool:
    if ir.predicates:
        return True
    lowered = text.lower()
    if "vsn " in lowered:
        return True
    return any(p.search(lowered) for p in STRONG_DATE_RANGE)


class NLUnderstandingService:
    """
    Parses a sentence and decides whether it is specific enough to plan.

    Scoring:
        capabilities question          -> OK, 1.0
        no recognizable report context -> INVALID, 0.2
        context but no strong filter   -> INVALID, 0.5
        otherwise                      -> OK, 0.8
    """

    def __init__(self, parser: Optional[TextToIR] = None):
        self.parser = parser if parser is not None else TextToIR()

    def understand(self, text: Optional[str]) -> UnderstandingResult:
        text = text or ""

        if is_capabilities_query(text):
            logger.debug("Capabilities question: %r", text)
            return UnderstandingResult(
                ir=QueryIR(), status=Status.OK, confidence=1.0, is_capabilities_intent=True
            )

        ir = self.parser.parse(text)
        warnings: List[str] = []
        errors: List[str] = []

        if ir.context is Context.UNKNOWN:
            status, confidence = Status.INVALID, 0.2
            errors.append(NO_CONTEXT)
        elif not _has_strong_signal(text, ir):
            status, confidence = Status.INVALID, 0.5
            warnings.append(NO_STRONG_FILTER)
        else:
            status, confidence = Status.OK, 0.8

        logger.debug("Understood %r as %s (%.2f)", text, status.value, confidence)
        return UnderstandingResult(
            ir=ir,
            status=status,
            confidence=confidence,
            unknown_tokens=unknown_tokens(text),
            suggestions=list(SUGGESTIONS) if status is not Status.OK else [],
            warnings=warnings,
            errors=errors
        )
