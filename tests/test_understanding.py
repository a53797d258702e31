import pytest

from report_nl2sql.ir_models import Context
from report_nl2sql.understanding import (
    NO_CONTEXT,
    NO_STRONG_FILTER,
    SUGGESTIONS,
    Status,
    is_capabilities_query,
    render_capabilities,
    unknown_tokens,
)


@pytest.mark.parametrize("text", ["Was kannst du?", "Hilfe", "show capabilities", "Welche Fähigkeiten hast du"])
def test_capabilities_short_circuit(understanding, text):
    result = understanding.understand(text)
    assert result.is_capabilities_intent
    assert result.status is Status.OK
    assert result.confidence == 1.0
    assert result.ir.predicates == []


def test_capabilities_text():
    text = render_capabilities()
    assert text.startswith("Ich kann für Sie folgende Abfragen durchführen:")
    assert "BEISPIELE:" in text
    assert not is_capabilities_query(None)


def test_empty_input_is_invalid(understanding):
    result = understanding.understand("")
    assert result.status is Status.INVALID
    assert result.confidence == pytest.approx(0.2)
    assert result.ir.context is Context.UNKNOWN
    assert result.suggestions == list(SUGGESTIONS)
    assert result.errors == [NO_CONTEXT]
    assert result.warnings == []


def test_context_without_filter_is_invalid(understanding):
    result = understanding.understand("alle cover")
    assert result.status is Status.INVALID
    assert result.confidence == pytest.approx(0.5)
    assert len(result.suggestions) == 7
    assert result.warnings == [NO_STRONG_FILTER]
    assert result.errors == []


@pytest.mark.parametrize("text", [
    "Verträge für Makler 100120",
    "Verträge mit Feldern vsn und firma",  # "vsn " counts even without a filter
    "Schäden mit Status offen",
    "Zeige mir alle Verträge für Makler 100120",
])
def test_specific_requests_are_ok(understanding, text):
    result = understanding.understand(text)
    assert result.status is Status.OK
    assert result.confidence == pytest.approx(0.8)
    assert result.suggestions == []
    assert result.warnings == []
    assert result.errors == []
    assert result.is_ok


def test_unknown_tokens():
    assert unknown_tokens("Zeig mir alle Verträge vom Makler 100120 in Hamburg, bitte") == [
        "makler", "hamburg"
    ]
