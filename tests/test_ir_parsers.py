import pytest

from report_nl2sql.ir_models import Context, DeconstructedClauses, Operator, Predicate, SortDirection
from report_nl2sql.ir_parsers import (
    ClauseDeconstructor,
    FilterParser,
    extract_limit,
    extract_sort,
    split_field_list,
)


def pad(text):
    return f" {text.lower()} "


# ==============================================================================
# Clause stages
# ==============================================================================

def test_split_field_list():
    assert split_field_list(" vsn, land code und firma ") == ["vsn", "land code", "firma"]


def test_sort_leaves_limit_for_limit_stage(ontology):
    state = extract_sort(DeconstructedClauses(remaining_text=pad("cover order by firma desc limit 10")), ontology)
    assert [(s.field, s.direction) for s in state.sort_orders] == [("firma", SortDirection.DESC)]
    assert "limit 10" in state.remaining_text

    state = extract_limit(state, ontology)
    assert state.limit == 10
    assert "limit" not in state.remaining_text


def test_sort_resolves_synonyms_and_drops_empty_terms(ontology):
    state = extract_sort(DeconstructedClauses(remaining_text=pad("cover sortiert nach anfang absteigend, , land")), ontology)
    assert [(s.field, s.direction) for s in state.sort_orders] == [
        ("beginn", SortDirection.DESC),
        ("land", SortDirection.ASC),
    ]


def test_deconstructor_keeps_filter_text(ontology):
    clauses = ClauseDeconstructor(ontology)(text=pad("Verträge für Makler 100120 außer land code, vsn"))
    assert "makler 100120" in clauses.remaining_text
    assert "außer" not in clauses.remaining_text


# ==============================================================================
# Filters
# ==============================================================================

@pytest.mark.parametrize("text, expected", [
    ("makler 100120", [Predicate(field="makler_nr", op=Operator.EQUALS, value="100120")]),
    ("makler id 100120", [Predicate(field="makler_nr", op=Operator.EQUALS, value="100120")]),
    ("vermittler nr abc123", [Predicate(field="makler_nr", op=Operator.EQUALS, value="abc123")]),
    ("makler name müller & söhne", [Predicate(field="makler_name", op=Operator.LIKE, value="müller & söhne")]),
    ("vsn 12-345", [Predicate(field="vsn", op=Operator.EQUALS, value="12-345")]),
    ("status 'a'", [Predicate(field="status", op=Operator.EQUALS, value="a")]),
    ("land deu", [Predicate(field="land", op=Operator.EQUALS, value="deu")]),
    ("anfang seit dem 1.2.2024",
     [Predicate(field="beginn", op=Operator.GREATER_OR_EQUAL, value="1.2.2024")]),
    ("ende bis zum 31/12/2024",
     [Predicate(field="ablauf", op=Operator.LESS_OR_EQUAL, value="31/12/2024")]),
    ("beginn zwischen 01.01.2024 und 31.03.2024",
     [Predicate(field="beginn", op=Operator.BETWEEN, value=("01.01.2024", "31.03.2024"))]),
    ("makler 12345", []),  # ids have at least six characters
    ("ohne jeden filter", []),
])
def test_filter_extractors(ontology, text, expected):
    group = FilterParser(ontology)(filter_text=pad(text))
    assert group.logic == "AND"
    assert group.predicates == expected


def test_filter_extractor_order(ontology):
    group = FilterParser(ontology)(filter_text=pad("ablauf vor 01.01.2025 und land deu und makler 100120"))
    assert [p.field for p in group.predicates] == ["makler_nr", "land", "ablauf"]


def test_every_match_is_collected(ontology):
    group = FilterParser(ontology)(filter_text=pad("vsn 1111 oder vsn 2222"))
    assert [p.value for p in group.predicates] == ["1111", "2222"]


# ==============================================================================
# TextToIR
# ==============================================================================

@pytest.mark.parametrize("text", [None, "", "   "])
def test_blank_input_gives_empty_ir(parser, text):
    ir = parser.parse(text)
    assert ir.context is Context.UNKNOWN
    assert ir.filters == []
    assert ir.projections == []
    assert ir.sort_orders == []
    assert ir.limit is None


def test_forward_returns_prediction(parser):
    prediction = parser(text="Verträge mit VSN 4711")
    assert prediction.ir.predicates == [Predicate(field="vsn", op=Operator.EQUALS, value="4711")]


def test_makler_name(parser):
    ir = parser.parse("COVER für Makler Name Gründemann")
    assert ir.context is Context.CONTRACTS
    assert ir.predicates == [Predicate(field="makler_name", op=Operator.LIKE, value="gründemann")]


def test_makler_id_with_exclusions(parser):
    ir = parser.parse("Verträge für Makler 100120 außer Firma, Land")
    assert ir.predicates == [Predicate(field="makler_nr", op=Operator.EQUALS, value="100120")]
    assert [(p.field, p.exclude) for p in ir.projections] == [("firma", True), ("land", True)]


def test_exclusions_resolve_synonyms(parser):
    ir = parser.parse("Verträge für Makler 100120 außer land code, vsn")
    assert [p.field for p in ir.projections if p.exclude] == ["land_code", "vsn"]


def test_sort_order(parser):
    ir = parser.parse("COVER für Makler Name Gründemann order by Firma asc, Land desc")
    assert len(ir.predicates) == 1
    assert [(s.field, s.direction) for s in ir.sort_orders] == [
        ("firma", SortDirection.ASC),
        ("land", SortDirection.DESC),
    ]


def test_scoped_fields_with_wildcard_name_and_sort(parser):
    ir = parser.parse("Verträge für Makler Name Gründemann* mit Feldern Firma, Land zuerst VSN order by Firma desc")
    assert ir.predicates == [Predicate(field="makler_name", op=Operator.LIKE, value="gründemann%")]
    assert len(ir.projections) == 3
    assert [p.field for p in ir.projections if p.order == 0] == ["vsn"]
    assert {p.field for p in ir.projections if p.order is None and not p.exclude} == {"firma", "land"}
    assert [(s.field, s.direction) for s in ir.sort_orders] == [("firma", SortDirection.DESC)]


def test_scoped_field_list(parser):
    ir = parser.parse("Verträge mit Feldern vsn, makler nr, partner-typ, sb gl")
    assert [p.field for p in ir.projections] == ["vsn", "makler_nr", "partner_typ", "sb gl"]
    assert ir.predicates == []


def test_scoped_block_with_pin_and_exclusion(parser):
    ir = parser.parse("Verträge mit VSN 4711 und zwar zuerst firma außer land")
    assert [(p.field, p.exclude, p.order) for p in ir.projections] == [
        ("firma", False, 0),
        ("land", True, None),
    ]
    assert ir.predicates == [Predicate(field="vsn", op=Operator.EQUALS, value="4711")]


def test_status_and_land(parser):
    ir = parser.parse("COVER mit Status a und aus Land Deu")
    assert ir.context is Context.CONTRACTS
    assert [(p.field, p.value) for p in ir.predicates] == [("land", "deu"), ("status", "a")]


def test_date_range(parser):
    ir = parser.parse("Verträge mit Ablauf zwischen 01.01.2024 und 31.12.2024")
    assert ir.predicates == [
        Predicate(field="ablauf", op=Operator.BETWEEN, value=("01.01.2024", "31.12.2024"))
    ]


def test_pin_first_with_limit(parser):
    ir = parser.parse("Alle Cover zuerst VSN, Makler limit 200")
    assert ir.limit == 200
    assert [(p.field, p.order) for p in ir.projections] == [("vsn", 0), ("makler_nr", 0)]


def test_claims_context(parser):
    ir = parser.parse("Schäden mit VSN 4711 und Beginn nach 01.01.2024")
    assert ir.context is Context.CLAIMS
    assert [(p.field, p.op) for p in ir.predicates] == [
        ("vsn", Operator.EQUALS),
        ("beginn", Operator.GREATER_OR_EQUAL),
    ]


@pytest.mark.parametrize("text, expected_projection", [
    ("Verträge außer vsn mit Ablauf zwischen 01.01.2024 und 31.12.2024", ("vsn", True, None)),
    ("Verträge zuerst vsn mit Ablauf zwischen 01.01.2024 und 31.12.2024", ("vsn", False, 0)),
])
def test_global_list_ends_before_filter_clause(parser, text, expected_projection):
    ir = parser.parse(text)
    assert [(p.field, p.exclude, p.order) for p in ir.projections] == [expected_projection]
    assert ir.predicates == [
        Predicate(field="ablauf", op=Operator.BETWEEN, value=("01.01.2024", "31.12.2024"))
    ]


def test_global_list_ends_before_fuer(parser):
    ir = parser.parse("Verträge außer land code für Makler 100120")
    assert [p.field for p in ir.projections] == ["land_code"]
    assert ir.predicates == [Predicate(field="makler_nr", op=Operator.EQUALS, value="100120")]


@pytest.mark.parametrize("text", [
    "Zeige mir alle Verträge für Makler 100120",
    "Bitte zeige alle Verträge für Makler 100120",
])
def test_leading_request_does_not_open_field_block(parser, text):
    ir = parser.parse(text)
    assert ir.projections == []
    assert ir.predicates == [Predicate(field="makler_nr", op=Operator.EQUALS, value="100120")]


def test_field_block_after_leading_request(parser):
    ir = parser.parse("Zeige mir Verträge mit VSN 4711 zeige mir firma, land")
    assert [p.field for p in ir.projections] == ["firma", "land"]
    assert ir.predicates == [Predicate(field="vsn", op=Operator.EQUALS, value="4711")]
