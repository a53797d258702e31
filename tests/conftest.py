import pytest

from report_nl2sql.ir_models import Context
from report_nl2sql.knowledge import KnowledgeRegistry
from report_nl2sql.nl2sql_pipeline import ReportPipeline
from report_nl2sql.ontology import load_ontology
from report_nl2sql.settings import PACKAGE_KNOWLEDGE_DIR
from report_nl2sql.sql_compiler import ReportPlanner
from report_nl2sql.text_to_ir import TextToIR
from report_nl2sql.understanding import NLUnderstandingService


@pytest.fixture(scope="session")
def ontology():
    return load_ontology(PACKAGE_KNOWLEDGE_DIR / "ontology.json5")


@pytest.fixture(scope="session")
def registry():
    return KnowledgeRegistry.from_directory(PACKAGE_KNOWLEDGE_DIR, "ontology.json5")


@pytest.fixture(scope="session")
def parser(ontology):
    return TextToIR(ontology)


@pytest.fixture(scope="session")
def understanding(parser):
    return NLUnderstandingService(parser)


@pytest.fixture(scope="session")
def contracts_template(registry):
    return registry.template_for(Context.CONTRACTS)


@pytest.fixture(scope="session")
def claims_template(registry):
    return registry.template_for(Context.CLAIMS)


@pytest.fixture(scope="session")
def contracts_planner(contracts_template):
    return ReportPlanner(contracts_template)


@pytest.fixture(scope="session")
def claims_planner(claims_template):
    return ReportPlanner(claims_template)


@pytest.fixture(scope="session")
def pipeline(registry, ontology):
    return ReportPipeline(registry=registry, ontology=ontology)
