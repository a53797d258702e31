"""
NL2SQL report pipeline
======================

Ties together the complete flow from a German report request to a
parameterized SQL plan:
1. understanding (TextToIR + NLUnderstandingService)
2. routing to the report template of the detected context (KnowledgeRegistry)
3. planning the IR into SQL (ReportPlanner)
"""

import argparse
import logging
from typing import Any, Dict, Optional

from .errors import PlanningError
from .ir_models import Context
from .knowledge import KnowledgeRegistry
from .ontology import Ontology, load_ontology
from .settings import Settings, configure_logging, get_settings
from .sql_compiler import ReportPlanner
from .text_to_ir import TextToIR
from .understanding import NLUnderstandingService, UnderstandingResult, render_capabilities

logger = logging.getLogger(__name__)


def build_helpful_comment(result: UnderstandingResult) -> str:
    """
    Render a SQL-comment block explaining why a request was not planned.

    Args:
        result: a non-OK understanding result

    Returns:
        Lines starting with "--", safe to drop into a SQL editor
    """
    lines = [
        f"-- KI-Hinweis: Anfrage unklar oder zu allgemein "
        f"(Status: {result.status.value}, Konfidenz: {result.confidence:.2f}).",
        f"-- Erkannte Details: Kontext={result.ir.context.value}, "
        f"Gefundene Filter={len(result.ir.predicates)}",
        "-- Vorschläge zur Verbesserung:",
    ]
    lines.extend(f"-- - {s}" for s in result.suggestions)
    return "\n".join(lines)


class ReportPipeline:
    """
    Complete NL2SQL report flow
    ===========================

    Turns a natural-language question into an executable SQL plan.

    Flow:
    1. load ontology and report templates (json5 knowledge directory)
    2. parse and score the question (NLUnderstandingService)
    3. pick the template of the detected context
    4. plan the IR into SQL (ReportPlanner)
    """

    def __init__(
        self,
        registry: Optional[KnowledgeRegistry] = None,
        ontology: Optional[Ontology] = None,
        settings: Optional[Settings] = None
    ):
        """
        Args:
            registry: report templates; defaults to the configured knowledge directory
            ontology: synonym table; defaults to the configured ontology file
            settings: runtime configuration; defaults to ``get_settings()``
        """
        self.settings = settings if settings is not None else get_settings()

        if ontology is None:
            ontology = load_ontology(self.settings.ontology_path)
        if registry is None:
            registry = KnowledgeRegistry.from_directory(
                self.settings.knowledge_dir, self.settings.ontology_file
            )
        self.ontology = ontology
        self.registry = registry

        self.parser = TextToIR(self.ontology)
        self.understanding = NLUnderstandingService(self.parser)

        # planners are built on first use, one per context
        self.planners: Dict[Context, ReportPlanner] = {}

    def planner_for(self, context: Context) -> ReportPlanner:
        """The planner of the first template registered for ``context``."""
        if context not in self.planners:
            template = self.registry.template_for(context)
            if template is None:
                raise PlanningError(f"No report template for context {context.value}")
            self.planners[context] = ReportPlanner(template)
        return self.planners[context]

    def execute(
        self,
        question: str,
        return_ir: bool = False,
        verbose: bool = False
    ) -> Dict[str, Any]:
        """
        Run the complete flow for one question.

        Args:
            question: the user's natural-language request
            return_ir: include the intermediate representation in the result
            verbose: log each step at INFO instead of DEBUG

        Returns:
            A dict whose ``status`` is "capabilities", "needs_clarification"
            or "success"
        """
        step_level = logging.INFO if verbose else logging.DEBUG
        logger.info("Question: %s", question)

        # Step 1: understand
        result = self.understanding.understand(question)
        logger.log(
            step_level, "[1/3] status=%s confidence=%.2f context=%s predicates=%d",
            result.status.value, result.confidence, result.ir.context.value, len(result.ir.predicates)
        )

        if result.is_capabilities_intent:
            return {"question": question, "status": "capabilities", "message": render_capabilities()}

        if not result.is_ok:
            logger.info("Request too vague, returning suggestions")
            return {
                "question": question,
                "status": "needs_clarification",
                "message": build_helpful_comment(result),
                "confidence": result.confidence,
                "suggestions": result.suggestions,
                "warnings": result.warnings,
                "errors": result.errors,
            }

        # Step 2: route
        planner = self.planner_for(result.ir.context)
        logger.log(step_level, "[2/3] template: %s", planner.template.name)

        # Step 3: plan
        plan = planner.plan(result.ir)
        if not plan.headers:
            raise PlanningError(
                f"Column selection for '{question}' matched no column of '{planner.template.name}'"
            )
        logger.log(step_level, "[3/3] %d column(s), %d param(s)", len(plan.headers), len(plan.params))
        logger.debug("SQL:\n%s\nParams: %s", plan.sql, plan.params)

        result_dict = {
            "question": question,
            "status": "success",
            "sql": plan.sql,
            "params": plan.params,
            "headers": plan.headers,
            "context": result.ir.context.value,
            "skipped": plan.skipped,
            "warnings": plan.warnings,
        }
        if return_ir:
            result_dict["ir"] = result.ir.model_dump(mode="json")
        return result_dict


def main(argv=None):
    """Example usage: compile one or more sentences and print the result."""
    arg_parser = argparse.ArgumentParser(description="Compile German report requests to SQL")
    arg_parser.add_argument("questions", nargs="*", help="report requests; built-in examples if omitted")
    arg_parser.add_argument("--ir", action="store_true", help="also print the intermediate representation")
    arg_parser.add_argument("--log-level", default=None, help="overrides REPORT_NL2SQL_LOG_LEVEL")
    args = arg_parser.parse_args(argv)

    configure_logging(args.log_level)
    pipeline = ReportPipeline()

    questions = args.questions or [
        "Verträge für Makler 100120 außer land code, vsn",
        "Verträge mit Ablauf zwischen 01.01.2024 und 31.12.2024 zuerst vsn limit 50",
        "Schäden mit Status offen order by vsn desc",
        "alle cover",
        "was kannst du?",
    ]

    for question in questions:
        result = pipeline.execute(question, return_ir=args.ir, verbose=True)
        print("=" * 60)
        print(question)
        print("-" * 60)
        if result["status"] == "success":
            print(result["sql"])
            print(f"params: {result['params']}")
            if result["skipped"]:
                print(f"skipped: {result['skipped']}")
            if result["warnings"]:
                print(f"warnings: {result['warnings']}")
        else:
            print(result["message"])
        if args.ir and "ir" in result:
            print(f"ir: {result['ir']}")


if __name__ == "__main__":
    main()
