"""
Exceptions
==========

The compiler never raises for malformed natural-language input; these are
reserved for broken knowledge files and plans the caller must not execute.
"""


class ReportCompilerError(Exception):
    """Base class for all errors raised by report_nl2sql."""


class KnowledgeBaseError(ReportCompilerError, ValueError):
    """A knowledge or ontology file could not be loaded or is inconsistent."""


class PlanningError(ReportCompilerError, ValueError):
    """A QueryIR could not be turned into an executable SqlPlan."""
