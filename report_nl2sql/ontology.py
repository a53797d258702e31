"""
Ontology
========

Synonym knowledge: maps the words an operator types to the canonical
semantic fields used by the IR, and recognizes which reporting domain a
sentence is about.
"""

from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import json5

from .errors import KnowledgeBaseError
from .ir_models import Context
from .settings import get_settings


class Ontology:
    """Read-only synonym table plus context keyword sets."""

    def __init__(
        self,
        synonyms: Mapping[str, str],
        contexts: Optional[Mapping[Context, List[str]]] = None
    ):
        self._synonyms: Dict[str, str] = {
            k.strip().lower(): v.strip().lower() for k, v in synonyms.items()
        }
        self._contexts: Dict[Context, tuple] = {
            ctx: tuple(kw.lower() for kw in keywords)
            for ctx, keywords in (contexts or {}).items()
        }

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Ontology":
        """Load an ontology from a json5 file with ``synonyms`` and ``contexts``."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Ontology file does not exist: {path}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json5.load(f)
            except ValueError as e:
                raise KnowledgeBaseError(f"Cannot parse ontology file {path}: {e}") from e

        if not isinstance(data, dict):
            raise KnowledgeBaseError(f"Ontology file {path} must contain an object, got {type(data).__name__}")

        synonyms = data.get("synonyms", {})
        raw_contexts = data.get("contexts", {})
        if not isinstance(synonyms, dict) or not isinstance(raw_contexts, dict):
            raise KnowledgeBaseError(f"Ontology file {path}: 'synonyms' and 'contexts' must be objects")
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in synonyms.items()):
            raise KnowledgeBaseError(f"Ontology file {path}: synonyms must map strings to strings")

        contexts = {}
        for name, keywords in raw_contexts.items():
            try:
                ctx = Context(name)
            except ValueError as e:
                raise KnowledgeBaseError(f"Unknown context in {path}: {e}") from e
            if not isinstance(keywords, list) or not all(isinstance(kw, str) for kw in keywords):
                raise KnowledgeBaseError(f"Ontology file {path}: keywords of {name} must be a list of strings")
            contexts[ctx] = keywords
        return cls(synonyms, contexts)

    def resolve(self, token: str) -> str:
        """
        Resolve a token (word or phrase) to its canonical field.

        Args:
            token: the word the user typed, e.g. "Anfang"

        Returns:
            The canonical field (e.g. "beginn") or the lower-cased token itself
        """
        key = token.strip().lower()
        return self._synonyms.get(key, key)

    def detect_context(self, text: str) -> Context:
        padded = f" {text.lower()} "
        for ctx, keywords in self._contexts.items():
            if any(kw in padded for kw in keywords):
                return ctx
        return Context.UNKNOWN


def load_ontology(path: Optional[Union[str, Path]] = None) -> Ontology:
    """Load the configured ontology (``Settings.ontology_path`` by default)."""
    if path is None:
        path = get_settings().ontology_path
    return Ontology.from_file(path)
