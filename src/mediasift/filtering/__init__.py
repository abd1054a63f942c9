"""Contextual precision filtering."""

from .context import ContextualFilter, DocumentContext, FilterOutcome, build_context

__all__ = ["ContextualFilter", "DocumentContext", "FilterOutcome", "build_context"]
