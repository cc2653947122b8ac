"""Domain port definitions for adapters."""

from __future__ import annotations

from .context_handler import ContextHandler, GeneratedValuesReporter

__all__ = ["ContextHandler", "GeneratedValuesReporter"]
