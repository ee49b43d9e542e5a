"""Unified diff parsing, applying and synthesis."""

from .approximate import ApproximateApplier
from .base import Applier, get_applier
from .exact import ExactApplier
from .models import (
    ApplierStrategy,
    ApplyOptions,
    ApplyOutcome,
    ApproximateSettings,
    DiffResult,
    ParsedDiff,
    ParsedHunk,
    PatchFile,
    PatchOptions,
    PatchResult,
)
from .parser import assert_valid, parse, validate
from .synthesizer import create_diff

__all__ = [
    "Applier",
    "ApplierStrategy",
    "ApproximateApplier",
    "ExactApplier",
    "get_applier",
    "ApplyOptions",
    "ApplyOutcome",
    "ApproximateSettings",
    "DiffResult",
    "ParsedDiff",
    "ParsedHunk",
    "PatchFile",
    "PatchOptions",
    "PatchResult",
    "parse",
    "validate",
    "assert_valid",
    "create_diff",
]
