"""Text storage backends and post-apply validators."""

from .filesystem import (
    FileSystemTextStore,
    TextStore,
    resolve_safe_path,
)
from .validators import StructuredSyntaxValidator, SyntaxValidator

__all__ = [
    "FileSystemTextStore",
    "TextStore",
    "resolve_safe_path",
    "StructuredSyntaxValidator",
    "SyntaxValidator",
]
