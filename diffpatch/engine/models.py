from enum import StrEnum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class DiffLine(BaseModel):
    kind: Literal["context", "add", "remove"]
    content: str
    old_line_number: int | None = None
    new_line_number: int | None = None


class ParsedHunk(BaseModel):
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    context: str | None = None
    lines: list[DiffLine] = Field(default_factory=list)

    def count(self, *kinds: str) -> int:
        return sum(1 for line in self.lines if line.kind in kinds)

    def old_side(self) -> list[str]:
        return [line.content for line in self.lines if line.kind != "add"]

    def new_side(self) -> list[str]:
        return [line.content for line in self.lines if line.kind != "remove"]

    def start_index(self) -> int:
        """0-based target index of the hunk's first old line.

        A hunk without old lines inserts after line `old_start` (the `-k,0`
        convention), so its index is `old_start` itself.
        """
        if self.count("context", "remove") == 0:
            return max(self.old_start, 0)
        return max(self.old_start - 1, 0)


class ParsedDiff(BaseModel):
    old_path: str
    new_path: str
    hunks: list[ParsedHunk] = Field(default_factory=list)


class ApplierStrategy(StrEnum):
    EXACT = "exact"
    APPROXIMATE = "approximate"


class ApproximateSettings(BaseModel):
    """Tuning for block matching; see diff-match-patch Match_*/Patch_* knobs."""

    model_config = ConfigDict(
        extra="forbid",
    )

    match_distance: int = Field(default=1000, ge=0)
    patch_margin: int = Field(default=4, ge=1, le=15)
    diff_timeout: float = Field(default=1.0, ge=0.0)
    patch_delete_threshold: float = Field(default=0.5, ge=0.0, le=1.0)


class ApplyOptions(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
    )

    fuzzy: int = Field(default=0, ge=0, le=100)
    ignore_whitespace: bool = False
    ignore_case: bool = False

    create_backup: bool = True
    validate_syntax: bool = False
    dry_run: bool = False

    partial_allowed: bool = False
    stop_on_first_error: bool = True
    strict_counts: bool = False

    strategy: ApplierStrategy = ApplierStrategy.EXACT
    approximate: ApproximateSettings = Field(default_factory=ApproximateSettings)

    # Read only by the post-apply notifier.
    notify: bool = True


class PatchOptions(ApplyOptions):
    atomic: bool = True
    continue_on_error: bool = False
    root: Path | None = None
    journal_path: Path | None = None

    @field_serializer("root", "journal_path")
    def serialize_paths(self, v: Path | None) -> str | None:
        return str(v) if v is not None else None


class HunkResult(BaseModel):
    hunk_index: int
    start_line: int
    lines_removed: int
    lines_added: int


class RejectedHunk(BaseModel):
    hunk_index: int
    reason: str
    expected_context: list[str] = Field(default_factory=list)
    actual_context: list[str] = Field(default_factory=list)
    suggestion: str | None = None


class DiffResult(BaseModel):
    success: bool
    path: str = ""
    hunks_total: int = 0
    hunks_applied: int = 0
    hunks_rejected: int = 0

    applied: list[HunkResult] = Field(default_factory=list)
    rejected: list[RejectedHunk] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    backup_path: str | None = None
    preview: str | None = None

    syntax_valid: bool | None = None
    compile_errors: list[str] | None = None


class ApplyOutcome(BaseModel):
    text: str
    result: DiffResult


class PatchFile(BaseModel):
    path: str
    diff: str
    priority: int = 0


class PatchResult(BaseModel):
    success: bool
    files_total: int
    files_processed: int
    files_succeeded: int
    files_failed: int

    results: dict[str, DiffResult] = Field(default_factory=dict)

    rollback_available: bool = False
    rollback_paths: list[str] = Field(default_factory=list)


class ValidationReport(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class ConflictInfo(BaseModel):
    hunk_index: int
    line: int
    description: str


class ValidationResult(BaseModel):
    valid: bool
    applicable: bool
    conflicts: list[ConflictInfo] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class SyntaxCheck(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
