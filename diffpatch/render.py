from diffpatch.engine.models import (
    DiffResult,
    PatchResult,
    ValidationReport,
    ValidationResult,
)

PREVIEW_LINES = 20


def format_diff_result(result: DiffResult, dry_run: bool = False) -> str:
    lines = [
        f"Diff {'Preview' if dry_run else 'Result'}: {result.path}",
        f"Success: {result.success}",
        f"Hunks: {result.hunks_applied}/{result.hunks_total} applied",
    ]

    if result.hunks_rejected > 0:
        lines.append(f"Rejected: {result.hunks_rejected} hunks")
        for rejected in result.rejected:
            lines.append(f"  - Hunk {rejected.hunk_index + 1}: {rejected.reason}")
            if rejected.suggestion:
                lines.append(f"    Suggestion: {rejected.suggestion}")

    if result.warnings:
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in result.warnings)

    if result.backup_path:
        lines.append(f"Backup: {result.backup_path}")

    if result.syntax_valid is not None:
        lines.append(f"Syntax: {'Valid' if result.syntax_valid else 'Invalid'}")
        if result.compile_errors:
            lines.append("Compile errors:")
            lines.extend(f"  - {e}" for e in result.compile_errors)

    if dry_run and result.preview is not None:
        preview = result.preview.split("\n")
        lines.append("")
        lines.append(f"Preview (first {PREVIEW_LINES} lines):")
        lines.extend(f"{i}: {line}" for i, line in enumerate(preview[:PREVIEW_LINES], start=1))
        if len(preview) > PREVIEW_LINES:
            lines.append("... (truncated)")

    return "\n".join(lines)


def format_patch_result(result: PatchResult) -> str:
    lines = [
        f"Patch Result: {result.files_succeeded}/{result.files_total} files succeeded",
        f"Success: {result.success}",
        f"Files processed: {result.files_processed}",
        f"Files failed: {result.files_failed}",
    ]

    if result.rollback_available:
        lines.append(f"Rollback available: {len(result.rollback_paths)} backups")

    lines.append("")
    lines.append("File Results:")
    for path, file_result in result.results.items():
        lines.append(f"  {path}: {'SUCCESS' if file_result.success else 'FAILED'}")
        lines.append(f"    Hunks: {file_result.hunks_applied}/{file_result.hunks_total}")
        if file_result.warnings:
            lines.append(f"    Warnings: {', '.join(file_result.warnings)}")

    return "\n".join(lines)


def format_validation(report: ValidationReport | ValidationResult) -> str:
    if isinstance(report, ValidationReport):
        if report.valid:
            return "Valid diff"
        return "\n".join(["Invalid diff:"] + [f"  - {e}" for e in report.errors])

    lines = [
        f"Valid: {report.valid}",
        f"Applicable: {report.applicable}",
    ]
    if report.conflicts:
        lines.append("Conflicts:")
        lines.extend(
            f"  - Hunk {c.hunk_index + 1} (line {c.line}): {c.description}" for c in report.conflicts
        )
    if report.warnings:
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in report.warnings)
    return "\n".join(lines)
