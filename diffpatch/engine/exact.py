import logging

from diffpatch.engine.base import Applier
from diffpatch.engine.models import (
    ApplierStrategy,
    ApplyOptions,
    ApplyOutcome,
    DiffResult,
    HunkResult,
    ParsedHunk,
    RejectedHunk,
)
from diffpatch.engine.parser import first_diff
from diffpatch.engine.similarity import normalize_line, similarity, split_bom

logger = logging.getLogger(__name__)


class ExactApplier(Applier):
    """
    Walks each hunk line by line against the target at its declared position.

    Hunks are applied bottom-to-top so an edit never shifts the position of a
    hunk that has not been processed yet. Every context and removed line must
    match the target (after optional whitespace/case normalization); with
    `fuzzy` > 0 a near match whose similarity clears `fuzzy / 100` is
    accepted and reported as a warning.
    """

    @property
    def strategy(self) -> ApplierStrategy:
        return ApplierStrategy.EXACT

    def apply(
        self,
        text: str,
        diff: str,
        options: ApplyOptions | None = None,
    ) -> ApplyOutcome:
        options = options or ApplyOptions()
        parsed = first_diff(diff)

        bom, body = split_bom(text)
        lines = body.split("\n")

        applied: list[HunkResult] = []
        rejected: list[RejectedHunk] = []
        warnings: list[str] = []

        order = sorted(
            range(len(parsed.hunks)),
            key=lambda index: parsed.hunks[index].old_start,
            reverse=True,
        )

        for hunk_index in order:
            hunk = parsed.hunks[hunk_index]
            outcome, hunk_warnings = self._apply_hunk(lines, hunk, hunk_index, options)
            warnings.extend(hunk_warnings)

            if isinstance(outcome, HunkResult):
                applied.append(outcome)
                continue

            logger.warning("Hunk %d rejected: %s", hunk_index + 1, outcome.reason)
            rejected.append(outcome)
            if options.stop_on_first_error:
                break

        applied.sort(key=lambda r: r.hunk_index)
        rejected.sort(key=lambda r: r.hunk_index)

        success = not rejected or (options.partial_allowed and len(applied) > 0)
        result = DiffResult(
            success=success,
            path=parsed.new_path or parsed.old_path,
            hunks_total=len(parsed.hunks),
            hunks_applied=len(applied),
            hunks_rejected=len(rejected),
            applied=applied,
            rejected=rejected,
            warnings=warnings,
        )

        logger.debug(
            "Exact apply: %d/%d hunks applied to %s",
            len(applied),
            len(parsed.hunks),
            result.path or "<buffer>",
        )
        return ApplyOutcome(text=bom + "\n".join(lines), result=result)

    def _apply_hunk(
        self,
        lines: list[str],
        hunk: ParsedHunk,
        hunk_index: int,
        options: ApplyOptions,
    ) -> tuple[HunkResult | RejectedHunk, list[str]]:
        start = hunk.start_index()
        expected_context = hunk.old_side()
        warnings: list[str] = []

        def reject(reason: str, suggestion: str | None = None) -> tuple[RejectedHunk, list[str]]:
            return (
                RejectedHunk(
                    hunk_index=hunk_index,
                    reason=reason,
                    expected_context=expected_context,
                    actual_context=lines[start:start + len(expected_context)],
                    suggestion=suggestion,
                ),
                [],
            )

        if start > len(lines):
            return reject("hunk extends beyond end of file")

        replacement: list[str] = []
        cursor = start
        lines_removed = 0
        lines_added = 0

        for diff_line in hunk.lines:
            if diff_line.kind == "add":
                replacement.append(diff_line.content)
                lines_added += 1
                continue

            if cursor >= len(lines):
                return reject("hunk extends beyond end of file")

            actual = lines[cursor]
            expected_norm = normalize_line(diff_line.content, options.ignore_whitespace, options.ignore_case)
            actual_norm = normalize_line(actual, options.ignore_whitespace, options.ignore_case)

            if expected_norm != actual_norm:
                if options.fuzzy <= 0:
                    return reject(f"context mismatch at line {cursor + 1}")

                score = similarity(expected_norm, actual_norm)
                if score < options.fuzzy / 100:
                    return reject(
                        f"context mismatch at line {cursor + 1}",
                        suggestion=f"line similarity {round(score * 100)}% (required: {options.fuzzy}%)",
                    )
                warnings.append(
                    f"Hunk {hunk_index + 1}: fuzzy matching accepted line {cursor + 1} "
                    f"({round(score * 100)}% similar)"
                )

            if diff_line.kind == "remove":
                lines_removed += 1
            else:
                replacement.append(actual)
            cursor += 1

        lines[start:cursor] = replacement

        return (
            HunkResult(
                hunk_index=hunk_index,
                start_line=hunk.old_start,
                lines_removed=lines_removed,
                lines_added=lines_added,
            ),
            warnings,
        )
