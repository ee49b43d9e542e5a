"""Block-patch applier built on google diff-match-patch."""

import logging

from diff_match_patch import diff_match_patch
from pydantic import BaseModel

from diffpatch.engine.base import Applier
from diffpatch.engine.models import (
    ApplierStrategy,
    ApplyOptions,
    ApplyOutcome,
    ApproximateSettings,
    DiffResult,
    HunkResult,
    ParsedHunk,
    RejectedHunk,
)
from diffpatch.engine.parser import first_diff
from diffpatch.engine.similarity import context_window, split_bom

logger = logging.getLogger(__name__)

PERFECT_MATCH_THRESHOLD = 0.0
WHITESPACE_MATCH_THRESHOLD = 0.8

REJECT_REASON = "block could not be located within the search distance"
IGNORE_CASE_WARNING = (
    "ignore_case is not supported by the approximate strategy; blocks were matched case-sensitively"
)

Span = tuple[int, int]


class MismatchDetail(BaseModel):
    hunk_index: int
    line_number: int
    expected: str
    actual: str
    similarity: float
    suggestion: str


def match_threshold(options: ApplyOptions) -> float:
    """Map the 0-100 fuzzy tolerance onto diff-match-patch's Match_Threshold.

    Match_Threshold runs the other way: 0.0 accepts only a perfect match,
    1.0 accepts anything.
    """
    threshold = PERFECT_MATCH_THRESHOLD
    if options.fuzzy > 0:
        threshold = 1 - options.fuzzy / 100
    if options.ignore_whitespace:
        threshold = max(threshold, WHITESPACE_MATCH_THRESHOLD)
    return threshold


def _line_offsets(lines: list[str]) -> list[int]:
    offsets = [0]
    for line in lines:
        offsets.append(offsets[-1] + len(line) + 1)
    return offsets


def _layout(
    lines: list[str],
    hunks: list[ParsedHunk],
    placed: list[int],
    replaced: set[int],
) -> tuple[str, str, dict[int, Span]]:
    """
    Rebuild the text the diff was written against, and the text it asks for.

    Every placed hunk's old side is laid over `lines` at its declared
    position; the rest of the target fills the gaps. The intended text is
    the same layout with the hunks in `replaced` swapped for their new side.

    Returns the claimed text, the intended text and each placed hunk's
    character span in the claimed text.
    """
    claimed: list[str] = []
    intended: list[str] = []
    line_spans: dict[int, Span] = {}
    cursor = 0

    for index in placed:
        hunk = hunks[index]
        old = hunk.old_side()
        start = min(hunk.start_index(), len(lines))
        claimed.extend(lines[cursor:start])
        intended.extend(lines[cursor:start])
        first = len(claimed)
        claimed.extend(old)
        intended.extend(hunk.new_side() if index in replaced else old)
        line_spans[index] = (first, len(claimed))
        cursor = min(start + len(old), len(lines))

    claimed.extend(lines[cursor:])
    intended.extend(lines[cursor:])

    offsets = _line_offsets(claimed)
    spans = {index: (offsets[first], offsets[end]) for index, (first, end) in line_spans.items()}
    return "\n".join(claimed), "\n".join(intended), spans


def _edit_regions(dmp: diff_match_patch, patches: list) -> list[Span]:
    """
    Claimed-text span of the edits in each block `patch_apply` will try.

    `patch_apply` pads and splits its own copy of the patches and reports
    one result per resulting block, so the same steps are replayed here.
    Block offsets are rolling (earlier blocks already applied); the running
    length change turns them back into claimed-text offsets.
    """
    blocks = dmp.patch_deepCopy(patches)
    padding = len(dmp.patch_addPadding(blocks))
    dmp.patch_splitMax(blocks)

    regions: list[Span] = []
    shift = 0
    for block in blocks:
        origin = block.start2 - padding - shift
        lead = len(block.diffs[0][1]) if block.diffs[0][0] == diff_match_patch.DIFF_EQUAL else 0
        trail = len(block.diffs[-1][1]) if block.diffs[-1][0] == diff_match_patch.DIFF_EQUAL else 0
        start = origin + lead
        regions.append((start, max(start, origin + block.length1 - trail)))
        shift += block.length2 - block.length1
    return regions


def _touches(region: Span, span: Span) -> bool:
    a, b = region
    s, e = span
    if a == b or s == e:
        return s <= b and a <= e
    return a < e and s < b


def _owners(region: Span, spans: dict[int, Span]) -> set[int]:
    """Hunks whose claimed span an edit region falls in; the nearest one when it falls between hunks."""
    owners = {index for index, span in spans.items() if _touches(region, span)}
    if owners or not spans:
        return owners
    a, b = region
    nearest = min(spans, key=lambda index: max(spans[index][0] - b, a - spans[index][1], 0))
    return {nearest}


class ApproximateApplier(Applier):
    """
    Applies a diff as diff-match-patch block patches instead of by line number.

    The text the diff was written against is rebuilt by laying every hunk's
    old side over the target at its declared position. A character diff
    from that to the intended text becomes block patches anchored by
    `patch_margin` characters of context, and `patch_apply` searches for
    each block up to `match_distance` characters from where it is expected.
    A fuzzy match keeps the target's own differences around the edit.

    Each block is mapped back to the hunk it edits. A hunk with a block that
    could not be placed is rejected and the remaining hunks are patched
    again without it, so a hunk is applied whole or not at all.

    `ignore_case` is not applied: blocks are matched case-sensitively and
    the outcome carries a warning saying so.
    """

    def __init__(self, settings: ApproximateSettings | None = None):
        self.settings = settings

    @property
    def strategy(self) -> ApplierStrategy:
        return ApplierStrategy.APPROXIMATE

    def _matcher(self, options: ApplyOptions, threshold: float) -> diff_match_patch:
        # One instance per call; diff_match_patch keeps its knobs as mutable attributes
        settings = self.settings or options.approximate
        dmp = diff_match_patch()
        dmp.Diff_Timeout = settings.diff_timeout
        dmp.Match_Distance = settings.match_distance
        dmp.Patch_Margin = settings.patch_margin
        # Oversized blocks are matched by their ends only; bound their body by the same tolerance
        dmp.Patch_DeleteThreshold = min(settings.patch_delete_threshold, threshold)
        dmp.Match_Threshold = threshold
        return dmp

    def apply(
        self,
        text: str,
        diff: str,
        options: ApplyOptions | None = None,
    ) -> ApplyOutcome:
        options = options or ApplyOptions()
        parsed = first_diff(diff)
        hunks = parsed.hunks

        bom, body = split_bom(text)
        lines = body.split("\n")

        warnings: list[str] = []
        if options.ignore_case:
            logger.warning("ignore_case has no effect on approximate matching")
            warnings.append(IGNORE_CASE_WARNING)

        # stop_on_first_error cuts in the exact applier's bottom-to-top order
        order = sorted(range(len(hunks)), key=lambda index: hunks[index].old_start, reverse=True)
        ascending = sorted(
            range(len(hunks)),
            key=lambda index: (min(hunks[index].start_index(), len(lines)), index),
        )

        reasons: dict[int, str] = {}
        placed: list[int] = []
        cursor = 0
        for index in ascending:
            start = min(hunks[index].start_index(), len(lines))
            if placed and start < cursor:
                reasons[index] = f"hunk overlaps hunk {placed[-1] + 1}"
                continue
            placed.append(index)
            cursor = min(start + len(hunks[index].old_side()), len(lines))

        dmp = self._matcher(options, match_threshold(options))
        live = set(placed)
        failed = set(reasons)
        current = body
        patches: list = []

        while True:
            if options.stop_on_first_error and failed:
                cutoff = min(order.index(index) for index in failed)
                skipped = set(order[cutoff + 1:])
                failed -= skipped
                live -= skipped

            claimed, intended, spans = _layout(lines, hunks, placed, live)
            patches = dmp.patch_make(claimed, intended)
            live_spans = {index: spans[index] for index in live}
            current, missed = self._apply_blocks(dmp, patches, body, live_spans)
            if not missed:
                break
            for index in missed:
                logger.warning("Hunk %d could not be located", index + 1)
            failed |= missed
            live -= missed

        if options.fuzzy > 0 and patches:
            strict = self._matcher(options, PERFECT_MATCH_THRESHOLD)
            _, inexact = self._apply_blocks(strict, patches, body, live_spans)
            if inexact:
                warnings.append(f"{len(inexact)} hunk(s) applied with fuzzy matching")

        applied = [
            HunkResult(
                hunk_index=index,
                start_line=hunks[index].old_start,
                lines_removed=hunks[index].count("remove"),
                lines_added=hunks[index].count("add"),
            )
            for index in sorted(live)
        ]
        rejected = [
            RejectedHunk(
                hunk_index=index,
                reason=reasons.get(index, REJECT_REASON),
                expected_context=hunks[index].old_side(),
                actual_context=context_window(lines, min(hunks[index].start_index(), len(lines))),
                suggestion=(
                    "Try increasing the fuzzy matching threshold"
                    if options.fuzzy
                    else "Enable fuzzy matching with the --fuzzy option"
                ),
            )
            for index in sorted(failed)
        ]

        success = not rejected or (options.partial_allowed and len(applied) > 0)
        result = DiffResult(
            success=success,
            path=parsed.new_path or parsed.old_path,
            hunks_total=len(hunks),
            hunks_applied=len(applied),
            hunks_rejected=len(rejected),
            applied=applied,
            rejected=rejected,
            warnings=warnings,
        )

        logger.debug(
            "Approximate apply: %d/%d hunks applied to %s",
            len(applied),
            len(hunks),
            result.path or "<buffer>",
        )
        return ApplyOutcome(text=bom + current, result=result)

    def _apply_blocks(
        self,
        dmp: diff_match_patch,
        patches: list,
        text: str,
        spans: dict[int, Span],
    ) -> tuple[str, set[int]]:
        """Run `patch_apply`; return the new text and the hunks owning a block that was not placed."""
        if not patches:
            return text, set()

        patched, results = dmp.patch_apply(patches, text)
        missed: set[int] = set()
        for region, placed in zip(_edit_regions(dmp, patches), results):
            if not placed:
                missed |= _owners(region, spans)
        return patched, missed

    def detailed_errors(self, outcome: ApplyOutcome) -> list[MismatchDetail]:
        """Line-level breakdown of every rejected hunk with a hint for each mismatch."""
        dmp = diff_match_patch()
        details: list[MismatchDetail] = []

        for rejected in outcome.result.rejected:
            for i, expected in enumerate(rejected.expected_context):
                actual = rejected.actual_context[i] if i < len(rejected.actual_context) else ""
                if expected == actual:
                    continue
                score = _similarity_from_diffs(dmp.diff_main(expected, actual))
                details.append(
                    MismatchDetail(
                        hunk_index=rejected.hunk_index,
                        line_number=i + 1,
                        expected=expected,
                        actual=actual,
                        similarity=score,
                        suggestion=suggest(score, expected, actual),
                    )
                )
        return details


def _similarity_from_diffs(diffs: list[tuple[int, str]]) -> float:
    equal_chars = 0
    total_chars = 0
    for op, chunk in diffs:
        if op == diff_match_patch.DIFF_EQUAL:
            equal_chars += len(chunk)
        total_chars += len(chunk)
    return equal_chars / total_chars if total_chars else 0.0


def suggest(score: float, expected: str, actual: str) -> str:
    if score > 0.9:
        return "Lines are very similar. Minor differences in whitespace or punctuation."
    if score > 0.7:
        if expected.strip() == actual.strip():
            return "Difference is only in whitespace/indentation. Use --ignore-whitespace."
        if expected.strip().lower() == actual.strip().lower():
            return "Difference is only in case. Use --ignore-case."
        return "Lines have moderate similarity. Consider fuzzy matching with --fuzzy 80."
    if score > 0.5:
        return "Lines have some similarity. Enable fuzzy matching with --fuzzy 60."
    return "Lines are significantly different. Verify you have the correct file version."
