import pytest

from diffpatch.engine.exact import ExactApplier
from diffpatch.engine.models import ApplierStrategy, ApplyOptions
from diffpatch.engine.similarity import BOM
from diffpatch.errors import StructuralParseError

B_TO_B2 = """\
--- a/f.txt
+++ b/f.txt
@@ -1,3 +1,3 @@
 a
-b
+b2
 c
"""

DRIFTED_TEXT = "def run(items):\n    total = compute_totals(items)\n    return total\n"

DOUBLE_RETURN = """\
--- a/run.py
+++ b/run.py
@@ -1,3 +1,3 @@
 def run(items):
     total = compute_total(items)
-    return total
+    return total * 2
"""

LETTERS = "a\nb\nc\nd\ne\nf\ng\nh\n"

TWO_HUNKS_SECOND_BAD = """\
--- a/letters.txt
+++ b/letters.txt
@@ -1,2 +1,2 @@
 a
-b
+B
@@ -7,2 +7,2 @@
 g
-x
+X
"""


@pytest.fixture
def applier() -> ExactApplier:
    return ExactApplier()


class TestApply:
    def test_strategy(self, applier):
        assert applier.strategy == ApplierStrategy.EXACT

    def test_simple_replacement(self, applier):
        outcome = applier.apply("a\nb\nc\n", B_TO_B2)

        assert outcome.text == "a\nb2\nc\n"
        assert outcome.result.success is True
        assert outcome.result.path == "f.txt"
        assert outcome.result.hunks_total == 1
        assert outcome.result.hunks_applied == 1
        applied = outcome.result.applied[0]
        assert (applied.start_line, applied.lines_removed, applied.lines_added) == (1, 1, 1)

    def test_reapplying_is_rejected(self, applier):
        once = applier.apply("a\nb\nc\n", B_TO_B2).text

        twice = applier.apply(once, B_TO_B2)

        assert twice.result.success is False
        assert twice.text == once

    def test_hunks_apply_bottom_to_top(self, applier):
        text = "\n".join(f"line{i}" for i in range(1, 11)) + "\n"
        # Declared out of order on purpose
        diff = (
            "--- a/f\n+++ b/f\n"
            "@@ -8,2 +9,2 @@\n line8\n-line9\n+LINE9\n"
            "@@ -1,2 +1,3 @@\n line1\n+inserted\n line2\n"
        )

        outcome = applier.apply(text, diff)

        assert outcome.result.success is True
        assert outcome.text.split("\n") == [
            "line1", "inserted", "line2", "line3", "line4", "line5",
            "line6", "line7", "line8", "LINE9", "line10", "",
        ]
        assert [r.hunk_index for r in outcome.result.applied] == [0, 1]

    def test_insert_only_hunk_goes_after_old_start(self, applier):
        diff = "--- a/f\n+++ b/f\n@@ -1,0 +2,1 @@\n+inserted\n"

        outcome = applier.apply("a\nb\n", diff)

        assert outcome.text == "a\ninserted\nb\n"

    def test_insert_at_top_of_file(self, applier):
        diff = "--- a/f\n+++ b/f\n@@ -0,0 +1,1 @@\n+header\n"

        outcome = applier.apply("a\n", diff)

        assert outcome.text == "header\na\n"

    def test_no_diff_content_raises(self, applier):
        with pytest.raises(StructuralParseError, match="no valid diff content found"):
            applier.apply("a\n", "nothing to see here\n")


class TestContextMismatch:
    def test_rejected_without_fuzzy(self, applier):
        outcome = applier.apply(DRIFTED_TEXT, DOUBLE_RETURN)

        assert outcome.result.success is False
        assert outcome.text == DRIFTED_TEXT
        rejected = outcome.result.rejected[0]
        assert rejected.reason == "context mismatch at line 2"
        assert rejected.suggestion is None
        assert rejected.expected_context == [
            "def run(items):",
            "    total = compute_total(items)",
            "    return total",
        ]
        assert rejected.actual_context == DRIFTED_TEXT.split("\n")[:3]

    def test_accepted_with_fuzzy_warning(self, applier):
        outcome = applier.apply(DRIFTED_TEXT, DOUBLE_RETURN, ApplyOptions(fuzzy=90))

        assert outcome.result.success is True
        # Context lines keep the target's version
        assert outcome.text == "def run(items):\n    total = compute_totals(items)\n    return total * 2\n"
        assert outcome.result.warnings == ["Hunk 1: fuzzy matching accepted line 2 (97% similar)"]

    def test_below_fuzzy_threshold_reports_similarity(self, applier):
        outcome = applier.apply(DRIFTED_TEXT, DOUBLE_RETURN, ApplyOptions(fuzzy=99))

        rejected = outcome.result.rejected[0]
        assert rejected.reason == "context mismatch at line 2"
        assert rejected.suggestion == "line similarity 97% (required: 99%)"

    def test_ignore_whitespace(self, applier):
        diff = "--- a/f\n+++ b/f\n@@ -1 +1 @@\n-x  =  1\n+x = 2\n"

        assert applier.apply("    x = 1\n", diff).result.success is False
        outcome = applier.apply("    x = 1\n", diff, ApplyOptions(ignore_whitespace=True))
        assert outcome.text == "x = 2\n"

    def test_ignore_case(self, applier):
        diff = "--- a/f\n+++ b/f\n@@ -1,2 +1,2 @@\n HELLO\n-world\n+there\n"

        outcome = applier.apply("hello\nworld\n", diff, ApplyOptions(ignore_case=True))

        assert outcome.text == "hello\nthere\n"

    def test_hunk_past_end_of_file(self, applier):
        diff = "--- a/f\n+++ b/f\n@@ -5,1 +5,1 @@\n-x\n+y\n"

        outcome = applier.apply("a\n", diff)

        assert outcome.result.rejected[0].reason == "hunk extends beyond end of file"

    def test_hunk_running_off_the_end(self, applier):
        diff = "--- a/f\n+++ b/f\n@@ -2,2 +2,2 @@\n b\n-c\n+d\n"

        outcome = applier.apply("a\nb", diff)

        assert outcome.result.rejected[0].reason == "hunk extends beyond end of file"


class TestPartialApply:
    def test_stops_on_first_rejection(self, applier):
        outcome = applier.apply(LETTERS, TWO_HUNKS_SECOND_BAD)

        assert outcome.result.success is False
        assert outcome.result.hunks_applied == 0
        assert [r.hunk_index for r in outcome.result.rejected] == [1]
        assert outcome.result.rejected[0].actual_context == ["g", "h"]
        assert outcome.text == LETTERS

    def test_keeps_going_when_asked(self, applier):
        options = ApplyOptions(stop_on_first_error=False)

        outcome = applier.apply(LETTERS, TWO_HUNKS_SECOND_BAD, options)

        assert outcome.result.success is False
        assert outcome.result.hunks_applied == 1
        assert outcome.result.hunks_rejected == 1
        assert outcome.text.startswith("a\nB\nc\n")

    def test_partial_allowed_counts_as_success(self, applier):
        options = ApplyOptions(stop_on_first_error=False, partial_allowed=True)

        outcome = applier.apply(LETTERS, TWO_HUNKS_SECOND_BAD, options)

        assert outcome.result.success is True


class TestByteOrderMark:
    def test_bom_is_preserved(self, applier):
        outcome = applier.apply(BOM + "a\nb\nc\n", B_TO_B2)

        assert outcome.text == BOM + "a\nb2\nc\n"

    def test_bom_is_not_added(self, applier):
        outcome = applier.apply("a\nb\nc\n", B_TO_B2)

        assert not outcome.text.startswith(BOM)
