import logging
import re

from diffpatch.engine.models import DiffLine, ParsedDiff, ParsedHunk, ValidationReport
from diffpatch.errors import DiffValidationError, StructuralParseError

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")
NO_CONTENT_MESSAGE = "no valid diff content found"


def _extract_path(raw: str) -> str:
    # Drop "\t<timestamp>" suffixes emitted by diff -u
    path = raw.partition("\t")[0].rstrip()
    if path.startswith("a/") or path.startswith("b/"):
        return path[2:]
    return path


def _is_file_header(lines: list[str], i: int, in_body: bool) -> bool:
    # While a hunk still expects lines, "--- x" / "+++ y" are a removed and an added line
    if in_body:
        return False
    return lines[i].startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ ")


def parse(text: str) -> list[ParsedDiff]:
    """
    Parse unified diff text into one ParsedDiff per file.

    A unified diff looks like:
    ```diff
    --- a/src/main.py
    +++ b/src/main.py
    @@ -10,6 +10,7 @@ def calculate_total(items):
         total = 0
         for item in items:
    +        if item < 0:
    +            continue
             total += item
    ```

    **Key elements:**
    - `--- a/path` followed by `+++ b/path`: opens a new file entry, unless the
      current hunk still expects lines by its declared counts
    - `@@ -start[,count] +start[,count] @@ [label]`: hunk header, counts default to 1
    - Lines starting with ` `, `-`, `+`: context, removed, added
    - Lines starting with `\\`: "No newline at end of file" marker, skipped

    Raises:
        StructuralParseError: a line starts with `@@` but is not a valid hunk header
    """

    lines = text.split("\n")
    diffs: list[ParsedDiff] = []
    current_diff: ParsedDiff | None = None
    current_hunk: ParsedHunk | None = None
    old_line = 0
    new_line = 0
    remaining_old = 0
    remaining_new = 0

    i = 0
    while i < len(lines):
        line = lines[i]

        if _is_file_header(lines, i, in_body=remaining_old > 0 or remaining_new > 0):
            current_diff = ParsedDiff(
                old_path=_extract_path(line[4:]),
                new_path=_extract_path(lines[i + 1][4:]),
            )
            diffs.append(current_diff)
            current_hunk = None
            remaining_old = remaining_new = 0
            i += 2
            continue

        if line.startswith("@@"):
            match = HUNK_HEADER_RE.match(line)
            if not match:
                raise StructuralParseError(
                    f"Invalid hunk header at line {i + 1}: {line}",
                    path=current_diff.new_path if current_diff else None,
                    line=i + 1,
                )

            old_line = int(match.group(1))
            remaining_old = int(match.group(2) or "1")
            new_line = int(match.group(3))
            remaining_new = int(match.group(4) or "1")
            label = match.group(5).strip()

            current_hunk = ParsedHunk(
                old_start=old_line,
                old_lines=remaining_old,
                new_start=new_line,
                new_lines=remaining_new,
                context=label or None,
            )
            if current_diff is None:
                current_diff = ParsedDiff(old_path="", new_path="")
                diffs.append(current_diff)
            current_diff.hunks.append(current_hunk)
            i += 1
            continue

        if current_hunk is None:
            i += 1
            continue

        if line == "":
            # Editors strip the lone space of an empty context line
            if remaining_old > 0 and remaining_new > 0:
                line = " "
            else:
                i += 1
                continue

        prefix = line[0]
        content = line[1:]
        if prefix == " ":
            current_hunk.lines.append(
                DiffLine(kind="context", content=content, old_line_number=old_line, new_line_number=new_line)
            )
            old_line += 1
            new_line += 1
            remaining_old -= 1
            remaining_new -= 1
        elif prefix == "-":
            current_hunk.lines.append(
                DiffLine(kind="remove", content=content, old_line_number=old_line)
            )
            old_line += 1
            remaining_old -= 1
        elif prefix == "+":
            current_hunk.lines.append(
                DiffLine(kind="add", content=content, new_line_number=new_line)
            )
            new_line += 1
            remaining_new -= 1
        # "\" markers and git metadata lines carry no hunk content

        i += 1

    logger.debug(
        "Parsed %d file diffs with %d hunks",
        len(diffs),
        sum(len(d.hunks) for d in diffs),
    )
    return diffs


def first_diff(text: str) -> ParsedDiff:
    diffs = parse(text)
    if not diffs:
        raise StructuralParseError(NO_CONTENT_MESSAGE)
    return diffs[0]


def validate(text: str) -> ValidationReport:
    """
    Check diff text for structural errors and hunk count mismatches.

    Every mismatch is collected; nothing here stops a later apply, which
    works from the literal hunk lines.
    """

    errors: list[str] = []

    try:
        parsed = parse(text)
    except StructuralParseError as exc:
        return ValidationReport(valid=False, errors=[str(exc)])

    if not parsed:
        errors.append(NO_CONTENT_MESSAGE)

    for parsed_diff in parsed:
        name = parsed_diff.new_path or parsed_diff.old_path or "<unnamed>"
        prefix = f"{name}: " if len(parsed) > 1 else ""

        if not parsed_diff.hunks:
            errors.append(f"no hunks found for {name}")

        for index, hunk in enumerate(parsed_diff.hunks):
            old_count = hunk.count("context", "remove")
            new_count = hunk.count("context", "add")

            if old_count != hunk.old_lines:
                errors.append(
                    f"{prefix}Hunk {index + 1}: old line count mismatch "
                    f"(declared {hunk.old_lines}, found {old_count})"
                )
            if new_count != hunk.new_lines:
                errors.append(
                    f"{prefix}Hunk {index + 1}: new line count mismatch "
                    f"(declared {hunk.new_lines}, found {new_count})"
                )

    if errors:
        logger.warning("Diff validation found %d errors", len(errors))
    return ValidationReport(valid=not errors, errors=errors)


def assert_valid(text: str, path: str | None = None) -> None:
    report = validate(text)
    if not report.valid:
        raise DiffValidationError(report.errors, path=path)
