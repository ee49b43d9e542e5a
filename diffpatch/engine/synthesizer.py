import logging

from diff_match_patch import diff_match_patch

from diffpatch.engine.similarity import split_bom

logger = logging.getLogger(__name__)

_PREFIX = {
    diff_match_patch.DIFF_EQUAL: " ",
    diff_match_patch.DIFF_DELETE: "-",
    diff_match_patch.DIFF_INSERT: "+",
}


def _line_ops(old_text: str, new_text: str) -> list[tuple[int, str]]:
    """Line-level edit script between the `\\n`-split line lists of both texts."""
    dmp = diff_match_patch()
    dmp.Diff_Timeout = 0

    # Terminate every split element so the trailing "" after a final newline is a line too
    chars1, chars2, line_array = dmp.diff_linesToChars(old_text + "\n", new_text + "\n")
    diffs = dmp.diff_main(chars1, chars2, False)

    ops: list[tuple[int, str]] = []
    for op, chunk in diffs:
        for char in chunk:
            ops.append((op, line_array[ord(char)][:-1]))
    return ops


def _range(start: int, count: int) -> str:
    # An empty range names the line before it (`-k,0`)
    return f"{start + 1 if count else start},{count}"


def create_diff(
    old_text: str,
    new_text: str,
    old_path: str = "original",
    new_path: str = "modified",
    context_lines: int = 3,
) -> str:
    """
    Produce a unified diff that turns `old_text` into `new_text`.

    Runs of at most 2 * `context_lines` unchanged lines between two changes
    stay inside one hunk. Identical inputs yield the file headers only.
    A leading byte order mark is not diffed; appliers keep whatever mark
    the target already has.
    """
    context_lines = max(context_lines, 0)
    out = [f"--- {old_path}", f"+++ {new_path}"]

    ops = _line_ops(split_bom(old_text)[1], split_bom(new_text)[1])
    changes = [i for i, (op, _) in enumerate(ops) if op != diff_match_patch.DIFF_EQUAL]
    if not changes:
        return "\n".join(out) + "\n"

    groups: list[tuple[int, int]] = []
    first = last = changes[0]
    for index in changes[1:]:
        if index - last - 1 <= 2 * context_lines:
            last = index
            continue
        groups.append((first, last))
        first = last = index
    groups.append((first, last))

    old_pos = 0
    new_pos = 0
    consumed = 0

    for first, last in groups:
        lo = max(consumed, first - context_lines)
        hi = min(len(ops), last + context_lines + 1)

        for op, _ in ops[consumed:lo]:
            if op != diff_match_patch.DIFF_INSERT:
                old_pos += 1
            if op != diff_match_patch.DIFF_DELETE:
                new_pos += 1

        body = ops[lo:hi]
        old_count = sum(1 for op, _ in body if op != diff_match_patch.DIFF_INSERT)
        new_count = sum(1 for op, _ in body if op != diff_match_patch.DIFF_DELETE)

        out.append(f"@@ -{_range(old_pos, old_count)} +{_range(new_pos, new_count)} @@")
        out.extend(_PREFIX[op] + line for op, line in body)

        old_pos += old_count
        new_pos += new_count
        consumed = hi

    logger.debug("Synthesized %d hunk(s) for %s", len(groups), new_path)
    return "\n".join(out) + "\n"
