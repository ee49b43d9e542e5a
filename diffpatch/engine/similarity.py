import re

BOM = "\ufeff"

_WHITESPACE_RUN_RE = re.compile(r"\s+")


def split_bom(text: str) -> tuple[str, str]:
    """Return (bom, text_without_bom); bom is "" when absent."""
    if text.startswith(BOM):
        return BOM, text[len(BOM):]
    return "", text


def normalize_line(line: str, ignore_whitespace: bool = False, ignore_case: bool = False) -> str:
    if ignore_whitespace:
        line = _WHITESPACE_RUN_RE.sub(" ", line.strip())
    if ignore_case:
        line = line.lower()
    return line


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j - 1] + cost,  # substitution
                    current[j - 1] + 1,      # insertion
                    previous[j] + 1,         # deletion
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """
    Edit-distance similarity in [0, 1].

    1.0 for identical strings, 0.0 when exactly one side is empty or the
    strings share nothing positionally.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))


def context_window(lines: list[str], index: int, size: int = 3) -> list[str]:
    start = max(0, index - size)
    end = min(len(lines), index + size)
    return lines[start:end]
