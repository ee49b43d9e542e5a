import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from diffpatch.engine.models import PatchFile
from diffpatch.errors import StructuralParseError

logger = logging.getLogger(__name__)

GIT_HEADER_RE = re.compile(r"^diff --git a/(.*) b/(.*)$")
DEV_NULL = "/dev/null"


def _header_path(raw: str) -> str:
    path = raw.partition("\t")[0].rstrip()
    if path.startswith("a/") or path.startswith("b/"):
        return path[2:]
    return path


def _split_on_git_headers(lines: list[str]) -> list[PatchFile]:
    files: list[PatchFile] = []
    current_path: str | None = None
    current_lines: list[str] = []

    def flush() -> None:
        if current_path is not None and current_lines:
            files.append(PatchFile(path=current_path, diff="\n".join(current_lines)))

    for line in lines:
        match = GIT_HEADER_RE.match(line)
        if match:
            flush()
            current_path = match.group(2) or match.group(1)
            current_lines = []
            continue
        if current_path is not None:
            current_lines.append(line)

    flush()
    return files


def _split_on_file_headers(lines: list[str]) -> list[PatchFile]:
    starts: list[int] = []
    for i, line in enumerate(lines):
        if (
            line.startswith("--- ")
            and i + 2 < len(lines)
            and lines[i + 1].startswith("+++ ")
            and lines[i + 2].startswith("@@")
        ):
            starts.append(i)

    files: list[PatchFile] = []
    for n, start in enumerate(starts):
        end = starts[n + 1] if n + 1 < len(starts) else len(lines)
        old_path = _header_path(lines[start][4:])
        new_path = _header_path(lines[start + 1][4:])
        path = old_path if new_path == DEV_NULL else new_path
        files.append(PatchFile(path=path, diff="\n".join(lines[start:end])))
    return files


def split_git_patch(patch: str) -> list[PatchFile]:
    """
    Split a multi-file patch into one PatchFile per target.

    `diff --git a/X b/X` headers take precedence; a patch without them is
    split on `---`/`+++` file header pairs instead.
    """
    lines = patch.split("\n")
    if any(GIT_HEADER_RE.match(line) for line in lines):
        files = _split_on_git_headers(lines)
    else:
        files = _split_on_file_headers(lines)

    logger.debug("Split patch into %d file diffs", len(files))
    return files


def _from_records(records: Sequence[Any]) -> list[PatchFile]:
    files = []
    for index, record in enumerate(records):
        if isinstance(record, PatchFile):
            files.append(record)
            continue
        try:
            files.append(PatchFile.model_validate(record))
        except ValidationError as e:
            raise StructuralParseError(f"Invalid patch file entry {index}: {e}") from e
    return files


def load_patch_files(source: str | Sequence[PatchFile | dict[str, Any]]) -> list[PatchFile]:
    """
    Normalize any accepted patch input into PatchFiles ordered by priority.

    Accepts a sequence of PatchFile objects or dicts, a JSON array of
    `{path, diff, priority}` objects, or raw multi-file patch text. Text
    starting with `[` that is not valid JSON is treated as patch text.
    Sorting is stable, so equal priorities keep their input order.
    """
    if isinstance(source, str):
        files: list[PatchFile] | None = None
        if source.lstrip().startswith("["):
            try:
                decoded = json.loads(source)
            except json.JSONDecodeError:
                logger.debug("Patch looks like JSON but does not decode; splitting as text")
            else:
                files = _from_records(decoded)
                logger.info("Parsed %d patch files from JSON", len(files))

        if files is None:
            files = split_git_patch(source)
            logger.info("Parsed %d patch files from patch text", len(files))
            if not files:
                raise StructuralParseError("no file diffs found in patch")
    else:
        files = _from_records(source)

    return sorted(files, key=lambda f: f.priority)
