import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from filelock import FileLock

logger = logging.getLogger(__name__)


def append_jsonl(path: Path | str, record: dict[str, Any] | str) -> bool:
    """
    Append one record to a JSONL journal (dict or pre-encoded JSON string).

    Writers are serialized through a `<path>.lock` file and every line is
    fsynced before the lock is released.

    Returns:
        True if the record was written, False if the write failed
        (e.g. disk full, read-only directory).
    """

    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        with FileLock(str(path) + ".lock"):
            if isinstance(record, str):
                json_line = record.rstrip("\n") + "\n"
            else:
                json_line = json.dumps(record, sort_keys=True) + "\n"
            with open(path, "ab") as f:
                f.write(json_line.encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())

        return True

    except OSError as e:
        logger.critical("Failed to write JSONL record to %s: %s", path, e)
        return False


def read_jsonl(path: Path | str) -> Iterator[dict]:
    """Yield one dict per line, skipping blank lines and logging malformed ones."""

    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        for number, line in enumerate(f, start=1):
            line = line.strip()

            if line == "":
                continue

            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("Skipping malformed line %d in %s: %s", number, path, e)
                continue

            if not isinstance(record, dict):
                logger.warning("Skipping non-object line %d in %s", number, path)
                continue
            yield record
