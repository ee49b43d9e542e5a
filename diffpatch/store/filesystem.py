import logging
import os
from pathlib import Path
from typing import Protocol

from diffpatch.errors import PermissionDeniedError, TextDecodeError, TextNotFoundError

logger = logging.getLogger(__name__)


class TextStore(Protocol):
    """Named text resources the coordinator reads, writes and backs up."""

    def read(self, path: str) -> str: ...

    def write(self, path: str, text: str) -> None: ...

    def delete(self, path: str) -> None: ...

    def exists(self, path: str) -> bool: ...

    def backup_path_for(self, path: str, timestamp: str) -> str: ...


def resolve_safe_path(
    root: Path,
    relative_path: str,
    allow_symlinks: bool = False
) -> Path:
    """
    Resolve a path within a root directory safely.

    Args:
        root: Directory every resolved path must stay inside
        relative_path: User-provided path; a leading "/" is treated as root-relative
        allow_symlinks: If False, reject paths that contain symlinks

    Returns:
        Resolved absolute Path that is guaranteed to be within root

    Raises:
        PermissionDeniedError: If the path escapes root or contains a
            symlink while symlinks are not allowed
    """

    root = Path(root).resolve()

    candidate = Path(relative_path)
    if candidate.is_absolute():
        resolved = candidate.resolve()
        if resolved.is_relative_to(root):
            relative_path = str(resolved.relative_to(root))
        else:
            relative_path = relative_path.lstrip("/")

    # Normalized but unresolved, so symlinked components stay visible
    unresolved = Path(os.path.normpath(root / relative_path))
    candidate = unresolved.resolve()

    if not candidate.is_relative_to(root):
        logger.warning("Path escape attempt: %s is not relative to %s", candidate, root)
        raise PermissionDeniedError(
            relative_path,
            f"Path {relative_path} escapes root directory {root}",
        )

    if not allow_symlinks:
        path_so_far = root

        for part in unresolved.relative_to(root).parts:
            path_so_far = path_so_far / part

            if path_so_far.is_symlink():
                logger.warning("Symlink blocked: %s", path_so_far)
                raise PermissionDeniedError(
                    relative_path,
                    f"Path contains symlink: {path_so_far}",
                )

    logger.debug("Resolved safe path: %s -> %s", relative_path, candidate)
    return candidate


class FileSystemTextStore:
    """
    TextStore over a directory tree.

    Text is UTF-8 and newlines are read and written untranslated, so `\\r\\n`
    files survive a patch byte for byte.
    """

    def __init__(self, root: Path | str = ".", allow_symlinks: bool = False):
        self.root = Path(root).resolve()
        self.allow_symlinks = allow_symlinks

    def resolve(self, path: str) -> Path:
        return resolve_safe_path(self.root, path, allow_symlinks=self.allow_symlinks)

    def read(self, path: str) -> str:
        target = self.resolve(path)
        try:
            with target.open("r", encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError as e:
            raise TextNotFoundError(path) from e
        except IsADirectoryError as e:
            raise TextNotFoundError(path) from e
        except PermissionError as e:
            raise PermissionDeniedError(path) from e
        except UnicodeDecodeError as e:
            raise TextDecodeError(path, f"File is not valid UTF-8 text: {path} ({e.reason})") from e

    def write(self, path: str, text: str) -> None:
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("w", encoding="utf-8", newline="") as f:
                f.write(text)
        except PermissionError as e:
            raise PermissionDeniedError(path) from e
        logger.info("Wrote %d chars to %s", len(text), target)

    def delete(self, path: str) -> None:
        target = self.resolve(path)
        try:
            target.unlink()
        except FileNotFoundError as e:
            raise TextNotFoundError(path) from e
        logger.debug("Deleted %s", target)

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def backup_path_for(self, path: str, timestamp: str) -> str:
        return f"{path}.backup.{timestamp}"
