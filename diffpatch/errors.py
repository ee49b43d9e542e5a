from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from diffpatch.engine.models import DiffResult, PatchResult


class DiffErrorCode(StrEnum):
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    INVALID_DIFF_FORMAT = "INVALID_DIFF_FORMAT"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    CONTEXT_MISMATCH = "CONTEXT_MISMATCH"
    SYNTAX_ERROR = "SYNTAX_ERROR"
    BACKUP_FAILED = "BACKUP_FAILED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    DECODE_FAILED = "DECODE_FAILED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"


class DiffError(Exception):
    def __init__(
        self,
        code: DiffErrorCode,
        message: str,
        path: str | None = None,
        line: int | None = None,
        hunk: int | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.path = path
        self.line = line
        self.hunk = hunk


class StructuralParseError(DiffError):
    """Malformed diff text; parsing cannot continue."""
    def __init__(
        self,
        message: str,
        path: str | None = None,
        line: int | None = None,
    ):
        super().__init__(
            DiffErrorCode.INVALID_DIFF_FORMAT,
            message,
            path = path,
            line = line,
        )


class DiffValidationError(DiffError):
    """Declared hunk counts disagree with the hunk bodies."""
    def __init__(
        self,
        errors: list[str],
        path: str | None = None,
    ):
        super().__init__(
            DiffErrorCode.VALIDATION_FAILED,
            "; ".join(errors) or "diff validation failed",
            path = path,
        )
        self.errors = list(errors)


class HunkRejectedError(DiffError):
    def __init__(
        self,
        result: DiffResult,
    ):
        reasons = ", ".join(
            f"hunk {r.hunk_index + 1}: {r.reason}" for r in result.rejected
        )
        message = f"{result.path}: {result.hunks_rejected}/{result.hunks_total} hunks rejected"
        if reasons:
            message = f"{message} ({reasons})"
        first = result.rejected[0].hunk_index if result.rejected else None
        super().__init__(
            DiffErrorCode.CONTEXT_MISMATCH,
            message,
            path = result.path,
            hunk = first,
        )
        self.result = result


class TextNotFoundError(DiffError):
    def __init__(
        self,
        path: str,
    ):
        super().__init__(
            DiffErrorCode.FILE_NOT_FOUND,
            f"File not found: {path}",
            path = path,
        )


class PermissionDeniedError(DiffError):
    def __init__(
        self,
        path: str,
        message: str | None = None,
    ):
        super().__init__(
            DiffErrorCode.PERMISSION_DENIED,
            message or f"Permission denied: {path}",
            path = path,
        )


class TextDecodeError(DiffError):
    """Stored bytes are not valid UTF-8 text."""
    def __init__(
        self,
        path: str,
        message: str | None = None,
    ):
        super().__init__(
            DiffErrorCode.DECODE_FAILED,
            message or f"File is not valid UTF-8 text: {path}",
            path = path,
        )


class BackupError(DiffError):
    def __init__(
        self,
        path: str,
        message: str,
    ):
        super().__init__(
            DiffErrorCode.BACKUP_FAILED,
            message,
            path = path,
        )


class PatchTransactionError(DiffError):
    """A multi-file patch stopped on a failed file."""
    def __init__(
        self,
        message: str,
        result: PatchResult,
        failed_path: str,
        rolled_back: bool = False,
    ):
        super().__init__(
            DiffErrorCode.TRANSACTION_FAILED,
            message,
            path = failed_path,
        )
        self.result = result
        self.rolled_back = rolled_back


class ConfigError(DiffError):
    """Options file or option values could not be loaded."""
    def __init__(
        self,
        message: str,
        path: str | None = None,
    ):
        super().__init__(
            DiffErrorCode.VALIDATION_FAILED,
            message,
            path = path,
        )
