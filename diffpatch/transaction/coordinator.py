import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from diffpatch.engine.base import get_applier
from diffpatch.engine.models import (
    ApplyOptions,
    ConflictInfo,
    DiffResult,
    PatchFile,
    PatchOptions,
    PatchResult,
    ValidationResult,
)
from diffpatch.engine.parser import assert_valid, first_diff, validate
from diffpatch.engine.synthesizer import create_diff
from diffpatch.errors import (
    BackupError,
    DiffError,
    HunkRejectedError,
    PatchTransactionError,
)
from diffpatch.store.filesystem import TextStore, resolve_safe_path
from diffpatch.store.validators import SyntaxValidator
from diffpatch.transaction.splitting import load_patch_files
from diffpatch.util.jsonl import append_jsonl

logger = logging.getLogger(__name__)

Notifier = Callable[[str, DiffResult], None]
ProgressCallback = Callable[[int, int, str], None]


def backup_timestamp(now: datetime) -> str:
    """ISO-8601 UTC timestamp with `:` and `.` replaced so it is filename safe."""
    stamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z")
    return stamp.replace(":", "-").replace(".", "-")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatchCoordinator:
    """
    Applies diffs to files in a TextStore, one file or a whole patch at a time.

    Multi-file patches are transactional by backup: every modified file is
    backed up first, and a failed file rolls the earlier ones back from
    their backups when `atomic` is set.
    """

    def __init__(
        self,
        store: TextStore,
        validator: SyntaxValidator | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.validator = validator
        self.notifier = notifier
        self.clock = clock

    def update_file(
        self,
        path: str,
        diff: str,
        options: ApplyOptions | None = None,
    ) -> DiffResult:
        """
        Apply `diff` to the stored text at `path`.

        The file is written only when the apply succeeds and `dry_run` is
        off; a dry run attaches the would-be text as `preview` instead.

        Raises:
            TextNotFoundError: `path` does not exist in the store
            TextDecodeError: the stored bytes are not UTF-8 text
            PermissionDeniedError: `path` escapes `options.root`
            DiffValidationError: `strict_counts` is set and hunk counts disagree
            StructuralParseError: the diff is malformed or empty
            BackupError: the backup could not be written
        """
        options = options or ApplyOptions()

        root = getattr(options, "root", None)
        if root is not None:
            resolve_safe_path(root, path)

        text = self.store.read(path)
        logger.info("Read %s (%d chars)", path, len(text))

        if options.strict_counts:
            assert_valid(diff, path=path)

        applier = get_applier(options.strategy, options.approximate)
        outcome = applier.apply(text, diff, options)

        backup_path = None
        if options.create_backup and not options.dry_run:
            backup_path = self._backup(path, text)
        result = outcome.result.model_copy(update={"path": path, "backup_path": backup_path})

        if options.dry_run:
            result.preview = outcome.text
            return result

        if not result.success:
            return result

        self.store.write(path, outcome.text)

        if options.validate_syntax and self.validator is not None:
            check = self.validator.validate(path, outcome.text)
            result.syntax_valid = check.valid
            result.compile_errors = check.errors

        if options.notify and self.notifier is not None:
            try:
                self.notifier(path, result)
            except Exception as e:
                logger.warning("Post-apply notifier failed for %s: %s", path, e)

        return result

    def _backup(self, path: str, text: str) -> str:
        stamp = backup_timestamp(self.clock())
        backup_path = self.store.backup_path_for(path, stamp)
        try:
            # Same path twice within a millisecond: never overwrite an earlier backup
            suffix = 1
            while self.store.exists(backup_path):
                backup_path = self.store.backup_path_for(path, f"{stamp}-{suffix}")
                suffix += 1
            self.store.write(backup_path, text)
        except (OSError, DiffError) as e:
            raise BackupError(path, f"Failed to create backup {backup_path}: {e}") from e
        logger.info("Created backup: %s", backup_path)
        return backup_path

    def apply_patch(
        self,
        files: str | Sequence[PatchFile | dict[str, Any]],
        options: PatchOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PatchResult:
        """
        Apply a multi-file patch, in ascending priority order.

        `files` may be PatchFiles, dicts, a JSON array or raw patch text
        (see `load_patch_files`).

        Raises:
            PatchTransactionError: a file failed and `continue_on_error` is
                off; carries the partial PatchResult and whether earlier
                files were rolled back
        """
        options = options or PatchOptions()
        patch_files = load_patch_files(files)
        total = len(patch_files)

        results: dict[str, DiffResult] = {}
        backups: list[tuple[str, str]] = []
        processed = 0
        succeeded = 0
        failed = 0

        logger.info("Applying patch to %d files", total)

        for position, patch_file in enumerate(patch_files):
            path = patch_file.path
            if on_progress is not None:
                on_progress(position, total, path)

            try:
                result = self.update_file(path, patch_file.diff, options)
                results[path] = result
                if result.backup_path:
                    backups.append((path, result.backup_path))
                if not result.success:
                    raise HunkRejectedError(result)
                succeeded += 1

            except (DiffError, OSError) as e:
                failed += 1
                logger.warning("Patch failed for %s: %s", path, e)
                if not isinstance(e, HunkRejectedError):
                    results[path] = DiffResult(success=False, path=path, warnings=[str(e)])

                if not options.continue_on_error:
                    rolled_back = False
                    remaining = [backup_path for _, backup_path in backups]
                    if options.atomic and backups:
                        self.rollback(backups)
                        rolled_back = True
                        remaining = [b for b in remaining if self.store.exists(b)]

                    partial = PatchResult(
                        success=False,
                        files_total=total,
                        files_processed=processed,
                        files_succeeded=succeeded,
                        files_failed=failed,
                        results=results,
                        rollback_available=bool(remaining),
                        rollback_paths=list(remaining),
                    )
                    self._journal(options, partial, rolled_back=rolled_back, error=str(e))
                    raise PatchTransactionError(
                        f"Patch failed at {path}: {e}",
                        partial,
                        failed_path=path,
                        rolled_back=rolled_back,
                    ) from e

            processed += 1

        patch_result = PatchResult(
            success=failed == 0,
            files_total=total,
            files_processed=processed,
            files_succeeded=succeeded,
            files_failed=failed,
            results=results,
            rollback_available=len(backups) > 0,
            rollback_paths=[backup_path for _, backup_path in backups],
        )
        self._journal(options, patch_result, rolled_back=False)

        logger.info("Patch finished: %d/%d files succeeded", succeeded, total)
        return patch_result

    def rollback(self, backups: Sequence[tuple[str, str]]) -> list[str]:
        """
        Restore files from `(original_path, backup_path)` pairs, then delete the backups.

        Pairs are restored newest first, so a path patched several times
        ends up with the content of its earliest backup.

        Best effort: a file that cannot be restored is logged and skipped.
        Returns the restored paths, each once.
        """
        logger.info("Rolling back %d backup(s)", len(backups))
        restored: list[str] = []

        for original_path, backup_path in reversed(backups):
            try:
                content = self.store.read(backup_path)
                self.store.write(original_path, content)
                self.store.delete(backup_path)
            except (DiffError, OSError) as e:
                logger.error("Failed to rollback %s: %s", backup_path, e)
                continue

            logger.info("Rolled back: %s from %s", original_path, backup_path)
            if original_path not in restored:
                restored.append(original_path)

        return restored

    def validate_diff(
        self,
        path: str,
        diff: str,
        options: ApplyOptions | None = None,
    ) -> ValidationResult:
        """Check a diff's format, then dry-run it against the stored text."""
        report = validate(diff)
        if not report.valid:
            logger.warning("Diff format validation failed for %s", path)
            return ValidationResult(valid=False, applicable=False, warnings=report.errors)

        options = (options or ApplyOptions()).model_copy(
            update={"dry_run": True, "create_backup": False, "validate_syntax": False, "notify": False}
        )
        result = self.update_file(path, diff, options)

        hunks = first_diff(diff).hunks
        conflicts = [
            ConflictInfo(
                hunk_index=rejected.hunk_index,
                line=hunks[rejected.hunk_index].old_start,
                description=rejected.reason,
            )
            for rejected in result.rejected
        ]

        return ValidationResult(
            valid=True,
            applicable=result.success,
            conflicts=conflicts,
            warnings=result.warnings,
        )

    def diff_paths(self, old_path: str, new_path: str, context_lines: int = 3) -> str:
        old_text = self.store.read(old_path)
        new_text = self.store.read(new_path)
        return create_diff(old_text, new_text, old_path, new_path, context_lines)

    def _journal(
        self,
        options: PatchOptions,
        result: PatchResult,
        rolled_back: bool,
        error: str | None = None,
    ) -> None:
        if options.journal_path is None:
            return
        record = {
            "timestamp": self.clock().astimezone(timezone.utc).isoformat(),
            "success": result.success,
            "files_total": result.files_total,
            "files_succeeded": result.files_succeeded,
            "files_failed": result.files_failed,
            "files": {path: r.success for path, r in result.results.items()},
            "rolled_back": rolled_back,
            "rollback_paths": result.rollback_paths,
            "error": error,
        }
        if not append_jsonl(options.journal_path, record):
            logger.error("Transaction journal not written: %s", options.journal_path)
