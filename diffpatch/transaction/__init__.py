"""Multi-file patch transactions with backup-based rollback."""

from .coordinator import PatchCoordinator, backup_timestamp
from .splitting import load_patch_files, split_git_patch

__all__ = [
    "PatchCoordinator",
    "backup_timestamp",
    "load_patch_files",
    "split_git_patch",
]
