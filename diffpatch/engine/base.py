from __future__ import annotations

from abc import ABC, abstractmethod

from diffpatch.engine.models import (
    ApplierStrategy,
    ApplyOptions,
    ApplyOutcome,
    ApproximateSettings,
)


class Applier(ABC):
    """Applies one file's unified diff to a text buffer."""

    @property
    @abstractmethod
    def strategy(self) -> ApplierStrategy:
        """Strategy identifier ('exact' or 'approximate')."""
        pass

    @abstractmethod
    def apply(
        self,
        text: str,
        diff: str,
        options: ApplyOptions | None = None,
    ) -> ApplyOutcome:
        """
        Apply the first file diff in `diff` to `text`.

        Implementations are pure: they never touch storage and keep no state
        between calls. Rejected hunks are reported in the result, not raised.

        Args:
            text: Current content of the target
            diff: Unified diff text
            options: Matching and result options

        Returns:
            ApplyOutcome with the new text and the per-hunk DiffResult

        Raises:
            StructuralParseError: If the diff is malformed or empty
        """
        pass


def get_applier(
    strategy: ApplierStrategy | str = ApplierStrategy.EXACT,
    settings: ApproximateSettings | None = None,
) -> Applier:
    from diffpatch.engine.approximate import ApproximateApplier
    from diffpatch.engine.exact import ExactApplier

    strategy = ApplierStrategy(strategy)
    if strategy == ApplierStrategy.APPROXIMATE:
        return ApproximateApplier(settings)
    return ExactApplier()
