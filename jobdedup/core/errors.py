from __future__ import annotations

from typing import Any


class DedupError(Exception):
    """Base dedup error."""


class DedupConfigurationError(DedupError):
    """Raised when a required dependency or setting is missing or invalid."""


class InvalidPostingError(DedupError):
    """Raised when a posting is rejected before any I/O."""


class BatchAbortedError(DedupError):
    """Raised when a batch crosses the fail-fast error rate."""

    def __init__(
        self,
        *,
        error_rate: float,
        attempted: int,
        errors: int,
        threshold: float,
        results: list[Any],
        stats: Any,
    ) -> None:
        self.error_rate = error_rate
        self.attempted = attempted
        self.errors = errors
        self.threshold = threshold
        self.results = results
        self.stats = stats
        super().__init__(
            f"batch processing aborted: error rate {error_rate * 100:.1f}% exceeds "
            f"{threshold * 100:.0f}% threshold after {attempted} jobs ({errors} errors)"
        )
