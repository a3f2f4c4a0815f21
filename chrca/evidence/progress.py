"""Progress sinks.

A progress sink receives ``(stage, progress, status, error)`` callbacks from
every probe. Within one investigation all callbacks arrive on the same event
loop, so sinks need no locking; ordering between concurrent probes is
incidental.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from chrca.models.evidence import ProgressStatus
from chrca.observability.logging import get_logger

_logger = get_logger("progress")


def log_progress(stage: str, progress: int, status: ProgressStatus, error: str | None = None) -> None:
    """Progress sink that writes each callback to the structured log."""
    if status == ProgressStatus.FAILED:
        _logger.warning("probe_failed", stage=stage, progress=progress, error=error)
    else:
        _logger.debug("probe_progress", stage=stage, progress=progress, status=status.value)


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    progress: int
    status: ProgressStatus
    error: str | None = None


@dataclass
class ProgressRecorder:
    """Progress sink that keeps every callback, in arrival order."""

    events: list[ProgressEvent] = field(default_factory=list)

    def __call__(self, stage: str, progress: int, status: ProgressStatus, error: str | None = None) -> None:
        self.events.append(ProgressEvent(stage=stage, progress=progress, status=status, error=error))

    def statuses(self, stage: str) -> list[ProgressStatus]:
        return [e.status for e in self.events if e.stage == stage]
