from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List

from ..metrics import DerivedMetrics, compute_metrics
from ..smoothing import HISTORY_SIZE, CurrentHistory, smooth_current
from .frames import FrameError, FrameErrorKind, TelemetrySnapshot, decode_snapshot, validate_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Report:
    """Decoded values and derived metrics for one poll cycle."""

    snapshot: TelemetrySnapshot
    metrics: DerivedMetrics


def decode_and_report(frame: bytes, history: CurrentHistory) -> Report:
    """
    Run one response frame through validation, decoding, smoothing and metrics.

    *history* is only touched once the frame has decoded completely, so a bad
    frame raises :class:`FrameError` and leaves the smoothed current as it was.
    """
    snapshot = decode_snapshot(validate_frame(frame))
    smoothed = smooth_current(history, snapshot.current_magnitude)
    return Report(snapshot=snapshot, metrics=compute_metrics(snapshot, smoothed))


class ReportPipeline:
    """
    Per-session glue: owns the current history and counts frame outcomes.
    """

    def __init__(self, history_size: int = HISTORY_SIZE):
        self.history = CurrentHistory(history_size)
        self._callbacks: List[Callable[[Report], None]] = []
        self._stats: Dict[str, int] = {"frames": 0, **{kind.value: 0 for kind in FrameErrorKind}}

    def process(self, frame: bytes) -> Report:
        try:
            report = decode_and_report(frame, self.history)
        except FrameError as exc:
            self._stats[exc.kind.value] += 1
            logger.debug("Rejected frame (%s): %s", exc.kind.value, exc)
            raise
        self._stats["frames"] += 1
        for callback in self._callbacks:
            callback(report)
        return report

    def process_many(self, frames: Iterable[bytes]) -> List[Report]:
        """Decode *frames* in order, skipping the ones that fail."""
        reports: List[Report] = []
        for frame in frames:
            try:
                reports.append(self.process(frame))
            except FrameError:
                continue
        return reports

    def register_callback(self, callback: Callable[[Report], None]) -> None:
        self._callbacks.append(callback)

    def reset(self) -> None:
        self.history.reset()

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)
