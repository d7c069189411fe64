"""Progress accounting shared by mirroring, archiving and extraction."""

from typing import Callable, Optional

ProgressCallback = Callable[[float], None]


class ProgressTracker:
    """Turns byte counts into a monotonic fraction in [0, 1].

    Fractions are clamped to [0, 1] and never reported lower than a
    previously reported value. Nothing is reported without a callback.

    Example:
        tracker = ProgressTracker(callback, total=archive_bytes)
        tracker.advance(len(chunk))
        tracker.finish()
    """

    def __init__(self, callback: Optional[ProgressCallback] = None, total: int = 0):
        self._callback = callback
        self.total = max(int(total), 0)
        self.done = 0
        self._last = 0.0

    @property
    def fraction(self) -> float:
        """Last fraction reported."""
        return self._last

    def advance(self, amount: int) -> None:
        """Account for ``amount`` more units of completed work."""
        self.done += amount
        if self.total > 0:
            self.report(self.done / self.total)

    def report(self, fraction: float) -> None:
        """Report a fraction directly (e.g. parsed from tool output)."""
        fraction = min(max(fraction, 0.0), 1.0)
        if fraction < self._last:
            return
        self._last = fraction
        if self._callback is not None:
            self._callback(fraction)

    def finish(self) -> None:
        """Report completion."""
        self.report(1.0)
