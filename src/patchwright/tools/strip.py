"""Find the ``-pN`` level at which a diff applies cleanly."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Sequence, Tuple

from ..config import DEFAULT_PROBE_ORDER
from ..structured import StripAttempt
from .runner import DiffApplier

LOGGER = logging.getLogger(__name__)

PREFERRED_STRIP = 1
MALFORMED_MARKER = "malformed"


@dataclass(slots=True)
class StripResolution:
    """Outcome of probing strip levels in dry-run mode."""

    used_strip: int | None = None
    attempts: List[StripAttempt] = field(default_factory=list)
    malformed: bool = False

    @property
    def last_attempt(self) -> StripAttempt | None:
        return self.attempts[-1] if self.attempts else None

    def attempt_for(self, level: int) -> StripAttempt | None:
        for attempt in reversed(self.attempts):
            if attempt.strip == level:
                return attempt
        return None


def candidate_levels(strip: int | None, probe_order: Sequence[int] = DEFAULT_PROBE_ORDER) -> Tuple[int, ...]:
    """An explicit non-zero ``strip`` is probed alone; otherwise ``probe_order``."""
    if strip:
        return (int(strip),)
    return tuple(probe_order)


def is_malformed(attempt: StripAttempt) -> bool:
    return MALFORMED_MARKER in attempt.stderr.lower()


def resolve_strip(
    applier: DiffApplier,
    diff_path: Path,
    diff_text: str,
    *,
    strip: int | None = None,
    probe_order: Sequence[int] = DEFAULT_PROBE_ORDER,
    on_attempt: Callable[[StripAttempt], None] | None = None,
) -> StripResolution:
    """Dry-run ``diff_path`` at each candidate level until one succeeds.

    Probing stops at the first success or as soon as the patch tool calls the
    diff malformed.  When ``-p0`` wins but the diff carries ``+++ b/`` paths,
    ``-p1`` is probed as well and preferred if it also succeeds.
    """
    resolution = StripResolution()

    def probe(level: int) -> StripAttempt:
        result = applier.check(diff_path, level)
        attempt = StripAttempt(
            strip=level,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_status=result.exit_status,
        )
        resolution.attempts.append(attempt)
        LOGGER.debug("Dry-run -p%d exited %d", level, attempt.exit_status)
        if on_attempt is not None:
            on_attempt(attempt)
        return attempt

    for level in candidate_levels(strip, probe_order):
        attempt = probe(level)
        if attempt.succeeded:
            resolution.used_strip = level
            break
        if is_malformed(attempt):
            resolution.malformed = True
            break

    if resolution.used_strip == 0 and "+++ b/" in diff_text:
        if probe(PREFERRED_STRIP).succeeded:
            resolution.used_strip = PREFERRED_STRIP

    return resolution


__all__ = ["StripResolution", "candidate_levels", "is_malformed", "resolve_strip"]
