import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from accessprof.capture.aggregator import build_segments, compile_patterns
from accessprof.capture.observation import Segment
from accessprof.errors import LogFileError
from accessprof.generation.formatter import render_table

if TYPE_CHECKING:
    from accessprof.capture.store import LogStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Report:
    segments: tuple[Segment, ...]
    patterns: tuple[re.Pattern, ...] = ()
    since: datetime | None = None

    @property
    def total_count(self) -> int:
        return sum(seg.count for seg in self.segments)

    def __str__(self) -> str:
        return render_table(self)


def build_report(store: "LogStore", patterns: Sequence[str | re.Pattern] | None = None) -> Report:
    """
    Snapshot the store into a Report.

    Patterns are compiled before anything else so an invalid one fails fast.
    The buffer is flushed on a best-effort basis, then the durable history and
    the still-buffered observations are segmented together, history first.
    Observations recorded while the report is being built may or may not appear.
    """
    compiled = compile_patterns(patterns or ())

    try:
        store.flush()
    except LogFileError:
        logger.warning("accessprof: flush before report failed", exc_info=True)

    observations = store.history_and_live()
    segments, since = build_segments(observations, compiled)
    return Report(segments=tuple(segments), patterns=tuple(compiled), since=since)
