"""In-process request profiling: record per-request metrics and report them by method, path and status."""
from accessprof.capture.observation import Observation, Segment
from accessprof.capture.report import Report, build_report
from accessprof.capture.store import DEFAULT_FLUSH_THRESHOLD, LogStore, default_store
from accessprof.errors import AccessProfError, LogDecodeError, LogFileError, PatternError

__all__ = [
    "DEFAULT_FLUSH_THRESHOLD",
    "AccessProfError",
    "LogDecodeError",
    "LogFileError",
    "LogStore",
    "Observation",
    "PatternError",
    "Report",
    "Segment",
    "build_report",
    "default_store",
]
