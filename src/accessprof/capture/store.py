import logging
import os
import re
import threading
from collections.abc import Sequence

from accessprof.capture.observation import Observation
from accessprof.capture.report import Report, build_report
from accessprof.errors import LogFileError
from accessprof.storage import logfile

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_THRESHOLD = 1000
DEFAULT_MAX_REQUEUE = 10_000

REQUEUE = "requeue"
DROP = "drop"


class LogStore:
    """
    Thread-safe buffer of observations with optional spillover to a durable log file.

    Two locks guard disjoint state: ``_lock`` protects the in-memory buffer and
    is only held for appends, swaps and length checks; ``_flush_lock`` serializes
    every access to the log file so a flush never races another flush, a load or
    a truncation. When both are needed, ``_flush_lock`` is taken first.
    """

    def __init__(
        self,
        log_file: str | os.PathLike | None = None,
        flush_threshold: int = 0,
        on_flush_error: str = REQUEUE,
        max_requeue: int = DEFAULT_MAX_REQUEUE,
    ) -> None:
        if on_flush_error not in (REQUEUE, DROP):
            raise ValueError(f"on_flush_error must be {REQUEUE!r} or {DROP!r}, got {on_flush_error!r}")
        if flush_threshold < 0:
            raise ValueError("flush_threshold must not be negative")
        self.log_file = os.fspath(log_file) if log_file else None
        self.flush_threshold = flush_threshold
        self.on_flush_error = on_flush_error
        self.max_requeue = max_requeue
        self._observations: list[Observation] = []
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._flush_pending = False
        # Bumped by every reset; a failed flush only requeues entries of the current one
        self._generation = 0

    @property
    def effective_flush_threshold(self) -> int:
        return self.flush_threshold or DEFAULT_FLUSH_THRESHOLD

    def record(self, obs: Observation) -> None:
        """Append an observation. Never blocks on file I/O and never raises on flush failure."""
        with self._lock:
            self._observations.append(obs)
            if self._should_flush():
                self._flush_pending = True
                threading.Thread(target=self._background_flush, daemon=True).start()

    def count(self) -> int:
        """Number of buffered observations; excludes entries already in the log file."""
        with self._lock:
            return len(self._observations)

    def snapshot(self) -> list[Observation]:
        with self._lock:
            return self._observations[:]

    def reset(self, *, truncate_log_file: bool = False) -> None:
        """
        Empty the in-memory buffer.

        The log file is left alone unless ``truncate_log_file`` is set, so a
        report built after a plain reset still includes previously flushed
        history.
        """
        if truncate_log_file and self.log_file:
            with self._flush_lock:
                with self._lock:
                    self._observations = []
                    self._generation += 1
                logfile.truncate(self.log_file)
            return
        with self._lock:
            self._observations = []
            self._generation += 1

    def flush(self) -> int:
        """
        Move the buffered observations into the log file.

        Returns the number written. Without a log file this is a no-op and the
        buffer is kept. Raises LogFileError if the file cannot be written; the
        unwritten entries are then requeued or dropped per ``on_flush_error``.
        """
        if not self.log_file:
            return 0
        with self._flush_lock:
            batch, generation = self._drain()
            if not batch:
                return 0
            try:
                return logfile.append_observations(self.log_file, batch)
            except LogFileError as e:
                self._recover(batch[e.written:], generation)
                raise

    def load_all(self) -> list[Observation]:
        """Decode the whole log file, oldest first. Empty when no log file is configured."""
        if not self.log_file:
            return []
        with self._flush_lock:
            return logfile.read_observations(self.log_file)

    def history_and_live(self) -> list[Observation]:
        """
        Durable history followed by the buffered observations, as one consistent view.

        The file read and the buffer copy happen under the flush lock, so no
        observation can move from the buffer to the file in between.
        """
        if not self.log_file:
            return self.snapshot()
        with self._flush_lock:
            history = logfile.read_observations(self.log_file)
            return history + self.snapshot()

    def report(self, patterns: Sequence[str | re.Pattern] | None = None) -> Report:
        return build_report(self, patterns)

    def _should_flush(self) -> bool:
        return (
            self.log_file is not None
            and not self._flush_pending
            and len(self._observations) > self.effective_flush_threshold
        )

    def _drain(self) -> tuple[list[Observation], int]:
        with self._lock:
            batch = self._observations
            self._observations = []
            return batch, self._generation

    def _recover(self, unwritten: list[Observation], generation: int) -> None:
        if self.on_flush_error == DROP:
            logger.warning("accessprof: dropped %d observation(s) after failed flush", len(unwritten))
            return
        dropped = max(0, len(unwritten) - self.max_requeue)
        if dropped:
            logger.warning(
                "accessprof: requeue limit %d reached, dropped %d oldest observation(s)",
                self.max_requeue,
                dropped,
            )
            unwritten = unwritten[dropped:]
        with self._lock:
            if generation != self._generation:
                logger.debug(
                    "accessprof: discarded %d unwritten observation(s) recorded before reset",
                    len(unwritten),
                )
                return
            self._observations = unwritten + self._observations

    def _background_flush(self) -> None:
        try:
            self.flush()
        except Exception:
            logger.warning("accessprof: failed to flush observations", exc_info=True)
        finally:
            with self._lock:
                self._flush_pending = False


_default_store: LogStore | None = None
_default_store_lock = threading.Lock()


def default_store() -> LogStore:
    """Process-wide memory-only store, created on first use."""
    global _default_store
    with _default_store_lock:
        if _default_store is None:
            _default_store = LogStore()
        return _default_store
