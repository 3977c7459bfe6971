import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone

# Reported as MIN for a segment without observations
MIN_SENTINEL = sys.maxsize


@dataclass(frozen=True)
class Observation:
    """One served request. A naive ``accessed_at`` is taken to be UTC."""

    method: str
    path: str
    status: int
    response_body_size: int
    response_time_ns: int
    accessed_at: datetime
    request_body_size: int = -1

    def __post_init__(self) -> None:
        if self.accessed_at.tzinfo is None:
            object.__setattr__(self, "accessed_at", self.accessed_at.replace(tzinfo=timezone.utc))


@dataclass(frozen=True)
class Segment:
    """One (method, path or pattern, status) bucket of a report. Immutable once built."""

    method: str
    status: int
    path: str | None = None
    path_pattern: re.Pattern | None = None
    observations: tuple[Observation, ...] = ()

    def matches(self, obs: Observation) -> bool:
        if self.method != obs.method or self.status != obs.status:
            return False
        if self.path_pattern is not None:
            return self.path_pattern.fullmatch(obs.path) is not None
        return self.path == obs.path

    @property
    def aggregation_path(self) -> str:
        if self.path_pattern is not None:
            return self.path_pattern.pattern
        return self.path or ""

    @property
    def count(self) -> int:
        return len(self.observations)

    @property
    def min_response_time_ns(self) -> int:
        return min((o.response_time_ns for o in self.observations), default=MIN_SENTINEL)

    @property
    def max_response_time_ns(self) -> int:
        return max((o.response_time_ns for o in self.observations), default=0)

    @property
    def sum_response_time_ns(self) -> int:
        return sum(o.response_time_ns for o in self.observations)

    @property
    def avg_response_time_ns(self) -> int:
        if not self.observations:
            return 0
        return self.sum_response_time_ns // self.count

    @property
    def min_body_size(self) -> int:
        return min((o.response_body_size for o in self.observations), default=MIN_SENTINEL)

    @property
    def max_body_size(self) -> int:
        return max((o.response_body_size for o in self.observations), default=0)

    @property
    def sum_body_size(self) -> int:
        return sum(o.response_body_size for o in self.observations)

    @property
    def avg_body_size(self) -> float:
        if not self.observations:
            return 0.0
        return self.sum_body_size / self.count
