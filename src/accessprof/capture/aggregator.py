import re
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime

from accessprof.capture.observation import Observation, Segment
from accessprof.errors import PatternError


def compile_patterns(patterns: Iterable[str | re.Pattern]) -> list[re.Pattern]:
    """Compile aggregation patterns, failing on the first invalid one."""
    compiled: list[re.Pattern] = []
    for pattern in patterns:
        if isinstance(pattern, re.Pattern):
            compiled.append(pattern)
            continue
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise PatternError(pattern, str(e)) from None
    return compiled


def build_segments(
    observations: Iterable[Observation],
    patterns: Sequence[re.Pattern] = (),
) -> tuple[list[Segment], datetime | None]:
    """
    Group observations into segments keyed by (method, path or pattern, status).

    Each observation goes to the first existing segment that matches it. When
    none does, a new segment is created using the first pattern that fully
    matches the path, or the literal path if no pattern does. Returns the
    segments in creation order and the earliest ``accessed_at`` seen.
    """
    buckets: list[tuple[Segment, list[Observation]]] = []
    since: datetime | None = None

    for obs in observations:
        if since is None or obs.accessed_at < since:
            since = obs.accessed_at

        for key, members in buckets:
            if key.matches(obs):
                members.append(obs)
                break
        else:
            for pattern in patterns:
                if pattern.fullmatch(obs.path):
                    key = Segment(method=obs.method, status=obs.status, path_pattern=pattern)
                    break
            else:
                key = Segment(method=obs.method, status=obs.status, path=obs.path)
            buckets.append((key, [obs]))

    segments = [replace(key, observations=tuple(members)) for key, members in buckets]
    return segments, since
