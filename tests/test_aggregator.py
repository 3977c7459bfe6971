import re
from datetime import datetime, timedelta, timezone

import pytest

from accessprof.capture.aggregator import build_segments, compile_patterns
from accessprof.capture.observation import MIN_SENTINEL, Observation, Segment
from accessprof.errors import PatternError

_T0 = datetime(2017, 12, 2, tzinfo=timezone.utc)


def _obs(**kwargs) -> Observation:
    defaults = dict(
        method="GET",
        path="/",
        status=200,
        response_body_size=8,
        response_time_ns=1_000,
        accessed_at=_T0,
    )
    defaults.update(kwargs)
    return Observation(**defaults)


class TestBuildSegments:
    def test_identical_requests_share_a_segment(self):
        segments, _ = build_segments([_obs(), _obs()])
        assert len(segments) == 1
        assert segments[0].count == 2

    def test_separates_methods(self):
        segments, _ = build_segments([_obs(method="GET"), _obs(method="POST"), _obs(method="POST")])
        assert [(s.method, s.count) for s in segments] == [("GET", 1), ("POST", 2)]

    def test_separates_paths(self):
        segments, _ = build_segments([_obs(path="/"), _obs(path="/test"), _obs(path="/test")])
        assert [(s.path, s.count) for s in segments] == [("/", 1), ("/test", 2)]

    def test_separates_statuses(self):
        segments, _ = build_segments([_obs(status=200), _obs(status=404)])
        assert len(segments) == 2

    def test_pattern_groups_paths_but_not_methods(self):
        observations = [
            _obs(method="GET", path="/test/123"),
            _obs(method="GET", path="/test/456"),
            _obs(method="POST", path="/test/123"),
        ]
        segments, _ = build_segments(observations, compile_patterns([r"/test/\d+"]))
        assert [(s.method, s.aggregation_path, s.count) for s in segments] == [
            ("GET", r"/test/\d+", 2),
            ("POST", r"/test/\d+", 1),
        ]

    def test_pattern_must_match_whole_path(self):
        segments, _ = build_segments(
            [_obs(path="/test/123/edit"), _obs(path="/test/456/edit")],
            compile_patterns([r"/test/\d+"]),
        )
        assert len(segments) == 2
        assert all(s.path_pattern is None for s in segments)
        assert segments[0].aggregation_path == "/test/123/edit"

    def test_unmatched_paths_stay_literal(self):
        segments, _ = build_segments(
            [_obs(path="/"), _obs(path="/test/1")],
            compile_patterns([r"/test/\d+"]),
        )
        assert segments[0].path == "/"
        assert segments[0].path_pattern is None
        assert segments[1].path is None
        assert segments[1].path_pattern.pattern == r"/test/\d+"

    def test_first_supplied_pattern_wins(self):
        patterns = compile_patterns([r"/users/.*", r"/users/\d+"])
        segments, _ = build_segments([_obs(path="/users/1"), _obs(path="/users/me")], patterns)
        assert len(segments) == 1
        assert segments[0].aggregation_path == "/users/.*"

    def test_non_matching_path_stays_beside_pattern_segment(self):
        patterns = compile_patterns([r"/users/\d+"])
        observations = [_obs(path="/users/me"), _obs(path="/users/1"), _obs(path="/users/2")]
        segments, _ = build_segments(observations, patterns)
        assert [(s.aggregation_path, s.count) for s in segments] == [
            ("/users/me", 1),
            (r"/users/\d+", 2),
        ]

    def test_segments_in_first_seen_order(self):
        observations = [_obs(path="/b"), _obs(path="/a"), _obs(path="/b"), _obs(path="/c")]
        segments, _ = build_segments(observations)
        assert [s.path for s in segments] == ["/b", "/a", "/c"]

    def test_every_observation_assigned_once(self):
        observations = [
            _obs(method=m, path=p, status=s)
            for m in ("GET", "POST")
            for p in ("/", "/a/1", "/a/2")
            for s in (200, 500)
        ]
        segments, _ = build_segments(observations, compile_patterns([r"/a/\d"]))
        assert sum(s.count for s in segments) == len(observations)
        keys = [(s.method, s.aggregation_path, s.status) for s in segments]
        assert len(keys) == len(set(keys))

    def test_since_is_earliest_accessed_at(self):
        observations = [
            _obs(accessed_at=_T0 + timedelta(seconds=5)),
            _obs(accessed_at=_T0),
            _obs(accessed_at=_T0 + timedelta(seconds=1)),
        ]
        _, since = build_segments(observations)
        assert since == _T0

    def test_since_mixes_naive_and_aware_timestamps(self):
        observations = [
            _obs(accessed_at=_T0 + timedelta(seconds=5)),
            _obs(accessed_at=datetime(2017, 12, 2)),
        ]
        _, since = build_segments(observations)
        assert since == _T0
        assert since.tzinfo is not None

    def test_empty_input(self):
        assert build_segments([]) == ([], None)


class TestCompilePatterns:
    def test_accepts_strings_and_compiled(self):
        compiled = compile_patterns([r"/a/\d+", re.compile(r"/b/.*")])
        assert [p.pattern for p in compiled] == [r"/a/\d+", r"/b/.*"]

    def test_invalid_pattern_names_the_pattern(self):
        with pytest.raises(PatternError) as exc_info:
            compile_patterns([r"/ok", r"/users/(\d+"])
        assert exc_info.value.pattern == r"/users/(\d+"
        assert r"/users/(\d+" in str(exc_info.value)


class TestSegmentStatistics:
    def _segment(self, times, sizes) -> Segment:
        return Segment(method="GET", status=200, path="/", observations=tuple(
            _obs(response_time_ns=t, response_body_size=size) for t, size in zip(times, sizes)
        ))

    def test_response_time(self):
        seg = self._segment([10, 20, 30], [0, 0, 0])
        assert seg.min_response_time_ns == 10
        assert seg.max_response_time_ns == 30
        assert seg.sum_response_time_ns == 60
        assert seg.avg_response_time_ns == 20

    def test_average_response_time_truncates(self):
        seg = self._segment([10, 11], [0, 0])
        assert seg.avg_response_time_ns == 10

    def test_body_size(self):
        seg = self._segment([1, 1, 1], [8, 12, 12])
        assert seg.min_body_size == 8
        assert seg.max_body_size == 12
        assert seg.sum_body_size == 32
        assert f"{seg.avg_body_size:.3f}" == "10.667"

    def test_empty_segment(self):
        seg = Segment(method="GET", status=200, path="/")
        assert seg.count == 0
        assert seg.min_response_time_ns == MIN_SENTINEL
        assert seg.max_response_time_ns == 0
        assert seg.avg_response_time_ns == 0
        assert seg.min_body_size == MIN_SENTINEL
        assert seg.avg_body_size == 0.0


class TestObservation:
    def test_naive_accessed_at_is_taken_as_utc(self):
        obs = _obs(accessed_at=datetime(2017, 12, 2, 9, 30))
        assert obs.accessed_at == datetime(2017, 12, 2, 9, 30, tzinfo=timezone.utc)

    def test_aware_accessed_at_keeps_its_offset(self):
        jst = timezone(timedelta(hours=9))
        obs = _obs(accessed_at=datetime(2017, 12, 2, 18, tzinfo=jst))
        assert obs.accessed_at.tzinfo is jst
