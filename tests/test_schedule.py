"""Tests for ramp math and duration parsing."""

import pytest

from loadwright.exceptions import ConfigError
from loadwright.models import (
    ExecutorKind,
    Stage,
    constant_vus,
    format_duration,
    parse_duration,
    ramping_arrival_rate,
    ramping_vus,
)
from loadwright.runner.schedule import arrivals_by, stage_index, target_at, total_duration, vus_at


def stages(*pairs):
    return [Stage(duration=d, target=t) for d, t in pairs]


def noop(ctx):
    pass


class TestDurations:
    @pytest.mark.parametrize(
        "raw,seconds",
        [(5, 5.0), (0.25, 0.25), ("30s", 30.0), ("1m", 60.0), ("1m30s", 90.0),
         ("250ms", 0.25), ("2h", 7200.0), ("10", 10.0)],
    )
    def test_parse(self, raw, seconds):
        assert parse_duration(raw) == seconds

    @pytest.mark.parametrize("raw", ["", "abc", "-1s", -3, "1x"])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_duration(raw)

    def test_format(self):
        assert format_duration(90) == "1m30s"
        assert format_duration(30) == "30s"


class TestVusAt:
    def test_converges_to_stage_targets(self):
        s = stages((30, 10), (60, 25), (120, 50), (30, 0))
        assert vus_at(s, 0, 0) == 0
        assert vus_at(s, 0, 30) == 10
        assert vus_at(s, 0, 90) == 25
        assert vus_at(s, 0, 210) == 50
        assert vus_at(s, 0, 240) == 0
        assert vus_at(s, 0, 1000) == 0

    def test_linear_in_between(self):
        s = stages((10, 10))
        assert target_at(s, 0, 5) == 5
        assert vus_at(s, 0, 2.5) == 3

    def test_zero_length_stage_jumps(self):
        s = stages((0, 5), (10, 5))
        assert vus_at(s, 0, 0) == 5

    def test_stage_index(self):
        s = stages((10, 1), (10, 2))
        assert stage_index(s, 0) == 0
        assert stage_index(s, 10) == 1
        assert stage_index(s, 20) == 2
        assert total_duration(s) == 20


class TestArrivalsBy:
    def test_integral_of_ramp(self):
        s = stages((10, 10))
        assert arrivals_by(s, 0, 1, 10) == pytest.approx(50)
        assert arrivals_by(s, 0, 1, 5) == pytest.approx(12.5)

    def test_constant_rate_and_time_unit(self):
        s = stages((60, 120))
        assert arrivals_by(s, 120, 60, 30) == pytest.approx(60)

    def test_beyond_end_stays_at_total(self):
        s = stages((10, 10), (10, 0))
        assert arrivals_by(s, 10, 1, 20) == pytest.approx(150)
        assert arrivals_by(s, 10, 1, 100) == pytest.approx(150)


class TestScenarioBuilders:
    def test_ramping_vus(self):
        sc = ramping_vus("r", noop, [("30s", 10), ("1m", 0)], start_vus=0,
                         thresholds={"checks": ["rate>0.9"]})
        assert sc.executor == ExecutorKind.RAMPING_VUS
        assert sc.duration == 90
        assert sc.vus_max == 10
        assert str(sc.thresholds[0]) == "checks rate>0.9"

    def test_constant_vus(self):
        sc = constant_vus("c", noop, 3, "10s")
        assert sc.start_vus == 3
        assert sc.vus_max == 3

    def test_arrival_rate_requires_capacity(self):
        with pytest.raises(ConfigError):
            ramping_arrival_rate("a", noop, [("10s", 5)], pre_allocated_vus=10, max_vus=2)

    def test_bad_threshold_is_config_error(self):
        with pytest.raises(ConfigError):
            ramping_vus("r", noop, [("10s", 1)], thresholds={"checks": ["rate~1"]})

    def test_empty_stages_rejected(self):
        with pytest.raises(ConfigError):
            ramping_vus("r", noop, [])
