"""Tests for threshold parsing and evaluation."""

import pytest

from loadwright.exceptions import ConfigError
from loadwright.metrics import CHECKS, HTTP_REQ_DURATION, HTTP_REQ_FAILED, MetricsRegistry
from loadwright.thresholds import evaluate, parse_key, parse_threshold, parse_thresholds


class TestParsing:
    def test_parse_key_with_tags(self):
        metric, tags = parse_key("http_req_duration{scenario:steady_read,method:GET}")
        assert metric == "http_req_duration"
        assert tags == (("method", "GET"), ("scenario", "steady_read"))

    def test_parse_percentile(self):
        t = parse_threshold("http_req_duration", "p(95)<400")
        assert t.aggregation == "p(95)"
        assert t.percentile == 95
        assert t.op == "<"
        assert t.target == 400
        assert str(t) == "http_req_duration p(95)<400"

    def test_parse_mapping(self):
        parsed = parse_thresholds({
            "http_req_failed": ["rate<0.01"],
            "checks": "rate>0.95",
        })
        assert [str(t) for t in parsed] == ["http_req_failed rate<0.01", "checks rate>0.95"]

    @pytest.mark.parametrize("expression", ["rate<", "p(95)", "avg=3", "p(120)<3", "median<3"])
    def test_invalid_expression(self, expression):
        with pytest.raises(ConfigError):
            parse_threshold("http_req_duration", expression)

    def test_invalid_key(self):
        with pytest.raises(ConfigError):
            parse_key("http_req_duration{scenario}")


class TestEvaluate:
    def make_snapshot(self):
        reg = MetricsRegistry()
        for v in range(1, 101):
            reg.record(HTTP_REQ_DURATION, v, {"scenario": "fast"})
            reg.record(HTTP_REQ_DURATION, v * 10, {"scenario": "slow"})
        for i in range(100):
            reg.record(HTTP_REQ_FAILED, 1 if i == 0 else 0)
        reg.check("ok", True)
        return reg.snapshot()

    def test_pass_and_fail(self):
        snap = self.make_snapshot()
        thresholds = parse_thresholds({
            "http_req_failed": ["rate<0.05", "rate<0.01"],
            "http_req_duration{scenario:fast}": ["p(95)<200"],
            "http_req_duration{scenario:slow}": ["p(95)<200"],
            CHECKS: ["rate>0.95"],
        })
        verdicts = evaluate(thresholds, snap)

        assert [v.passed for v in verdicts] == [True, False, True, False, True]
        assert verdicts[0].observed == pytest.approx(0.01)

    def test_missing_metric_fails(self):
        snap = MetricsRegistry().snapshot()
        (verdict,) = evaluate([parse_threshold("http_req_failed", "rate<0.01")], snap)
        assert verdict.passed is False
        assert verdict.observed is None

    def test_percentile_on_rate_fails(self):
        snap = self.make_snapshot()
        (verdict,) = evaluate([parse_threshold("http_req_failed", "p(95)<1")], snap)
        assert verdict.passed is False

    def test_evaluation_is_pure(self):
        snap = self.make_snapshot()
        thresholds = parse_thresholds({"http_req_duration": ["avg<1000", "max<=1000"]})
        first = evaluate(thresholds, snap)
        second = evaluate(thresholds, snap)
        assert first == second
