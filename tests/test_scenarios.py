"""End-to-end runs of the bundled scenarios against a mock scheduling API."""

import threading
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import httpx

from conftest import make_api
from loadwright.metrics import DROPPED_ITERATIONS, HTTP_REQ_FAILED, ITERATIONS
from loadwright.models import ExecutorKind
from loadwright.runner import ScenarioRunner
from loadwright.scenarios import SCENARIOS, load, security_probes, smoke, stress
from loadwright.scenarios.helpers import appointments_range_path, get_headers, rfc3339, search_path


def run(config, scenario, handler=None):
    transport = httpx.MockTransport(handler or make_api())
    return ScenarioRunner(config, transport=transport, tick=0.01).run(scenario)


def check(summary, label):
    for stat in summary.checks:
        if stat.label == label:
            return stat
    return None


class TestHelpers:
    def test_headers(self):
        assert get_headers() == {"Content-Type": "application/json"}
        assert get_headers("abc")["Authorization"] == "Bearer abc"

    def test_rfc3339(self):
        dt = datetime(2024, 5, 1, 9, 30, 5, 123456, tzinfo=timezone.utc)
        assert rfc3339(dt) == "2024-05-01T09:30:05.123Z"

    def test_range_path(self):
        now = datetime(2024, 5, 10, tzinfo=timezone.utc)
        path = appointments_range_path(3, now=now)
        query = parse_qs(urlsplit(path).query)
        assert path.startswith("/appointments?")
        assert query["start_time"] == ["2024-05-07T00:00:00.000Z"]
        assert query["end_time"] == ["2024-05-13T00:00:00.000Z"]

    def test_search_path_escapes_payloads(self):
        path = search_path("<script>alert(1)</script>")
        assert "<" not in path and " " not in path
        assert parse_qs(urlsplit(path).query)["q"] == ["<script>alert(1)</script>"]


class TestRegistry:
    def test_all_scenarios_build(self):
        assert sorted(SCENARIOS) == ["load", "security-probes", "smoke", "stress"]
        built = {name: build(None) for name, build in SCENARIOS.items()}

        assert built["load"].name == "steady_read"
        assert built["load"].vus_max == 50
        assert built["load"].graceful_ramp_down == 15
        assert built["load"].start_vus == 1
        assert built["stress"].name == "spike"
        assert built["stress"].executor == ExecutorKind.RAMPING_ARRIVAL_RATE
        assert built["stress"].vus_max == 200
        assert built["smoke"].duration == 30
        assert built["security-probes"].iterations == 1
        assert built["security-probes"].duration == 600

    def test_stress_thresholds_looser_than_load(self):
        load_t = [str(t) for t in load.build().thresholds]
        stress_t = [str(t) for t in stress.build().thresholds]
        assert load_t == [
            "http_req_failed rate<0.01",
            "http_req_duration{scenario:steady_read} p(95)<400",
            "checks rate>0.95",
        ]
        assert stress_t == [
            "http_req_failed rate<0.05",
            "http_req_duration p(95)<1000",
            "checks rate>0.9",
        ]


class TestSmoke:
    def test_healthy_target_passes(self, config):
        summary = run(config, smoke.build(config, iterations=2, think_time=0))

        assert summary.checks_rate == 1.0
        assert summary.verdict("http_req_failed rate<0.01").passed
        assert summary.passed
        assert check(summary, "login 200").passes == 1
        assert check(summary, "health 200").passes == 2
        assert check(summary, "patient 200|404").passes == 2

    def test_missing_patient_is_acceptable(self, config):
        handler = make_api(patients=[{"id": 7}], patient_status=404)
        summary = run(config, smoke.build(config, iterations=1, think_time=0), handler)

        stat = check(summary, "patient 200|404")
        assert stat.passes == 1 and stat.fails == 0
        assert summary.metrics[HTTP_REQ_FAILED].values["rate"] == 0

    def test_no_patients_skips_lookup(self, config):
        handler = make_api(patients=[])
        summary = run(config, smoke.build(config, iterations=1, think_time=0), handler)
        assert check(summary, "patient 200|404") is None
        assert summary.passed

    def test_unreachable_target_fails(self, config):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        summary = run(config, smoke.build(config, iterations=1, think_time=0), handler)

        assert summary.checks_rate == 0.0
        assert not summary.passed
        assert summary.verdict("http_req_failed rate<0.01").observed == 1.0

    def test_token_is_sent(self, config):
        handler = make_api(protected=("/appointments", "/business-hours"))
        summary = run(config, smoke.build(config, iterations=1, think_time=0), handler)
        assert check(summary, "today 200").passes == 1
        assert check(summary, "business-hours 200").passes == 1


class TestLoad:
    def test_scaled_down_run(self, config):
        scenario = load.build(
            config, stages=[(0.3, 2), (0.2, 0)], graceful_ramp_down=0.5, think_time=0.01
        )
        summary = run(config, scenario)

        iterations = summary.metrics[ITERATIONS].values["count"]
        assert iterations > 0
        assert summary.metrics["read_duration"].values["count"] == 4 * iterations
        assert check(summary, "batch 200s").fails == 0
        assert summary.verdict("http_req_duration{scenario:steady_read} p(95)<400").passed
        assert summary.passed


class TestStress:
    def test_scaled_down_run(self, config):
        scenario = stress.build(
            config, stages=[(0.3, 20), (0.2, 0)], start_rate=10,
            pre_allocated_vus=2, max_vus=4, think_time=0,
        )
        summary = run(config, scenario)

        ran = summary.metrics[ITERATIONS].values["count"]
        dropped = summary.metrics.get(DROPPED_ITERATIONS)
        dropped = dropped.values["count"] if dropped else 0
        assert ran + dropped == 6
        assert summary.scenarios[0].vus_max == 4


class TestSecurityProbes:
    def test_hardened_target_passes_every_check(self, config):
        handler = make_api(protected=("/appointments", "/patients/7"))
        summary = run(config, security_probes.build(config), handler)

        labels = {c.label for c in summary.checks}
        assert labels == {
            "cors status 204|200|4xx",
            "sqli not 500",
            "xss not 500",
            "patients/:id 2xx|404|401",
            "invalid token not 2xx",
        }
        assert summary.checks_rate == 1.0
        assert summary.metrics[ITERATIONS].values["count"] == 1
        assert summary.passed

    def test_open_endpoint_is_flagged(self, config):
        summary = run(config, security_probes.build(config))
        assert check(summary, "invalid token not 2xx").fails == 1

    def test_server_error_on_injection_is_flagged(self, config):
        api = make_api()

        def handler(request):
            if "OR" in request.url.params.get("q", ""):
                return httpx.Response(500)
            return api(request)

        summary = run(config, security_probes.build(config), handler)
        assert check(summary, "sqli not 500").fails == 1
        assert check(summary, "xss not 500").passes == 1

    def test_hung_target_fails_iterations_threshold(self, config):
        api = make_api()
        gate = threading.Event()

        def handler(request):
            if request.method == "OPTIONS":
                gate.wait(2)
            return api(request)

        scenario = security_probes.build(config, max_duration=0.2, graceful_stop=0.1)
        try:
            summary = run(config, scenario, handler)
        finally:
            gate.set()

        verdict = summary.verdict("iterations{scenario:security_probes} count>=1")
        assert verdict is not None
        assert not verdict.passed
        assert not summary.passed
