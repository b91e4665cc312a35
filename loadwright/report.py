"""
Run summary rendering: fixed-width text and a self-contained HTML page.

``render()`` is pure; ``write_summary()`` is the only function that touches
the filesystem.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from loadwright.metrics.sample import MetricKind
from loadwright.models import CheckStat, MetricSummary, RunSummary, ScenarioSummary, format_duration

TEXT_FILENAME = "summary.txt"
HTML_FILENAME = "summary.html"

NAME_WIDTH = 28
RULE = "=" * 72

# Trend values in display order.
_TREND_ORDER = ("avg", "min", "med", "max", "p(90)", "p(95)", "p(99)")
_DURATION_METRICS = ("http_req_duration", "iteration_duration", "read_duration")


@dataclass(frozen=True)
class RenderedSummary:
    text: str
    html: str


def render(summary: RunSummary) -> RenderedSummary:
    return RenderedSummary(text=render_text(summary), html=render_html(summary))


def write_summary(rendered: RenderedSummary, out_dir: Union[str, Path]) -> Dict[str, Path]:
    """Write summary.txt and summary.html into ``out_dir`` (created if needed)."""
    directory = Path(out_dir)
    directory.mkdir(parents=True, exist_ok=True)
    paths = {
        "text": directory / TEXT_FILENAME,
        "html": directory / HTML_FILENAME,
    }
    paths["text"].write_text(rendered.text, encoding="utf-8")
    paths["html"].write_text(rendered.html, encoding="utf-8")
    return paths


def _fmt(val: Optional[float], decimals: int = 2) -> str:
    """Format a value, handling None."""
    if val is None:
        return "N/A"
    return f"{val:.{decimals}f}"


def _fmt_ms(val: Optional[float]) -> str:
    if val is None:
        return "N/A"
    if val >= 1000:
        return f"{val / 1000:.2f}s"
    return f"{val:.2f}ms"


def _pct(rate: Optional[float]) -> str:
    if rate is None:
        return "N/A"
    return f"{rate * 100:.2f}%"


def format_metric(metric: MetricSummary) -> str:
    """One-line rendering of a metric's values."""
    v = metric.values
    if metric.kind == MetricKind.TREND:
        fmt = _fmt_ms if metric.name in _DURATION_METRICS else _fmt
        return " ".join(f"{k}={fmt(v.get(k))}" for k in _TREND_ORDER if k in v)
    if metric.kind == MetricKind.RATE:
        return f"{_pct(v.get('rate'))} {int(v.get('passes', 0))} of {int(v.get('passes', 0) + v.get('fails', 0))}"
    if metric.kind == MetricKind.COUNTER:
        return f"{v.get('count', 0):g} {_fmt(v.get('rate'))}/s"
    return f"{v.get('value', 0):g} min={v.get('min', 0):g} max={v.get('max', 0):g}"


def _metric_lines(metrics: Mapping[str, MetricSummary], indent: str = "  ") -> List[str]:
    lines = []
    for name in sorted(metrics):
        label = (name + " ").ljust(NAME_WIDTH, ".")
        lines.append(f"{indent}{label}: {format_metric(metrics[name])}")
    return lines


def _check_lines(checks: Sequence[CheckStat], indent: str = "  ") -> List[str]:
    if not checks:
        return [f"{indent}(no checks)"]
    width = max(len(c.label) for c in checks)
    lines = []
    for c in checks:
        mark = "PASS" if c.passed else "FAIL"
        lines.append(
            f"{indent}[{mark}] {c.label.ljust(width)}  {_pct(c.rate):>8}  "
            f"{c.passes:>6} passed {c.fails:>6} failed"
        )
    return lines


def render_text(summary: RunSummary) -> str:
    """Fixed-width plain-text report for terminals and CI logs."""
    lines = [RULE, "RUN SUMMARY", RULE]
    result = "PASSED" if summary.passed else "FAILED"
    if summary.interrupted:
        result += " (interrupted)"
    lines.append(f"Result:    {result}")
    lines.append(f"Started:   {summary.started_at.isoformat()}")
    lines.append(f"Duration:  {format_duration(summary.duration_seconds)}")
    lines.append(
        "Scenarios: "
        + ", ".join(
            f"{s.name} ({s.executor.value}, {s.vus_max} max VUs, {format_duration(s.duration_seconds)})"
            for s in summary.scenarios
        )
    )
    lines.append("")

    lines.append("--- Thresholds ---")
    if not summary.thresholds:
        lines.append("  (no thresholds)")
    for verdict in summary.thresholds:
        mark = "PASS" if verdict.passed else "FAIL"
        observed = "no data" if verdict.observed is None else f"{verdict.observed:.4g}"
        lines.append(f"  [{mark}] {verdict.label}  (observed {observed})")
    lines.append("")

    for scenario in summary.scenarios:
        lines.append(f"--- Checks: {scenario.name} ---")
        lines.extend(_check_lines(scenario.checks))
        lines.append("")

    lines.append("--- Metrics ---")
    lines.extend(_metric_lines(summary.metrics))
    lines.append("")
    return "\n".join(lines)


_CSS = """
* { box-sizing: border-box; }
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
       background: #f3f4f6; color: #1f2937; margin: 0; padding: 2rem; line-height: 1.5; }
.container { max-width: 1100px; margin: 0 auto; }
h1 { color: #4f46e5; margin: 0 0 .5rem; }
.card { background: white; border-radius: .5rem; padding: 1.25rem; margin-bottom: 1.25rem;
        box-shadow: 0 1px 3px rgba(0,0,0,.1); }
nav ul { list-style: none; padding: 0; margin: 0; display: flex; flex-wrap: wrap; gap: .5rem; }
nav a { display: inline-block; padding: .25rem .75rem; border-radius: 999px;
        background: #eef2ff; color: #4338ca; text-decoration: none; }
table { width: 100%; border-collapse: collapse; font-size: .9rem; }
th, td { padding: .5rem .6rem; text-align: left; border-bottom: 1px solid #e5e7eb; }
th { background: #f9fafb; }
.pass { color: #15803d; font-weight: 600; }
.fail { color: #b91c1c; font-weight: 600; }
.badge { padding: .2rem .6rem; border-radius: .25rem; color: white; }
.badge.pass { background: #16a34a; } .badge.fail { background: #dc2626; }
code { font-family: ui-monospace, SFMono-Regular, Menlo, monospace; }
"""


def _e(value: object) -> str:
    return html.escape(str(value), quote=True)


def _anchor(name: str) -> str:
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in name)
    return f"scenario-{safe}"


def _html_metrics(metrics: Mapping[str, MetricSummary]) -> str:
    if not metrics:
        return "<p>No samples.</p>"
    rows = "".join(
        f"<tr><td><code>{_e(name)}</code></td><td>{_e(metrics[name].kind.value)}</td>"
        f"<td>{_e(format_metric(metrics[name]))}</td></tr>"
        for name in sorted(metrics)
    )
    return f"<table><tr><th>Metric</th><th>Kind</th><th>Values</th></tr>{rows}</table>"


def _html_checks(checks: Iterable[CheckStat]) -> str:
    checks = list(checks)
    if not checks:
        return "<p>No checks.</p>"
    rows = "".join(
        f"<tr><td class=\"{'pass' if c.passed else 'fail'}\">{'&#10003;' if c.passed else '&#10007;'}</td>"
        f"<td>{_e(c.label)}</td><td>{_pct(c.rate)}</td><td>{c.passes}</td><td>{c.fails}</td></tr>"
        for c in checks
    )
    return (
        "<table><tr><th></th><th>Check</th><th>Pass rate</th><th>Passed</th>"
        f"<th>Failed</th></tr>{rows}</table>"
    )


def _html_scenario(scenario: ScenarioSummary) -> str:
    return f"""
    <section class="card" id="{_anchor(scenario.name)}">
      <h2>Scenario <code>{_e(scenario.name)}</code></h2>
      <p>{_e(scenario.executor.value)} &middot; {scenario.vus_max} max VUs &middot;
         {_e(format_duration(scenario.duration_seconds))}</p>
      <h3>Checks</h3>
      {_html_checks(scenario.checks)}
      <h3>Metrics</h3>
      {_html_metrics(scenario.metrics)}
    </section>"""


def render_html(summary: RunSummary) -> str:
    """Self-contained HTML report (inline CSS, no scripts, no remote assets)."""
    status = "pass" if summary.passed else "fail"
    result = "PASSED" if summary.passed else "FAILED"
    if summary.interrupted:
        result += " (interrupted)"
    nav = "".join(
        f'<li><a href="#{_anchor(s.name)}">{_e(s.name)}</a></li>' for s in summary.scenarios
    )
    threshold_rows = "".join(
        f"<tr><td class=\"{'pass' if v.passed else 'fail'}\">{'PASS' if v.passed else 'FAIL'}</td>"
        f"<td><code>{_e(v.threshold.key)}</code></td><td><code>{_e(v.threshold.condition)}</code></td>"
        f"<td>{'no data' if v.observed is None else _e(f'{v.observed:.4g}')}</td></tr>"
        for v in summary.thresholds
    ) or '<tr><td colspan="4">No thresholds.</td></tr>'
    scenarios = "".join(_html_scenario(s) for s in summary.scenarios)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Load test summary</title>
  <style>{_CSS}</style>
</head>
<body>
  <div class="container">
    <h1>Load test summary</h1>
    <p><span class="badge {status}">{_e(result)}</span>
       started {_e(summary.started_at.isoformat())} &middot; ran {_e(format_duration(summary.duration_seconds))}</p>
    <nav class="card">
      <ul><li><a href="#totals">All scenarios</a></li>{nav}</ul>
    </nav>
    <section class="card" id="thresholds">
      <h2>Thresholds</h2>
      <table><tr><th></th><th>Metric</th><th>Condition</th><th>Observed</th></tr>{threshold_rows}</table>
    </section>
    <section class="card" id="totals">
      <h2>All scenarios</h2>
      <h3>Checks</h3>
      {_html_checks(summary.checks)}
      <h3>Metrics</h3>
      {_html_metrics(summary.metrics)}
    </section>{scenarios}
  </div>
</body>
</html>
"""
