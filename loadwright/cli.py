from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Any, List, Optional

from dotenv import load_dotenv

from loadwright.config import RunConfig
from loadwright.exceptions import ConfigError
from loadwright.report import render, write_summary
from loadwright.runner import ScenarioRunner
from loadwright.scenarios import SCENARIOS

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2
EXIT_THRESHOLDS_FAILED = 99
EXIT_INTERRUPTED = 130


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="loadwright",
        description="Load-test the scheduling API with k6-style scenarios.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one scenario and write the summary.")
    run.add_argument("scenario", choices=sorted(SCENARIOS), help="Scenario to run.")
    run.add_argument("--base-url", help="Target API root (overrides BASE_URL).")
    run.add_argument("--username", help="Login name (overrides USERNAME).")
    run.add_argument("--password", help="Login password (overrides PASSWORD).")
    run.add_argument("--out-dir", help="Summary directory (overrides OUT_DIR).")
    run.add_argument(
        "--timeout", type=float, help="Per-request timeout in seconds."
    )
    run.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level (overrides LOADWRIGHT_LOG_LEVEL).",
    )
    run.add_argument(
        "--no-report",
        action="store_true",
        help="Print the text summary only; do not write summary files.",
    )

    sub.add_parser("list", help="List available scenarios.")
    return parser.parse_args(argv)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _list() -> int:
    for name in sorted(SCENARIOS):
        scenario = SCENARIOS[name](None)
        print(f"{name:<18} {scenario.executor.value:<22} {scenario.name}")
    return EXIT_OK


def _run(args: argparse.Namespace) -> int:
    try:
        config = RunConfig.from_env().replace(
            base_url=args.base_url,
            username=args.username,
            password=args.password,
            out_dir=args.out_dir,
            http_timeout=args.timeout,
            log_level=args.log_level,
        )
        scenario = SCENARIOS[args.scenario](config)
    except ConfigError as exc:
        _configure_logging(args.log_level or "INFO")
        logger.error("Configuration error: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    _configure_logging(config.log_level)
    runner = ScenarioRunner(config)

    def _on_sigint(signum: int, frame: Any) -> None:
        runner.stop()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        summary = runner.run(scenario)
    finally:
        signal.signal(signal.SIGINT, previous)

    rendered = render(summary)
    print(rendered.text)
    if not args.no_report:
        paths = write_summary(rendered, config.out_dir)
        logger.info("Summary written to %s and %s", paths["text"], paths["html"])

    if summary.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_OK if summary.passed else EXIT_THRESHOLDS_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    if args.command == "list":
        return _list()
    return _run(args)


if __name__ == "__main__":
    sys.exit(main())
