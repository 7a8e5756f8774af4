#!/usr/bin/env python3

import argparse
import asyncio
import json
from datetime import datetime
from pathlib import Path

from journey_config import BROWSERS, JourneyConfig
from report import archive_files, log_to_csv, write_html_report
from runner import run_suite


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Unauthenticated journey: locale → search → album → auth prompt")
    parser.add_argument("--base-url", help="Root URL of the service under test")
    parser.add_argument("--locale", help="Locale to switch to (e.g. pt-BR, en)")
    parser.add_argument("--query", help="Search query to type")
    parser.add_argument("--album", help="Exact album title to open from the results")
    parser.add_argument("--browser", action="append", choices=BROWSERS, help="Browser engine; repeat for several")
    parser.add_argument("--headful", action="store_true", help="Run browser headful for debugging")
    parser.add_argument("--verbose", action="store_true", help="Print step logs")
    parser.add_argument("--retries", type=int, help="Whole-run retries per browser on failure")
    parser.add_argument("--timeout-ms", type=int, help="Deadline for one journey run")
    parser.add_argument("--no-evidence", action="store_true", help="Do not capture screenshots")
    parser.add_argument("--output-dir", default="data/runs", help="Directory for run artifacts")
    return parser


def config_from_args(args: argparse.Namespace, environ=None) -> JourneyConfig:
    config = JourneyConfig.from_env(environ)
    if args.base_url:
        config.base_url = args.base_url
    if args.locale:
        config.locale = args.locale
    if args.query:
        config.query = args.query
    if args.album:
        config.album_title = args.album
    if args.browser:
        config.browsers = list(dict.fromkeys(args.browser))
    if args.headful:
        config.headless = False
    if args.verbose:
        config.verbose = True
    if args.retries is not None:
        config.retries = args.retries
    if args.timeout_ms is not None:
        config.test_timeout_ms = args.timeout_ms
    if args.no_evidence:
        config.capture_evidence = False
    config.validate()
    return config


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(args.output_dir) / f"run_{timestamp}"
    run_dir.mkdir(parents=True, exist_ok=True)

    print(f"🏃 Running journey on {', '.join(config.browsers)} (locale={config.locale}, query='{config.query}')...")
    results_json = asyncio.run(run_suite(config, run_dir))

    results_path = run_dir / "results.json"
    with open(results_path, "w", encoding="utf-8") as f:
        json.dump(results_json, f, indent=2)
    print(f"📊 Results written: {results_path}")

    report_path = run_dir / "report.html"
    write_html_report(results_json, report_path)
    print(f"📝 HTML report: {report_path}")

    tests = results_json.get("tests", [])
    passed = sum(1 for r in tests if r.get("status") == "passed")
    failed = sum(1 for r in tests if r.get("status") == "failed")

    archive_path = run_dir / "archive.zip"
    evidence = [Path(p) for r in tests for s in r.get("steps", []) for p in s.get("evidence", [])]
    archive_files(archive_path, [results_path, report_path] + evidence)
    print(f"📦 Archive: {archive_path}")

    log_to_csv(run_dir / "run_log.csv", timestamp, {
        "results": results_path,
        "report": report_path,
        "archive": archive_path,
        "passed": passed,
        "failed": failed,
    })

    print(f"✅ Done. Total: {len(tests)}, Passed: {passed}, Failed: {failed}")
    return 0 if tests and failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
