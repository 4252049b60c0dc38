"""CLI entrypoint for curation runs, recovery and learning jobs."""

from __future__ import annotations

import argparse
from datetime import date
import json
import logging
import sys
from typing import Any, List, Optional

from config import get_settings
from core import TriggerSource
from orchestrator import runtime
from utils.exceptions import CurationError
from utils.logger import setup_logger


logger = logging.getLogger(__name__)


def _print(payload: Any) -> None:
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump(mode="json")
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _queries(text: str) -> List[str]:
    return [item.strip() for item in str(text or "").split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Instructional video curation CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    curate = sub.add_parser("curate", help="Run one curation pass")
    curate.add_argument("--queries", default="", help="Comma-separated search queries")
    curate.add_argument("--trigger", default=TriggerSource.MANUAL.value, choices=[t.value for t in TriggerSource])

    sub.add_parser("recover", help="Run one stuck-run recovery sweep")

    recover_run = sub.add_parser("recover-run", help="Manually clear a running run")
    recover_run.add_argument("--run-id", required=True)

    sub.add_parser("recovery-status", help="Health summary for stuck runs")

    loop = sub.add_parser("sweep-loop", help="Run the recovery sweep on its interval until interrupted")
    loop.add_argument("--iterations", type=int, default=0, help="Stop after N sweeps (0 = forever)")

    sub.add_parser("quota", help="Show source quota usage")

    feedback = sub.add_parser("feedback", help="Record one user reaction")
    feedback.add_argument("--user-id", required=True)
    feedback.add_argument("--instructor", required=True)
    feedback.add_argument("--video-id", required=True)
    feedback.add_argument("--action", required=True)
    feedback.add_argument("--technique", default=None)

    rec = sub.add_parser("evaluate-recommendation", help="Evaluate one recommendation outcome")
    rec.add_argument("--id", required=True)

    recent = sub.add_parser("evaluate-recent", help="Evaluate recent unevaluated outcomes")
    recent.add_argument("--hours", type=int, default=None)
    recent.add_argument("--limit", type=int, default=None)

    ab = sub.add_parser("evaluate-ab", help="Close an A/B experiment")
    ab.add_argument("--experiment-id", required=True)

    metrics = sub.add_parser("daily-metrics", help="Aggregate daily feedback metrics")
    metrics.add_argument("--day", default="", help="YYYY-MM-DD (default: yesterday)")

    return parser


def run_command(args: argparse.Namespace) -> int:
    settings = get_settings()

    if args.command == "curate":
        run = runtime.get_controller().run(
            trigger_source=TriggerSource(args.trigger),
            queries=_queries(args.queries) or None,
        )
        _print(run)
        return 0 if run.status.value == "completed" else 1

    if args.command == "recover":
        report = runtime.get_recovery_sweep().sweep()
        _print(report)
        return 1 if report.errors else 0

    if args.command == "recover-run":
        _print(runtime.get_recovery_sweep().recover_run(args.run_id))
        return 0

    if args.command == "recovery-status":
        status = runtime.get_recovery_sweep().status()
        payload = status.model_dump(mode="json")
        payload["healthy"] = status.healthy
        _print(payload)
        return 0

    if args.command == "sweep-loop":
        scheduler = runtime.get_recovery_scheduler()
        try:
            scheduler.run_forever(iterations=args.iterations, on_report=_print)
        except KeyboardInterrupt:
            scheduler.stop()
            logger.info("[CLI] Sweep loop interrupted")
        return 0

    if args.command == "quota":
        snapshot = runtime.get_quota_tracker().snapshot()
        payload = snapshot.model_dump(mode="json")
        payload["units_remaining"] = snapshot.units_remaining
        _print(payload)
        return 0

    if args.command == "feedback":
        perf = runtime.get_feedback_loop().record_feedback(
            args.user_id, args.instructor, args.video_id, args.action, technique=args.technique
        )
        _print(perf)
        return 0

    if args.command == "evaluate-recommendation":
        _print(runtime.get_outcome_evaluator().evaluate_recommendation(args.id))
        return 0

    if args.command == "evaluate-recent":
        learning = settings.learning
        report = runtime.get_outcome_evaluator().evaluate_recent(
            hours=args.hours or learning.outcome_batch_hours,
            limit=args.limit or learning.outcome_batch_limit,
        )
        _print(report)
        return 0

    if args.command == "evaluate-ab":
        _print(runtime.get_outcome_evaluator().evaluate_ab_test(args.experiment_id))
        return 0

    if args.command == "daily-metrics":
        day: Optional[date] = date.fromisoformat(args.day) if str(args.day).strip() else None
        _print(runtime.get_metrics_aggregator().record_daily_metrics(day))
        return 0

    raise SystemExit(f"Unsupported command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    general = get_settings().general
    setup_logger(level=general.log_level, log_file=general.log_file, use_rich=general.use_rich)
    try:
        return run_command(args)
    except (CurationError, ValueError) as exc:
        logger.error(f"[CLI] {args.command} failed: {exc}")
        _print({"error": str(exc), "type": type(exc).__name__})
        return 1


if __name__ == "__main__":
    sys.exit(main())
