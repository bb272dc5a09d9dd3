"""
Workload Reconciler - Entry Point

Polls a Kubernetes workload and applies remediations until it is healthy or
the attempt budget runs out.

Usage:
    workload-reconciler reconcile --namespace dev --selector app=flask-app \\
        [--max-attempts N] [--poll-interval 10s] [--policy flask-app] [--dry-run]

Exit codes: 0 healthy, 1 failed, 2 degraded (gave up).
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from kubernetes.config import ConfigException

from .cluster_client import WorkloadClient, build_api_client
from .config import (
    DEFAULT_KIND_CLUSTER,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLICY,
    DEFAULT_POLL_INTERVAL_SECONDS,
)
from .errors import FatalReconcilerError
from .image_publisher import KindImagePublisher
from .models import FinalState, ReconciliationResult, WorkloadRef
from .policy import build_policy, preset_names
from .reconciler import Reconciler
from .utils import parse_duration

logger = logging.getLogger(__name__)

EXIT_CODES = {
    FinalState.HEALTHY: 0,
    FinalState.FAILED: 1,
    FinalState.DEGRADED: 2,
}


def _duration(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workload-reconciler",
        description="Workload Reconciler - Drive a Kubernetes workload to a healthy state"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("reconcile", help="Reconcile one workload")
    rec.add_argument(
        "--namespace", "-n",
        default="default",
        help="Namespace of the workload (default: default)"
    )
    rec.add_argument(
        "--selector", "-l",
        required=True,
        help="Label selector of the workload's pods, e.g. app=flask-app"
    )
    rec.add_argument("--deployment", help="Deployment name (default: found by selector)")
    rec.add_argument("--service", help="Service to expose (default: found by selector)")
    rec.add_argument(
        "--max-attempts",
        type=_positive_int,
        default=DEFAULT_MAX_ATTEMPTS,
        help=f"Maximum number of polls (default: {DEFAULT_MAX_ATTEMPTS})"
    )
    rec.add_argument(
        "--poll-interval",
        type=_duration,
        default=DEFAULT_POLL_INTERVAL_SECONDS,
        help=f"Sleep between attempts, e.g. 500ms, 10s, 2m (default: {DEFAULT_POLL_INTERVAL_SECONDS:g}s)"
    )
    rec.add_argument(
        "--deadline",
        type=_duration,
        help="Give up after this much wall-clock time"
    )
    rec.add_argument(
        "--policy",
        choices=preset_names(),
        default=DEFAULT_POLICY,
        help=f"Remediation policy preset (default: {DEFAULT_POLICY})"
    )
    rec.add_argument(
        "--rule",
        action="append",
        default=[],
        metavar="CLASSIFICATION=ACTION",
        help="Extra rule evaluated before the preset, e.g. Degraded=ExposeExternally (repeatable)"
    )
    rec.add_argument(
        "--dry-run",
        action="store_true",
        help="Run in dry-run mode (no changes made)"
    )
    rec.add_argument(
        "--in-cluster",
        action="store_true",
        help="Use in-cluster config (for running inside Kubernetes)"
    )
    rec.add_argument("--kubeconfig", help="Path to kubeconfig (default: standard location)")
    rec.add_argument("--context", help="kubeconfig context (default: current context)")
    rec.add_argument(
        "--build-context",
        help="Docker build context used by RebuildAndReload"
    )
    rec.add_argument(
        "--kind-cluster",
        default=DEFAULT_KIND_CLUSTER,
        help=f"kind cluster to load rebuilt images into (default: {DEFAULT_KIND_CLUSTER})"
    )
    rec.add_argument(
        "--output", "-o",
        choices=["text", "json"],
        default="text",
        help="Report format (default: text)"
    )
    rec.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging"
    )
    return parser


def format_result(result: ReconciliationResult, output: str = "text") -> str:
    """Render the result and the full remediation log."""
    if output == "json":
        return json.dumps(result.to_dict(), indent=2)

    lines = [
        f"Final state: {result.final_state.value}",
        f"Attempts used: {result.attempts_used}",
        f"Remediations: {len(result.remediation_log)}",
    ]
    for record in result.remediation_log:
        after = record.state_after.value if record.state_after else "?"
        flag = " (ineffective)" if record.ineffective else ""
        lines.append(
            f"  [{record.timestamp.isoformat()}] attempt {record.attempt}: {record.action.value} "
            f"{record.state_before.value} -> {after}: {record.outcome}{flag}"
            + (f" - {record.detail}" if record.detail else "")
        )
    if result.errors:
        lines.append(f"Errors: {len(result.errors)}")
        lines.extend(f"  {error}" for error in result.errors)
    return "\n".join(lines)


def run_reconcile(args: argparse.Namespace) -> int:
    try:
        policy = build_policy(args.policy, args.rule)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_CODES[FinalState.FAILED]

    try:
        api_client = build_api_client(
            in_cluster=args.in_cluster,
            kubeconfig=args.kubeconfig,
            context=args.context,
        )
    except (ConfigException, OSError) as e:
        logger.error(f"Failed to load Kubernetes config: {e}")
        return EXIT_CODES[FinalState.FAILED]

    publisher = None
    if args.build_context:
        publisher = KindImagePublisher(args.build_context, args.kind_cluster)

    ref = WorkloadRef(
        namespace=args.namespace,
        selector=args.selector,
        deployment=args.deployment,
        service=args.service,
    )
    reconciler = Reconciler(
        WorkloadClient(api_client),
        image_publisher=publisher,
        dry_run=args.dry_run,
    )

    try:
        result = reconciler.reconcile(
            ref,
            policy,
            max_attempts=args.max_attempts,
            poll_interval=args.poll_interval,
            deadline=args.deadline,
        )
    except FatalReconcilerError as e:
        logger.error(f"{type(e).__name__}: {e}")
        result = ReconciliationResult(FinalState.FAILED, e.attempts_used, e.remediation_log, e.errors + [str(e)])

    print(format_result(result, args.output))
    return EXIT_CODES[result.final_state]


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
    )

    if args.command == "reconcile":
        return run_reconcile(args)
    return 2


if __name__ == "__main__":
    sys.exit(main())
