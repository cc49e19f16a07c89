from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from .credentials import IdentityLoadError
from .workload.config import RoundSettings, WorkloadConfigError
from .workload.dispatch import SubmitFn
from .workload.driver import drive_workers, setup_workers
from .workload.operations import OPERATION_CATALOGUE
from .workload.recorder import latency_log_path, load_latency_log, summarize_latency_log

LOGGER = logging.getLogger("acmc_bench")

EXIT_SETUP_ERROR = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Access-control contract mixed workload")
    parser.add_argument(
        "--round-config",
        default=os.environ.get("ACMC_ROUND_CONFIG"),
        help="JSON file with the round arguments (weights, invokers, label, ...)",
    )
    parser.add_argument("--round-index", type=int, default=0)
    parser.add_argument(
        "--workers", type=int, default=int(os.environ.get("ACMC_WORKERS", "1"))
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=int(os.environ.get("ACMC_TICKS", "100")),
        help="Transactions per worker",
    )
    parser.add_argument(
        "--duration",
        type=float,
        help="Seconds to run each worker for; overrides --ticks",
    )
    parser.add_argument(
        "--submitter",
        default=os.environ.get("ACMC_SUBMITTER"),
        help="Submission capability as module:attribute",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the resolved operation mix and invokers",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("ACMC_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def load_round_arguments(path: str | None) -> dict[str, Any]:
    if not path:
        return {}
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise WorkloadConfigError(f"round config {path} must hold a JSON object")
    return data


def resolve_submitter(spec: str) -> SubmitFn:
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise WorkloadConfigError(f"submitter {spec!r} must look like module:attribute")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise WorkloadConfigError(f"cannot import submitter module {module_name!r}") from exc
    target: Any = module
    for part in attribute.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise WorkloadConfigError(f"submitter {spec!r} not found")
    if not callable(target):
        raise WorkloadConfigError(f"submitter {spec!r} is not callable")
    return target


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        settings = RoundSettings.from_arguments(
            load_round_arguments(args.round_config), args.round_index
        )
    except (OSError, json.JSONDecodeError, WorkloadConfigError) as exc:
        LOGGER.error("Invalid round configuration: %s", exc)
        return EXIT_SETUP_ERROR

    LOGGER.info("Round label: %s, contract: %s", settings.label, settings.contract_id)
    LOGGER.info("Latency logs: %s", settings.output_dir)

    if args.dry_run:
        _print_plan(settings)
        return 0

    if not args.submitter:
        LOGGER.error("No submitter configured (--submitter or ACMC_SUBMITTER)")
        return EXIT_SETUP_ERROR

    try:
        send = resolve_submitter(args.submitter)
        workloads = setup_workers(settings, send, workers=args.workers)
    except (IdentityLoadError, OSError, ValueError) as exc:
        LOGGER.error("Setup failed: %s", exc)
        return EXIT_SETUP_ERROR

    duration_s = args.duration
    try:
        stats = asyncio.run(
            drive_workers(
                workloads,
                ticks=None if duration_s is not None else args.ticks,
                duration_s=duration_s,
            )
        )
    finally:
        for workload in workloads:
            workload.close()

    for worker in stats:
        LOGGER.info(
            "Worker %d: %d submitted, %d succeeded, %.2f tx/s",
            worker.worker_index,
            worker.submitted,
            worker.succeeded,
            worker.throughput_per_second,
        )
        log_path = latency_log_path(settings.output_dir, settings.label, worker.worker_index)
        summary = summarize_latency_log(load_latency_log(log_path))
        LOGGER.info("Latency log %s:\n%s", log_path, summary.to_string(index=False))
    return 0


def _print_plan(settings: RoundSettings) -> None:
    print(f"Round: {settings.label} (contract {settings.contract_id})")
    for op, share in settings.normalised_operation_weights().items():
        if share <= 0:
            continue
        descriptor = OPERATION_CATALOGUE[op]
        mode = "query" if descriptor.read_only else "submit"
        print(f"  - {op}: {share:.1%} -> {descriptor.function} ({mode})")
    invokers = settings.invoker_ids or (settings.invoker,)
    mode = "weighted" if settings.invoker_weights is not None else "uniform"
    print(f"Invokers ({mode}): {', '.join(invokers)}")
    print(f"Identities: {Path(settings.identity_dir)}")


if __name__ == "__main__":
    sys.exit(main())
