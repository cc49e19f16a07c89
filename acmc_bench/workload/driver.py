from __future__ import annotations

import asyncio
import collections
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..credentials import CredentialSet, UniqueValueGenerator
from .config import RoundSettings
from .dispatch import OutcomeRecord, SubmitFn, TransactionDispatcher, TransactionRequest
from .operations import (
    BuildContext,
    OperationDescriptor,
    build_descriptors,
    needs_registration_template,
    required_identities,
    signing_plan,
)
from .recorder import LatencyRecorder, latency_log_path
from .selection import InvokerSelector, WeightedSelector

LOGGER = logging.getLogger("acmc_bench.workload.driver")


@dataclass
class WorkerStatistics:
    worker_index: int
    submitted: int
    succeeded: int
    started_at: float
    finished_at: float
    per_operation: collections.Counter[str] = field(default_factory=collections.Counter)

    @property
    def duration_s(self) -> float:
        return max(self.finished_at - self.started_at, 0.0)

    @property
    def throughput_per_second(self) -> float:
        if self.duration_s == 0:
            return 0.0
        return self.submitted / self.duration_s


class MixedWorkload:
    """One worker's weighted mix of access-control contract calls."""

    def __init__(
        self,
        settings: RoundSettings,
        descriptors: list[OperationDescriptor],
        credentials: CredentialSet,
        invokers: InvokerSelector,
        dispatcher: TransactionDispatcher,
        recorder: LatencyRecorder,
        worker_index: int = 0,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._operations = {descriptor.name: descriptor for descriptor in descriptors}
        self._selector = WeightedSelector(
            [d.name for d in descriptors], [d.weight for d in descriptors], rng=rng
        )
        self._credentials = credentials
        self._invokers = invokers
        self._dispatcher = dispatcher
        self._recorder = recorder
        self._worker_index = worker_index
        self._unique = UniqueValueGenerator(worker_index, settings.cid_prefix, rng=rng)
        self._tx_index = 0
        self._stopped = False

    @classmethod
    def initialize(
        cls,
        worker_index: int,
        round_arguments: Mapping[str, Any] | None,
        send: SubmitFn,
        round_index: int = 0,
        rng: random.Random | None = None,
    ) -> "MixedWorkload":
        settings = RoundSettings.from_arguments(round_arguments, round_index)
        return cls.from_settings(settings, worker_index, send, rng=rng)

    @classmethod
    def from_settings(
        cls,
        settings: RoundSettings,
        worker_index: int,
        send: SubmitFn,
        rng: random.Random | None = None,
    ) -> "MixedWorkload":
        descriptors = build_descriptors(settings)
        credentials = CredentialSet.initialize(
            required_identities(settings, descriptors),
            signing_plan(settings, descriptors),
            with_registration_template=needs_registration_template(descriptors),
        )
        invokers = InvokerSelector(
            settings.invoker_ids,
            settings.invoker_weights,
            fallback=settings.invoker,
            rng=rng,
        )
        recorder = LatencyRecorder.open(
            latency_log_path(settings.output_dir, settings.label, worker_index),
            settings.label,
        )
        LOGGER.info(
            "Worker %d ready: contract=%s ops=%s invokers=%s (%s)",
            worker_index,
            settings.contract_id,
            ",".join(d.name for d in descriptors),
            ",".join(invokers.identifiers),
            "weighted" if invokers.weighted else "uniform",
        )
        return cls(
            settings=settings,
            descriptors=descriptors,
            credentials=credentials,
            invokers=invokers,
            dispatcher=TransactionDispatcher(send),
            recorder=recorder,
            worker_index=worker_index,
            rng=rng,
        )

    @property
    def worker_index(self) -> int:
        return self._worker_index

    @property
    def recorder(self) -> LatencyRecorder:
        return self._recorder

    def next_request(self) -> TransactionRequest:
        self._tx_index += 1
        descriptor = self._operations[self._selector.pick()]
        context = BuildContext(
            settings=self._settings,
            credentials=self._credentials,
            unique=self._unique,
            tx_index=self._tx_index,
        )
        return TransactionRequest(
            operation=descriptor.name,
            contract_id=self._settings.contract_id,
            function=descriptor.function,
            arguments=tuple(descriptor.build(context)),
            invoker=self._invokers.pick(),
            read_only=descriptor.read_only,
            timeout_s=self._settings.timeout_s,
        )

    async def submit_transaction(self) -> OutcomeRecord:
        record = await self._dispatcher.dispatch(self.next_request())
        self._recorder.append(record)
        return record

    async def run(
        self, ticks: int | None = None, duration_s: float | None = None
    ) -> WorkerStatistics:
        if ticks is None and duration_s is None:
            raise ValueError("either ticks or duration_s must be given")

        started_at = time.time()
        deadline = started_at + duration_s if duration_s is not None else None
        stats = WorkerStatistics(
            worker_index=self._worker_index,
            submitted=0,
            succeeded=0,
            started_at=started_at,
            finished_at=started_at,
        )
        while not self._stopped:
            if ticks is not None and stats.submitted >= ticks:
                break
            if deadline is not None and time.time() >= deadline:
                break
            record = await self.submit_transaction()
            stats.submitted += 1
            stats.succeeded += int(record.ok)
            stats.per_operation[record.operation] += 1

        stats.finished_at = time.time()
        return stats

    def stop(self) -> None:
        self._stopped = True

    def close(self) -> None:
        self._recorder.close()


def setup_workers(
    settings: RoundSettings, send: SubmitFn, workers: int = 1
) -> list[MixedWorkload]:
    """Set up every worker before any of them sends a transaction.

    Workers already opened are closed again if a later one fails to set up.
    """
    if workers <= 0:
        raise ValueError("workers must be > 0")

    workloads: list[MixedWorkload] = []
    try:
        for worker_index in range(workers):
            workloads.append(MixedWorkload.from_settings(settings, worker_index, send))
    except BaseException:
        for workload in workloads:
            workload.close()
        raise
    return workloads


async def drive_workers(
    workloads: list[MixedWorkload],
    ticks: int | None = None,
    duration_s: float | None = None,
) -> list[WorkerStatistics]:
    return list(
        await asyncio.gather(
            *(workload.run(ticks=ticks, duration_s=duration_s) for workload in workloads)
        )
    )


async def run_workers(
    settings: RoundSettings,
    send: SubmitFn,
    workers: int = 1,
    ticks: int | None = None,
    duration_s: float | None = None,
) -> list[WorkerStatistics]:
    """Set up every worker first, then run them concurrently with no shared state."""
    workloads = setup_workers(settings, send, workers)
    try:
        return await drive_workers(workloads, ticks=ticks, duration_s=duration_s)
    finally:
        for workload in workloads:
            workload.close()


__all__ = ["MixedWorkload", "WorkerStatistics", "drive_workers", "run_workers", "setup_workers"]
